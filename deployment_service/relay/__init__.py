# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
from deployment_service.relay.relay import ClientConnection, LogRelay  # noqa

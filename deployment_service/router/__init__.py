# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
from deployment_service.router.proxy import create_app, resolve  # noqa

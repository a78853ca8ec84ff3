# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
from deployment_service.launcher.base import (  # noqa: F401
    GenericLauncher, Launcher, worker_environment)

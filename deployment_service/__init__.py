# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
"""On-demand build and hosting of static sites.

The service turns a git repository URL into a publicly reachable
deployment. It is made of four cooperating programs that only talk to each
other through a message bus and an artifact store:

- The dispatcher accepts deployment requests over HTTP, names the
  deployment and asks a worker launcher to start a build worker.
- The build worker clones and builds the repository in its own disposable
  environment, streams its progress to the bus and uploads the build output
  to the artifact store.
- The log relay forwards the build logs from the bus to the viewers
  connected over WebSocket.
- The edge router serves <deployment id>.<base domain> straight from the
  artifact store.
"""

from logging import getLogger

from celery import Celery

from deployment_service.common.config import init_config
from deployment_service.common.logger import init_logging

try:
    from importlib.metadata import version as _dist_version, PackageNotFoundError

    version = _dist_version("deployment-service")
except PackageNotFoundError:
    version = "unknown"

conf, config_section = init_config()

celery_app = Celery("deployment-service")
# Convert config names specific for Celery like this:
# celery_broker_url -> broker_url
celery_configs = {
    name[7:]: getattr(conf, name)
    for name in dir(conf) if name.startswith("celery_") and name != "celery_task_name"
}
celery_configs.setdefault("imports", ["deployment_service.worker.tasks"])
celery_app.conf.update(**celery_configs)

init_logging(conf)
log = getLogger(__name__)

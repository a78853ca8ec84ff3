# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
import logging

from kombu.exceptions import KombuError

from deployment_service.common.errors import LaunchError
from deployment_service.launcher.base import GenericLauncher, worker_environment

log = logging.getLogger(__name__)


class CeleryLauncher(GenericLauncher):
    """
    Queues every build as a Celery task. A Celery worker consuming the queue
    runs deployment_service.worker.tasks.build with the injected environment.
    """

    backend = "celery"

    def __init__(self, conf, celery_app=None):
        super(CeleryLauncher, self).__init__(conf)
        if celery_app is None:
            from deployment_service import celery_app
        self.celery_app = celery_app

    def __repr__(self):
        return "<CeleryLauncher task=%s>" % self.conf.celery_task_name

    def launch(self, deployment_id, git_url):
        env = worker_environment(self.conf, deployment_id, git_url)
        try:
            result = self.celery_app.send_task(
                self.conf.celery_task_name, kwargs={"environ": env})
        except KombuError as e:
            log.error("Failed to queue the build task of %s: %s", deployment_id, e)
            raise LaunchError("Failed to launch the build worker: %s" % e)

        log.info("Queued build task %s for %s", result.id, deployment_id)
        return result.id

# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
""" Celery tasks run by build workers started through the celery launcher. """

from deployment_service import celery_app
from deployment_service.worker.main import run_worker


@celery_app.task(name="deployment_service.worker.build")
def build(environ):
    """
    :param dict environ: the environment built by worker_environment()
    :returns: str -- "success" or "failure"
    """
    return run_worker(environ)

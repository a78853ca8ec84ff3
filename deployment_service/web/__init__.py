# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
import logging

from flask import Flask

from deployment_service.common.errors import LaunchError, ValidationError, json_error
from deployment_service.launcher import Launcher

log = logging.getLogger(__name__)


def create_app(conf, launcher=None):
    """
    Returns the dispatcher Flask application.

    :param conf: Config instance
    :param launcher: worker launcher shared by every request, built from
        conf.launcher when omitted
    """
    from deployment_service.web.views import register_api

    app = Flask("deployment_service.web")
    app.config["DEBUG"] = conf.debug
    app.config["DEPLOYMENT_SERVICE_CONF"] = conf
    app.extensions["deployment_service.launcher"] = launcher or Launcher(conf)
    register_api(app)

    @app.errorhandler(ValidationError)
    def validationerror_error(e):
        """Flask error handler for ValidationError exceptions"""
        return json_error(400, "Bad Request", str(e))

    @app.errorhandler(LaunchError)
    def launcherror_error(e):
        """Flask error handler for LaunchError exceptions"""
        log.error("Worker launch failed: %s", e)
        return json_error(500, "Internal Server Error", str(e))

    @app.errorhandler(RuntimeError)
    def runtimeerror_error(e):
        """Flask error handler for RuntimeError exceptions"""
        log.exception("RuntimeError exception raised")
        return json_error(500, "Internal Server Error", str(e))

    return app

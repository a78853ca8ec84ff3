# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
""" The deployment dispatcher, API.

This is the implementation of the dispatcher's public RESTful API.
"""

from datetime import datetime, timezone
import logging

from coolname import generate_slug
from flask import current_app, jsonify, request
from flask.views import MethodView

from deployment_service.common.errors import ValidationError

log = logging.getLogger(__name__)


def generate_deployment_id():
    """
    Returns a random three word slug, e.g. "quiet-amber-otter".

    Uniqueness is only probabilistic: existing deployments are not checked.
    """
    return generate_slug(3)


def serving_url(conf, deployment_id):
    """ Returns the address the edge router will serve a deployment at. """
    return "%s://%s.%s" % (conf.serving_scheme, deployment_id, conf.base_domain)


def get_deployment_request(r):
    """
    Returns the submitted (git_url, name) from the request. Both JSON and
    form encoded submissions are accepted.

    :raises ValidationError: the submission is unusable
    """
    if r.is_json:
        data = r.get_json(silent=True)
        if data is None:
            log.error("Invalid JSON submitted")
            raise ValidationError("Invalid JSON submitted")
    else:
        data = r.form.to_dict()

    if not isinstance(data, dict):
        log.error("Invalid deployment request submitted")
        raise ValidationError("The request body must be a JSON object")

    git_url = data.get("gitURL")
    if not git_url:
        log.error("Missing gitURL")
        raise ValidationError("git url is required")
    if not isinstance(git_url, str):
        raise ValidationError("gitURL must be a string")

    name = data.get("name")
    if name is not None and not isinstance(name, str):
        raise ValidationError("name must be a string")

    return git_url, name or None


class DeploymentAPI(MethodView):

    def post(self):
        conf = current_app.config["DEPLOYMENT_SERVICE_CONF"]
        launcher = current_app.extensions["deployment_service.launcher"]

        git_url, name = get_deployment_request(request)
        deployment_id = name if name is not None else generate_deployment_id()
        created = datetime.now(timezone.utc)

        log.debug("Launching worker for %s from %s", deployment_id, git_url)
        # LaunchError propagates to the 500 error handler
        reference = launcher.launch(deployment_id, git_url)

        url = serving_url(conf, deployment_id)
        log.info("Deployment %s of %s queued at %s (worker %s)",
                 deployment_id, git_url, created.isoformat(), reference)
        return jsonify({
            "status": "queued",
            "data": {"url": url, "name": deployment_id},
        }), 200


def register_api(app):
    """ Registers the dispatcher API. """
    deployment_view = DeploymentAPI.as_view("deployments")
    app.add_url_rule("/new", view_func=deployment_view, methods=["POST"])

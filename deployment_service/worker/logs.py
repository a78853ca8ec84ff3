# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
import logging

from deployment_service.common import messaging

log = logging.getLogger(__name__)


class DeploymentLog(object):
    """
    Progress log of one deployment. Every line goes both to the local log
    of the worker and to the deployment's channel on the bus.

    Safe to use from several threads; lines logged from a single thread reach
    the bus in the order they were logged.
    """

    def __init__(self, conf, deployment_id):
        self.conf = conf
        self.deployment_id = deployment_id
        self.finished = False

    def __repr__(self):
        return "<DeploymentLog %s>" % self.deployment_id

    def _publish(self, msg):
        if self.finished:
            raise RuntimeError("%r already published its final status" % self)
        messaging.publish_message(msg, self.conf)

    def info(self, text):
        log.info("[%s] %s", self.deployment_id, text)
        self._publish(messaging.LogMessage(self.deployment_id, text))

    def error(self, text):
        log.error("[%s] %s", self.deployment_id, text)
        self._publish(messaging.LogMessage(self.deployment_id, text))

    def finish(self, status, uploaded=0, failed=0):
        """ Publishes the terminal status message and returns the status. """
        msg = messaging.StatusMessage(
            self.deployment_id, status, uploaded=uploaded, failed=failed)
        log.info("[%s] %s (%d uploaded, %d failed)",
                 self.deployment_id, msg.text, uploaded, failed)
        self._publish(msg)
        self.finished = True
        return status

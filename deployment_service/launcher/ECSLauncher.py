# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
import logging

from deployment_service.common.errors import LaunchError
from deployment_service.launcher.base import (
    GenericLauncher, worker_environment, redact_environment)

log = logging.getLogger(__name__)


class ECSLauncher(GenericLauncher):
    """ Runs every build as a one-off ECS task. """

    backend = "ecs"

    def __init__(self, conf, client=None):
        super(ECSLauncher, self).__init__(conf)
        if client is None:
            import boto3
            client = boto3.client(
                "ecs",
                region_name=conf.aws_region,
                aws_access_key_id=conf.aws_access_key_id or None,
                aws_secret_access_key=conf.aws_secret_access_key or None,
            )
        self.client = client

    def __repr__(self):
        return "<ECSLauncher cluster=%s task=%s>" % (
            self.conf.ecs_cluster, self.conf.ecs_task_definition)

    def run_task_params(self, deployment_id, git_url):
        env = worker_environment(self.conf, deployment_id, git_url)
        return {
            "cluster": self.conf.ecs_cluster,
            "taskDefinition": self.conf.ecs_task_definition,
            "launchType": self.conf.ecs_launch_type,
            "count": 1,
            "networkConfiguration": {
                "awsvpcConfiguration": {
                    "subnets": self.conf.ecs_subnets,
                    "securityGroups": self.conf.ecs_security_groups,
                    "assignPublicIp": "ENABLED" if self.conf.ecs_assign_public_ip else "DISABLED",
                },
            },
            "overrides": {
                "containerOverrides": [{
                    "name": self.conf.ecs_container_name,
                    "environment": [
                        {"name": name, "value": value} for name, value in sorted(env.items())
                    ],
                }],
            },
        }

    def launch(self, deployment_id, git_url):
        from botocore.exceptions import BotoCoreError, ClientError

        params = self.run_task_params(deployment_id, git_url)
        log.debug("Running ECS task for %s with environment %r", deployment_id,
                  redact_environment(worker_environment(self.conf, deployment_id, git_url)))
        try:
            response = self.client.run_task(**params)
        except (BotoCoreError, ClientError) as e:
            log.error("ECS refused to run the build task of %s: %s", deployment_id, e)
            raise LaunchError("Failed to launch the build worker: %s" % e)

        failures = response.get("failures") or []
        if failures:
            reasons = ", ".join(
                "%s (%s)" % (f.get("reason"), f.get("arn", "unknown")) for f in failures)
            log.error("ECS could not place the build task of %s: %s", deployment_id, reasons)
            raise LaunchError("Failed to launch the build worker: %s" % reasons)

        tasks = response.get("tasks") or []
        if not tasks:
            raise LaunchError("Failed to launch the build worker: no task was started")

        task_arn = tasks[0].get("taskArn")
        log.info("Launched build task %s for %s", task_arn, deployment_id)
        return task_arn

# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
"""Generic worker launcher functions."""

from abc import ABCMeta, abstractmethod
import logging

from deployment_service.common.config import WORKER_ENV_PREFIX

log = logging.getLogger(__name__)

DEPLOYMENT_ID_ENV = "DEPLOYMENT_ID"
GIT_URL_ENV = "GIT_REPOSITORY_URL"


def worker_environment(conf, deployment_id, git_url):
    """
    Returns the environment injected into a build worker.

    The dispatcher owns the store and bus credentials, the worker only ever
    learns them from this environment.
    """
    env = conf.to_environ()
    env[DEPLOYMENT_ID_ENV] = deployment_id
    env[GIT_URL_ENV] = git_url
    return env


def redact_environment(env):
    """ Returns a copy of a worker environment safe to be logged. """
    secret_keys = (
        WORKER_ENV_PREFIX + "AWS_ACCESS_KEY_ID",
        WORKER_ENV_PREFIX + "AWS_SECRET_ACCESS_KEY",
        WORKER_ENV_PREFIX + "REDIS_URL",
    )
    return {k: ("***" if k in secret_keys and v else v) for k, v in env.items()}


class GenericLauncher(metaclass=ABCMeta):
    """
    External Api for worker launchers

    Example usage:
        launcher = Launcher(conf)
        launcher.launch("bright-green-fox", "https://github.com/user/site.git")

    A launch is a one-way command: it returns as soon as the launcher
    accepted the request, it says nothing about the build itself.
    """

    backend = "generic"

    def __init__(self, conf):
        self.conf = conf

    @abstractmethod
    def launch(self, deployment_id, git_url):
        """
        :param deployment_id: id of the deployment to build
        :param git_url: repository to build

        Starts a build worker and returns an opaque reference of the started
        worker. Raises LaunchError when the launch request is rejected or
        cannot be delivered.
        """
        raise NotImplementedError()


class Launcher(object):
    """Wrapper class"""

    def __new__(cls, conf, **extra):
        """
        :param conf: instance of deployment_service.common.config.Config,
            conf.launcher selects the backend e.g. 'ecs'

        Any additional arguments are optional extras which can be passed along
        and are implementation-dependent.
        """
        # Imported here to avoid an import cycle with the backends
        from deployment_service.launcher.ECSLauncher import ECSLauncher
        from deployment_service.launcher.CeleryLauncher import CeleryLauncher

        if conf.launcher == "ecs":
            return ECSLauncher(conf, **extra)
        elif conf.launcher == "celery":
            return CeleryLauncher(conf, **extra)
        else:
            raise ValueError("Launcher backend='%s' not recognized" % conf.launcher)

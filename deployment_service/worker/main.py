# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
"""The build worker.

Runs once per deployment inside the environment started by the launcher:
clones the repository, builds it, uploads the build output to the artifact
store and exits. Everything it needs to know comes from the environment the
launcher injected.
"""

import logging
import os
import shutil
import sys
import tempfile

from deployment_service.common.config import Config
from deployment_service.common.logger import init_logging
from deployment_service.common.storage import Store
from deployment_service.launcher.base import DEPLOYMENT_ID_ENV, GIT_URL_ENV
from deployment_service.worker.build import run_build
from deployment_service.worker.logs import DeploymentLog
from deployment_service.worker.scm import SCM
from deployment_service.worker.upload import upload_directory

log = logging.getLogger(__name__)


def run_worker(environ=None, store=None):
    """
    Builds and uploads the deployment described by environ.

    :param environ: the injected environment, os.environ when omitted
    :param store: artifact store, built from the environment when omitted
    :returns: str -- "success" or "failure", the status published last
    """
    if environ is None:
        environ = os.environ
    try:
        deployment_id = environ[DEPLOYMENT_ID_ENV]
        git_url = environ[GIT_URL_ENV]
    except KeyError as e:
        raise ValueError("The worker environment lacks %s" % e)

    conf = Config.from_environ(environ)
    deployment_log = DeploymentLog(conf, deployment_id)
    workdir = None
    try:
        if store is None:
            store = Store(conf)
        workdir = tempfile.mkdtemp(prefix="deployment-%s-" % deployment_id)

        deployment_log.info("Cloning %s" % git_url)
        try:
            sourcedir = SCM(git_url).checkout(workdir)
        except RuntimeError as e:
            deployment_log.error("ERROR: failed to clone %s: %s" % (git_url, e))
            return deployment_log.finish("failure")

        deployment_log.info("Creating build...")
        result = run_build(conf, sourcedir, deployment_log)
        deployment_log.info("Build complete")

        output_dir = os.path.join(sourcedir, conf.build_output_dir)
        uploaded, failed = upload_directory(
            conf, store, deployment_id, output_dir, deployment_log)

        if result.succeeded and uploaded and not failed:
            status = "success"
        else:
            status = "failure"
        return deployment_log.finish(status, uploaded=uploaded, failed=failed)
    except Exception as e:
        if deployment_log.finished:
            raise
        log.exception("Deployment %s failed", deployment_id)
        deployment_log.error("ERROR: %s" % e)
        return deployment_log.finish("failure")
    finally:
        if workdir is not None:
            try:
                shutil.rmtree(workdir)
            except OSError as e:
                log.warning("Failed to remove temporary directory {!r}: {}".format(
                    workdir, str(e)))


def main():
    """ Entry point of the build worker container. """
    conf = Config.from_environ(os.environ)
    init_logging(conf)
    status = run_worker(os.environ)
    sys.exit(0 if status == "success" else 1)


if __name__ == "__main__":
    main()

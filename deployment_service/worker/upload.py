# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
""" Uploads the build output of a deployment to the artifact store. """

import logging
import mimetypes
from multiprocessing.dummy import Pool as ThreadPool
import os

from deployment_service.common.errors import StorageError
from deployment_service.common.storage import artifact_key

log = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"


def guess_content_type(path):
    """ Returns the MIME type of a file from its extension. """
    content_type, _ = mimetypes.guess_type(path)
    return content_type or DEFAULT_CONTENT_TYPE


def find_artifacts(output_dir):
    """
    Yields (full path, relative path) of every regular file below
    output_dir, in a stable order. Relative paths use "/" separators.
    """
    for dirpath, dirnames, filenames in os.walk(output_dir):
        dirnames.sort()
        for filename in sorted(filenames):
            full_path = os.path.join(dirpath, filename)
            if not os.path.isfile(full_path):
                continue
            relative_path = os.path.relpath(full_path, output_dir).replace(os.sep, "/")
            yield full_path, relative_path


def _read_file(path):
    with open(path, "rb") as f:
        return f.read()


def upload_artifact(conf, store, deployment_id, full_path, relative_path, deployment_log):
    """
    Uploads one artifact. Failures are reported to deployment_log and never
    raised, so that one bad file does not stop the others.

    :returns: bool -- the artifact was stored
    """
    key = artifact_key(conf, deployment_id, relative_path)
    deployment_log.info("Uploading %s" % relative_path)
    try:
        body = _read_file(full_path)
        store.put(key, body, guess_content_type(full_path))
    except (OSError, StorageError) as e:
        deployment_log.error("ERROR: failed to upload %s: %s" % (relative_path, e))
        return False
    deployment_log.info("Uploaded %s" % relative_path)
    return True


def upload_directory(conf, store, deployment_id, output_dir, deployment_log):
    """
    Uploads every regular file below output_dir, at most
    conf.upload_concurrency at a time.

    :returns: tuple -- (number of uploaded files, number of failed files)
    """
    if not os.path.isdir(output_dir):
        deployment_log.error("ERROR: build output directory %s does not exist" % output_dir)
        return 0, 0

    artifacts = list(find_artifacts(output_dir))
    deployment_log.info("Uploading %d file(s)" % len(artifacts))

    pool = ThreadPool(conf.upload_concurrency)
    try:
        results = pool.map(
            lambda artifact: upload_artifact(
                conf, store, deployment_id, artifact[0], artifact[1], deployment_log),
            artifacts)
    finally:
        pool.close()
        pool.join()

    uploaded = sum(1 for r in results if r)
    failed = len(results) - uploaded
    log.debug("%s: %d uploaded, %d failed", deployment_id, uploaded, failed)
    return uploaded, failed

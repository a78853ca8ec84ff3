# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
"""Artifact store backends.

Artifacts of a deployment are stored under
``<storage prefix>/<deployment id>/<relative path>``.
"""

from abc import ABCMeta, abstractmethod
import logging
import os

from deployment_service.common.errors import StorageError

log = logging.getLogger(__name__)


def artifact_key(conf, deployment_id, relative_path):
    """ Returns the store key of a deployment's artifact. """
    relative_path = relative_path.replace(os.sep, "/").lstrip("/")
    return "/".join(p for p in (conf.storage_prefix, deployment_id, relative_path) if p)


class GenericStore(metaclass=ABCMeta):
    """
    External Api for artifact stores

    Example usage:
        store = Store(conf)
        store.put("__outputs/foo/index.html", b"<html/>", "text/html")
    """

    backend = "generic"

    @abstractmethod
    def put(self, key, body, content_type):
        """
        :param key: store key of the artifact
        :param body: artifact content, bytes
        :param content_type: MIME type served with the artifact

        Stores the artifact. Raises StorageError when the store refuses it.
        """
        raise NotImplementedError()


class Store(object):
    """Wrapper class"""

    def __new__(cls, conf, **extra):
        """
        :param conf: Config instance, conf.storage selects the backend
        :param extra: backend specific keyword arguments
        """
        if conf.storage == "s3":
            return S3Store(conf, **extra)
        elif conf.storage == "local":
            return LocalStore(conf, **extra)
        else:
            raise ValueError("Artifact store backend='%s' not recognized" % conf.storage)


class S3Store(GenericStore):
    """ Stores artifacts as S3 objects. """

    backend = "s3"

    def __init__(self, conf, client=None):
        if not conf.s3_bucket:
            raise ValueError("s3_bucket must be configured for the s3 store")
        self.bucket = conf.s3_bucket
        if client is None:
            import boto3
            client = boto3.client(
                "s3",
                region_name=conf.aws_region,
                aws_access_key_id=conf.aws_access_key_id or None,
                aws_secret_access_key=conf.aws_secret_access_key or None,
            )
        self.client = client

    def __repr__(self):
        return "<S3Store bucket=%s>" % self.bucket

    def put(self, key, body, content_type):
        from botocore.exceptions import BotoCoreError, ClientError

        try:
            self.client.put_object(
                Bucket=self.bucket, Key=key, Body=body, ContentType=content_type)
        except (BotoCoreError, ClientError) as e:
            raise StorageError("Failed to store s3://%s/%s: %s" % (self.bucket, key, e))


class LocalStore(GenericStore):
    """
    Stores artifacts as files below a directory. The directory can be served
    by any static HTTP server for the edge router to proxy to.
    """

    backend = "local"

    def __init__(self, conf):
        self.root = conf.local_storage_dir

    def __repr__(self):
        return "<LocalStore root=%s>" % self.root

    def path(self, key):
        path = os.path.normpath(os.path.join(self.root, key))
        if not path.startswith(os.path.normpath(self.root) + os.sep):
            raise StorageError("Key %r escapes the store root" % key)
        return path

    def put(self, key, body, content_type):
        path = self.path(key)
        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            with open(path, "wb") as f:
                f.write(body)
        except OSError as e:
            raise StorageError("Failed to store %s: %s" % (path, e))
        log.debug("Stored %s (%s)", path, content_type)

# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
from os import environ


class BaseConfiguration(object):
    DEBUG = False
    # Where the dispatcher listens when running "deployment_service run-dispatcher".
    HOST = "0.0.0.0"
    PORT = 9000

    RELAY_HOST = "0.0.0.0"
    RELAY_PORT = 9002

    ROUTER_HOST = "0.0.0.0"
    ROUTER_PORT = 8000

    # Hostnames served by the edge router look like <deployment id>.<BASE_DOMAIN>
    BASE_DOMAIN = "localhost:8000"
    SERVING_SCHEME = "http"

    MESSAGING = "redis"
    REDIS_URL = environ.get("REDIS_URL", "redis://localhost:6379/0")

    LAUNCHER = "ecs"
    AWS_REGION = environ.get("AWS_REGION", "us-east-1")
    AWS_ACCESS_KEY_ID = environ.get("AWS_ACCESS_KEY", "")
    AWS_SECRET_ACCESS_KEY = environ.get("AWS_SECRET_KEY", "")

    STORAGE = "s3"
    S3_BUCKET = environ.get("AWS_S3_BUCKET", "")
    STORAGE_PREFIX = "__outputs"

    BUILD_COMMAND = "npm install && npm run build"
    BUILD_OUTPUT_DIR = "dist"


class TestConfiguration(BaseConfiguration):
    LOG_LEVEL = "debug"
    DEBUG = True
    MESSAGING = "in_memory"
    LAUNCHER = "celery"
    STORAGE = "local"
    LOCAL_STORAGE_DIR = "/tmp/deployment-service-test-store"
    STORE_BASE_URL = "http://store.example.local/__outputs"
    BASE_DOMAIN = "example.local"

    AWS_ACCESS_KEY_ID = "test-access-key"
    AWS_SECRET_ACCESS_KEY = "test-secret-key"
    S3_BUCKET = "test-bucket"

    # Global network-related values, in seconds
    NET_TIMEOUT = 3

    # Ensures send_task is never attempted against a real broker.
    CELERY_BROKER_URL = "memory://"
    CELERY_TASK_ALWAYS_EAGER = True


class ProdConfiguration(BaseConfiguration):
    pass


class LocalBuildConfiguration(BaseConfiguration):
    LOG_LEVEL = "debug"
    MESSAGING = "redis"
    LAUNCHER = "celery"
    STORAGE = "local"
    LOCAL_STORAGE_DIR = "~/deployments/store"
    STORE_BASE_URL = "http://localhost:8080/__outputs"

    CELERY_BROKER_URL = "redis://localhost:6379/1"
    CELERY_RESULT_BACKEND = "redis://localhost:6379/1"


class DevConfiguration(LocalBuildConfiguration):
    DEBUG = True

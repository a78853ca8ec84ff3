# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
"""Configuration handler functions."""

import os
import runpy
import sys

from deployment_service.common import logger


SUPPORTED_MESSAGING = ("redis", "in_memory")
SUPPORTED_LAUNCHERS = ("ecs", "celery")
SUPPORTED_STORAGES = ("s3", "local")
SUPPORTED_OVERFLOW_POLICIES = ("drop_oldest", "disconnect")

# Environment variable prefix used to inject configuration into build workers
WORKER_ENV_PREFIX = "DEPLOYMENT_SERVICE_"

# Configuration items a build worker needs to reach the store and the bus
WORKER_CONFIG_ITEMS = (
    "messaging",
    "redis_url",
    "storage",
    "storage_prefix",
    "local_storage_dir",
    "s3_bucket",
    "aws_region",
    "aws_access_key_id",
    "aws_secret_access_key",
    "build_command",
    "build_output_dir",
    "upload_concurrency",
    "log_level",
)


def init_config():
    """
    Configure the application from the config file found on the system.

    The file is looked up in this order: the path in
    DEPLOYMENT_SERVICE_CONFIG_FILE, /etc/deployment-service/config.py and the
    conf/config.py of a git checkout. The section (configuration class) is
    taken from DEPLOYMENT_SERVICE_CONFIG_SECTION when set.
    """
    config_file = os.environ.get("DEPLOYMENT_SERVICE_CONFIG_FILE")
    config_section = os.environ.get("DEPLOYMENT_SERVICE_CONFIG_SECTION")
    checkout_file = os.path.join(
        os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))),
        "conf", "config.py")

    if not config_file:
        if os.path.exists("/etc/deployment-service/config.py"):
            config_file = "/etc/deployment-service/config.py"
        elif os.path.exists(checkout_file):
            config_file = checkout_file

    if not config_section:
        # Running under pytest forces the test configuration
        if any("py.test" in arg or "pytest" in arg for arg in sys.argv):
            config_section = "TestConfiguration"
        elif config_file == checkout_file:
            config_section = "DevConfiguration"
        else:
            config_section = "ProdConfiguration"

    conf = Config()
    if not config_file:
        return conf, config_section

    config_module = runpy.run_path(config_file)
    try:
        section = config_module[config_section]
    except KeyError:
        raise ValueError(
            "Configuration section %r not found in %s" % (config_section, config_file))
    conf.load_section(section)
    return conf, config_section


class Config(object):
    """Class representing the deployment service configuration."""
    _defaults = {
        "debug": {
            "type": bool,
            "default": False,
            "desc": "Debug mode"},
        "host": {
            "type": str,
            "default": "0.0.0.0",
            "desc": "Dispatcher listen address."},
        "port": {
            "type": int,
            "default": 9000,
            "desc": "Dispatcher listen port."},
        "relay_host": {
            "type": str,
            "default": "0.0.0.0",
            "desc": "Log relay listen address."},
        "relay_port": {
            "type": int,
            "default": 9002,
            "desc": "Log relay listen port."},
        "relay_queue_size": {
            "type": int,
            "default": 1000,
            "desc": "Maximum number of undelivered messages kept per viewer."},
        "relay_overflow": {
            "type": str,
            "default": "drop_oldest",
            "desc": "What to do with a viewer whose queue is full: "
                    "drop_oldest or disconnect."},
        "router_host": {
            "type": str,
            "default": "0.0.0.0",
            "desc": "Edge router listen address."},
        "router_port": {
            "type": int,
            "default": 8000,
            "desc": "Edge router listen port."},
        "router_powered_by": {
            "type": str,
            "default": "deployment-service",
            "desc": "Value of the X-Powered-By header set on proxied responses."},
        "base_domain": {
            "type": str,
            "default": "localhost:8000",
            "desc": "Domain under which deployments are served."},
        "serving_scheme": {
            "type": str,
            "default": "http",
            "desc": "URL scheme of the predicted serving address."},
        "net_timeout": {
            "type": int,
            "default": 30,
            "desc": "Timeout of outbound HTTP requests, in seconds."},
        "messaging": {
            "type": str,
            "default": "redis",
            "desc": "The messaging system to use."},
        "redis_url": {
            "type": str,
            "default": "redis://localhost:6379/0",
            "desc": "Redis URL used by the redis messaging backend."},
        "launcher": {
            "type": str,
            "default": "ecs",
            "desc": "The worker launcher to use."},
        "aws_region": {
            "type": str,
            "default": "us-east-1",
            "desc": "AWS region."},
        "aws_access_key_id": {
            "type": str,
            "default": "",
            "desc": "AWS access key."},
        "aws_secret_access_key": {
            "type": str,
            "default": "",
            "desc": "AWS secret key."},
        "ecs_cluster": {
            "type": str,
            "default": "builder-cluster",
            "desc": "ECS cluster the build tasks run in."},
        "ecs_task_definition": {
            "type": str,
            "default": "builder-task",
            "desc": "ECS task definition of the build worker."},
        "ecs_container_name": {
            "type": str,
            "default": "builder-image",
            "desc": "Name of the build worker container in the task definition."},
        "ecs_launch_type": {
            "type": str,
            "default": "FARGATE",
            "desc": "ECS launch type."},
        "ecs_subnets": {
            "type": list,
            "default": [],
            "desc": "Subnets the build tasks are attached to."},
        "ecs_security_groups": {
            "type": list,
            "default": [],
            "desc": "Security groups of the build tasks."},
        "ecs_assign_public_ip": {
            "type": bool,
            "default": True,
            "desc": "Whether the build tasks get a public IP."},
        "celery_task_name": {
            "type": str,
            "default": "deployment_service.worker.build",
            "desc": "Name of the Celery task running a build."},
        "storage": {
            "type": str,
            "default": "s3",
            "desc": "The artifact store to use."},
        "s3_bucket": {
            "type": str,
            "default": "",
            "desc": "S3 bucket of the artifact store."},
        "storage_prefix": {
            "type": str,
            "default": "__outputs",
            "desc": "Key prefix of all artifacts."},
        "local_storage_dir": {
            "type": str,
            "default": "/var/lib/deployment-service/store",
            "desc": "Directory of the local artifact store."},
        "store_base_url": {
            "type": str,
            "default": "",
            "desc": "HTTP base URL the edge router proxies to. Derived from "
                    "s3_bucket and storage_prefix when empty."},
        "build_command": {
            "type": str,
            "default": "npm install && npm run build",
            "desc": "Shell command building the checked out project."},
        "build_output_dir": {
            "type": str,
            "default": "dist",
            "desc": "Build output directory, relative to the checkout."},
        "upload_concurrency": {
            "type": int,
            "default": 4,
            "desc": "Number of artifacts uploaded in parallel."},
        "log_backend": {
            "type": str,
            "default": None,
            "desc": "Log backend"},
        "log_file": {
            "type": str,
            "default": "",
            "desc": "Path to log file"},
        "log_level": {
            "type": str,
            "default": 0,
            "desc": "Log level"},
    }

    def __init__(self):
        """Initialize the Config object with defaults."""

        for name, values in self._defaults.items():
            self.set_item(name, values["default"])

    def load_section(self, section):
        """ Load the upper-case attributes of a configuration class. """
        for key in dir(section):
            if not key.isupper():
                continue
            self.set_item(key.lower(), getattr(section, key))

    @classmethod
    def from_environ(cls, environ=None):
        """
        Create the configuration of a build worker from the variables the
        launcher injected into its environment.
        """
        if environ is None:
            environ = os.environ
        conf = cls()
        for key in WORKER_CONFIG_ITEMS:
            env_key = WORKER_ENV_PREFIX + key.upper()
            if env_key in environ:
                conf.set_item(key, environ[env_key])
        return conf

    def to_environ(self, keys=WORKER_CONFIG_ITEMS):
        """ Serialize configuration items so that from_environ can read them. """
        return {
            WORKER_ENV_PREFIX + key.upper(): str(getattr(self, key))
            for key in keys
        }

    def set_item(self, key, value):
        if key in ("set_item", "load_section", "from_environ", "to_environ") \
                or key.startswith("_"):
            raise Exception("Configuration item's name is not allowed: %s" % key)

        # customized check & set if there's a corresponding handler
        setifok_func = "_setifok_{}".format(key)
        if hasattr(self, setifok_func):
            getattr(self, setifok_func)(value)
            return

        # passthrough for unmanaged configuration items
        if key not in self._defaults:
            setattr(self, key, value)
            return

        # type conversion for configuration item
        convert = self._defaults[key]["type"]
        if convert is bool and isinstance(value, str):
            setattr(self, key, value.lower() in ("y", "yes", "t", "true", "1", "on"))
        elif convert in [bool, int, list, str]:
            try:
                setattr(self, key, convert(value))
            except (TypeError, ValueError):
                raise TypeError("Configuration value conversion failed for name: %s" % key)
        # if type is None, do not perform any conversion
        elif convert is None:
            setattr(self, key, value)
        # unknown type/unsupported conversion
        else:
            raise TypeError("Unsupported type %s for configuration item name: %s" % (convert, key))

    def _setifok_messaging(self, s):
        s = str(s)
        if s not in SUPPORTED_MESSAGING:
            raise ValueError("Unsupported messaging system: %s." % s)
        self.messaging = s

    def _setifok_launcher(self, s):
        s = str(s)
        if s not in SUPPORTED_LAUNCHERS:
            raise ValueError("Unsupported worker launcher: %s." % s)
        self.launcher = s

    def _setifok_storage(self, s):
        s = str(s)
        if s not in SUPPORTED_STORAGES:
            raise ValueError("Unsupported artifact store: %s." % s)
        self.storage = s

    def _setifok_relay_overflow(self, s):
        s = str(s)
        if s not in SUPPORTED_OVERFLOW_POLICIES:
            raise ValueError("Unsupported relay overflow policy: %s." % s)
        self.relay_overflow = s

    def _setifok_relay_queue_size(self, i):
        i = int(i)
        if i < 1:
            raise ValueError("relay_queue_size must be >= 1")
        self.relay_queue_size = i

    def _setifok_upload_concurrency(self, i):
        i = int(i)
        if i < 1:
            raise ValueError("upload_concurrency must be >= 1")
        self.upload_concurrency = i

    def _setifok_storage_prefix(self, s):
        self.storage_prefix = str(s).strip("/")

    def _setifok_store_base_url(self, s):
        self.store_base_url = str(s).rstrip("/")

    def _setifok_local_storage_dir(self, s):
        self.local_storage_dir = os.path.expanduser(str(s))

    def _setifok_ecs_subnets(self, l):
        if isinstance(l, str):
            l = [x for x in l.split(",") if x]
        if not isinstance(l, (list, tuple)):
            raise TypeError("ecs_subnets needs to be a list.")
        self.ecs_subnets = [str(x) for x in l]

    def _setifok_ecs_security_groups(self, l):
        if isinstance(l, str):
            l = [x for x in l.split(",") if x]
        if not isinstance(l, (list, tuple)):
            raise TypeError("ecs_security_groups needs to be a list.")
        self.ecs_security_groups = [str(x) for x in l]

    def _setifok_log_backend(self, s):
        if s is None:
            self.log_backend = "console"
        elif s not in logger.supported_log_backends():
            raise ValueError("Unsupported log backend")
        else:
            self.log_backend = str(s)

    def _setifok_log_file(self, s):
        if s is None:
            self.log_file = ""
        else:
            self.log_file = str(s)

    def _setifok_log_level(self, s):
        level = str(s).lower()
        self.log_level = logger.str_to_log_level(level)

    @property
    def artifact_base_url(self):
        """ The HTTP location the edge router resolves deployments against. """
        if self.store_base_url:
            return self.store_base_url
        return "https://%s.s3.amazonaws.com/%s" % (self.s3_bucket, self.storage_prefix)

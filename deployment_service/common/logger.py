# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
"""
Logging functions.

At the beginning of the service, call init_logging(conf) to initialize
logging from the configuration. Every module then uses its own logger:

    import logging
    log = logging.getLogger(__name__)
    log.info("Uploaded %s", key)

The log level and the log backend (console or file) are taken from the
LOG_LEVEL, LOG_BACKEND and LOG_FILE configuration items.
"""

import logging


levels = {
    "debug": logging.DEBUG,
    "error": logging.ERROR,
    "warning": logging.WARNING,
    "info": logging.INFO,
}

level_flags = {
    "debug": levels["debug"],
    "verbose": levels["info"],
    "quiet": levels["error"],
}

log_format = "%(asctime)s - %(threadName)s - %(name)s - %(levelname)s - %(message)s"


def str_to_log_level(level):
    """
    Returns internal representation of logging level defined
    by the string `level`.

    Available levels are: debug, info, warning, error. Numeric levels, as
    produced by serializing an already converted value, are accepted too.
    """
    level = str(level).strip().lower()
    if level.isdigit():
        return int(level)
    if level not in levels:
        return logging.NOTSET

    return levels[level]


def supported_log_backends():
    return ("console", "file")


def init_logging(conf):
    """
    Initializes logging according to configuration file.
    """
    log_backend = conf.log_backend

    if not log_backend or len(log_backend) == 0 or log_backend == "console":
        logging.basicConfig(level=conf.log_level, format=log_format)
        log = logging.getLogger()
        log.setLevel(conf.log_level)
    else:
        logging.basicConfig(filename=conf.log_file, level=conf.log_level, format=log_format)
        log = logging.getLogger()
        log.setLevel(conf.log_level)

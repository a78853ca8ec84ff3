# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
""" Defines custom exceptions and error handling functions """

from flask import jsonify


class ValidationError(ValueError):
    pass


class LaunchError(RuntimeError):
    """Raised when the worker launcher rejects or cannot receive a launch request"""


class ProxyError(RuntimeError):
    """Raised when the artifact store cannot be reached by the edge router"""


class ProxyTimeout(ProxyError):
    pass


class StorageError(RuntimeError):
    pass


def json_error(status, error, message):
    response = jsonify({"status": status, "error": error, "message": message})
    response.status_code = status
    return response


class IgnoreMessage(Exception):
    """Raise if message received from message bus should be ignored"""

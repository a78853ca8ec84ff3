# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
import copy
import json
import os
import queue
import threading

os.environ.setdefault("DEPLOYMENT_SERVICE_CONFIG_SECTION", "TestConfiguration")

from deployment_service import conf as _conf  # noqa: E402
from deployment_service.common import messaging  # noqa: E402


def make_conf(**items):
    """ Returns a copy of the test configuration with items overridden. """
    conf = copy.deepcopy(_conf)
    for key, value in items.items():
        conf.set_item(key, value)
    return conf


def drain_bus(q):
    """ Returns the decoded bodies waiting in a bus subscription queue. """
    bodies = []
    while True:
        try:
            channel, body = q.get_nowait()
        except queue.Empty:
            return bodies
        bodies.append(json.loads(body))


def subscribe_logs():
    return messaging.in_memory_bus.subscribe(messaging.LOG_CHANNEL_PATTERN)


class Collector(object):
    """ A thread safe send() callable recording what it was given. """

    def __init__(self):
        self.items = []
        self.cond = threading.Condition()

    def __call__(self, item):
        with self.cond:
            self.items.append(item)
            self.cond.notify_all()

    def wait_for(self, count, timeout=5):
        with self.cond:
            return self.cond.wait_for(lambda: len(self.items) >= count, timeout)

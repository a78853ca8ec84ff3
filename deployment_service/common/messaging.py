# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
"""Generic messaging functions.

Build logs travel over the bus on one channel per deployment, named
``logs:<deployment id>``. Workers publish to their own channel and the log
relay consumes the whole family through a single pattern subscription.
"""

import fnmatch
import json
import logging
import queue
import threading
from datetime import datetime, timezone

from deployment_service.common.errors import IgnoreMessage

log = logging.getLogger(__name__)

LOG_CHANNEL_PREFIX = "logs:"
LOG_CHANNEL_PATTERN = LOG_CHANNEL_PREFIX + "*"

# Seconds a listener waits for a message before checking its stop event
LISTEN_POLL_INTERVAL = 1.0


def log_channel(deployment_id):
    """ Returns the bus channel carrying the logs of a deployment. """
    return LOG_CHANNEL_PREFIX + deployment_id


def deployment_id_from_channel(channel):
    """
    Returns the deployment id addressed by a log channel.

    :raises IgnoreMessage: the channel is not a deployment log channel
    """
    if not channel.startswith(LOG_CHANNEL_PREFIX) or len(channel) == len(LOG_CHANNEL_PREFIX):
        raise IgnoreMessage("Channel %r is not a deployment log channel" % channel)
    return channel[len(LOG_CHANNEL_PREFIX):]


class BaseMessage(object):
    """
    A message published on the log channel of a deployment.

    :param deployment_id: the id of the deployment the message is about
    :param text: human readable content
    :param timestamp: datetime of the message, now when omitted
    """

    type = None

    def __init__(self, deployment_id, text, timestamp=None):
        self.deployment_id = deployment_id
        self.text = text
        self.timestamp = timestamp or datetime.now(timezone.utc)

    @property
    def channel(self):
        return log_channel(self.deployment_id)

    def json(self):
        return {
            "deployment_id": self.deployment_id,
            "type": self.type,
            "text": self.text,
            "timestamp": self.timestamp.strftime("%Y-%m-%dT%H:%M:%S.%fZ"),
        }

    def dumps(self):
        return json.dumps(self.json())

    def __repr__(self):
        return "<%s %s %r>" % (self.__class__.__name__, self.deployment_id, self.text)


class LogMessage(BaseMessage):
    """ One line of build or upload progress. """

    type = "log"


class StatusMessage(BaseMessage):
    """
    The terminal message of a worker run, published after every other
    message of the run.

    :param status: "success" or "failure"
    :param uploaded: number of artifacts stored
    :param failed: number of artifacts that could not be stored
    """

    type = "status"
    states = ("success", "failure")

    def __init__(self, deployment_id, status, text=None, uploaded=0, failed=0, timestamp=None):
        if status not in self.states:
            raise ValueError("Unknown build status %r" % status)
        super(StatusMessage, self).__init__(
            deployment_id, text or "Build finished: %s" % status, timestamp)
        self.status = status
        self.uploaded = uploaded
        self.failed = failed

    def json(self):
        rv = super(StatusMessage, self).json()
        rv.update({
            "status": self.status,
            "uploaded": self.uploaded,
            "failed": self.failed,
        })
        return rv


def publish(channel, body, conf):
    """ Publish a single message to the configured backend, and return. """
    try:
        handler = _messaging_backends[conf.messaging]["publish"]
    except KeyError:
        raise KeyError("No messaging backend found for %r" % conf.messaging)
    return handler(channel, body, conf)


def publish_message(msg, conf):
    """ Publish a BaseMessage on its deployment's log channel. """
    return publish(msg.channel, msg.dumps(), conf)


def listen(conf, pattern=LOG_CHANNEL_PATTERN, stop_event=None):
    """ Subscribe to the configured messaging backend.

    The subscription is in place when this function returns, so nothing
    published afterwards is missed. Returns an iterator of (channel, body)
    tuples for channels matching ``pattern``, in the order they were
    published. The iterator ends once ``stop_event`` is set.
    """
    try:
        handler = _messaging_backends[conf.messaging]["listen"]
    except KeyError:
        raise KeyError("No messaging backend found for %r" % conf.messaging)

    if stop_event is None:
        stop_event = threading.Event()

    return handler(conf, pattern, stop_event)


_redis_clients = {}
_redis_clients_lock = threading.Lock()


def _get_redis_client(conf):
    import redis

    with _redis_clients_lock:
        client = _redis_clients.get(conf.redis_url)
        if client is None:
            client = redis.Redis.from_url(conf.redis_url, decode_responses=True)
            _redis_clients[conf.redis_url] = client
        return client


def _redis_publish(channel, body, conf):
    client = _get_redis_client(conf)
    return client.publish(channel, body)


def _redis_listen(conf, pattern, stop_event):
    client = _get_redis_client(conf)
    pubsub = client.pubsub(ignore_subscribe_messages=True)
    pubsub.psubscribe(pattern)
    log.info("Subscribed to %r on %s", pattern, conf.redis_url)

    def consume():
        try:
            while not stop_event.is_set():
                msg = pubsub.get_message(timeout=LISTEN_POLL_INTERVAL)
                if msg is None or msg["type"] != "pmessage":
                    continue
                yield msg["channel"], msg["data"]
        finally:
            pubsub.close()

    return consume()


class InMemoryBus(object):
    """
    A process-local bus with pattern subscriptions, used by the tests and by
    setups where the workers and the relay share one process.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._subscribers = []

    def subscribe(self, pattern):
        q = queue.Queue()
        with self._lock:
            self._subscribers.append((pattern, q))
        return q

    def unsubscribe(self, q):
        with self._lock:
            self._subscribers = [(p, s) for p, s in self._subscribers if s is not q]

    def publish(self, channel, body):
        receivers = 0
        with self._lock:
            for pattern, q in self._subscribers:
                if fnmatch.fnmatchcase(channel, pattern):
                    q.put((channel, body))
                    receivers += 1
        return receivers

    def reset(self):
        with self._lock:
            self._subscribers = []


in_memory_bus = InMemoryBus()


def _in_memory_publish(channel, body, conf):
    return in_memory_bus.publish(channel, body)


def _in_memory_listen(conf, pattern, stop_event):
    q = in_memory_bus.subscribe(pattern)

    def consume():
        try:
            while not stop_event.is_set():
                try:
                    yield q.get(timeout=LISTEN_POLL_INTERVAL)
                except queue.Empty:
                    continue
        finally:
            in_memory_bus.unsubscribe(q)

    return consume()


_messaging_backends = {
    "redis": {
        "publish": _redis_publish,
        "listen": _redis_listen,
    },
    "in_memory": {
        "publish": _in_memory_publish,
        "listen": _in_memory_listen,
    },
}

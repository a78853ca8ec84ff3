# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
"""Fan-out of build logs from the bus to live viewers.

One LogRelay per process holds the single pattern subscription to every
deployment log channel. Each viewer is a ClientConnection with its own
bounded queue and sender thread, so a slow viewer only ever delays itself.
"""

import json
import logging
import queue
import threading

from deployment_service.common import messaging
from deployment_service.common.errors import IgnoreMessage, ValidationError

log = logging.getLogger(__name__)


class STOP_WORK(object):
    """ A sentinel value, indicating that work should be stopped. """
    pass


def format_event(event, data):
    """ Serializes an event sent to a viewer. """
    return json.dumps({"event": event, "data": data})


def parse_event(raw):
    """
    Parses an event received from a viewer, e.g.
    ``{"event": "join", "data": "quiet-amber-otter"}``.

    :returns: tuple -- (event name, deployment id)
    :raises ValidationError: the event is malformed
    """
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError:
            raise ValidationError("Events must be UTF-8 encoded JSON")
    try:
        event = json.loads(raw)
    except ValueError:
        raise ValidationError("Events must be JSON objects")
    if not isinstance(event, dict):
        raise ValidationError("Events must be JSON objects")

    name = event.get("event")
    if name not in ("join", "leave"):
        raise ValidationError("Unknown event %r" % (name,))
    deployment_id = event.get("data")
    if not isinstance(deployment_id, str) or not deployment_id:
        raise ValidationError("%s needs a deployment id" % name)
    return name, deployment_id


class ClientConnection(object):
    """
    A live viewer.

    :param send: callable delivering one serialized event to the viewer
    :param maxsize: the most undelivered events kept for the viewer
    :param overflow: "drop_oldest" discards the oldest undelivered event when
        the queue is full, "disconnect" closes the viewer instead
    :param on_close: called once when the connection closes itself
    """

    def __init__(self, send, maxsize=1000, overflow="drop_oldest", on_close=None, name=None):
        self.send = send
        self.overflow = overflow
        self.on_close = on_close
        self.name = name or "client-%x" % id(self)
        self.joined = set()
        self.dropped = 0
        self.closed = False
        self._queue = queue.Queue(maxsize=maxsize)
        self._lock = threading.Lock()
        self._thread = None

    def __repr__(self):
        return "<ClientConnection %s joined=%r>" % (self.name, sorted(self.joined))

    def put(self, message):
        """ Queues an event for the viewer without ever blocking. """
        with self._lock:
            if self.closed:
                return False
            try:
                self._queue.put_nowait(message)
                return True
            except queue.Full:
                pass

            if self.overflow != "disconnect":
                try:
                    self._queue.get_nowait()
                except queue.Empty:
                    pass
                self.dropped += 1
                self._queue.put_nowait(message)
                return True

            log.warning("%r is not keeping up, disconnecting it", self)
            self._close()
        self._notify_closed()
        return False

    def emit_logs(self, message):
        return self.put(format_event("logs", message))

    def emit_error(self, message):
        return self.put(format_event("error", message))

    def drain(self):
        """
        Sends every queued event on the calling thread, for connections whose
        sender thread is not started. Returns the number of events sent.
        """
        sent = 0
        while True:
            try:
                message = self._queue.get_nowait()
            except queue.Empty:
                return sent
            if message is STOP_WORK:
                return sent
            self.send(message)
            sent += 1

    def run(self):
        """ Sender loop, delivers queued events until the connection closes. """
        while True:
            message = self._queue.get()
            if message is STOP_WORK:
                break
            try:
                self.send(message)
            except Exception:
                log.info("Delivery to %r failed, closing it", self, exc_info=True)
                self.close()
                break

    def start(self):
        self._thread = threading.Thread(target=self.run, name="relay-%s" % self.name, daemon=True)
        self._thread.start()

    def _close(self):
        # Caller holds self._lock and checked self.closed
        self.closed = True
        # Make room for the sentinel so the sender loop always wakes up
        while True:
            try:
                self._queue.put_nowait(STOP_WORK)
                break
            except queue.Full:
                try:
                    self._queue.get_nowait()
                except queue.Empty:
                    pass

    def _notify_closed(self):
        # Never called with self._lock held, on_close may take other locks
        if self.on_close is not None:
            self.on_close(self)

    def close(self):
        with self._lock:
            if self.closed:
                return
            self._close()
        self._notify_closed()

    def join_thread(self, timeout=None):
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout)


class LogRelay(object):
    """
    Bridges the bus to the viewers.

    Construct once per process, start() it, register viewers with join()
    and stop() it on shutdown.

    :param on_failure: called without arguments when the bus subscription
        breaks; every viewer is closed by then and no message will be
        delivered any more
    """

    def __init__(self, conf, on_failure=None):
        self.conf = conf
        self.on_failure = on_failure
        self.failed = False
        self._subscriptions = {}
        self._connections = set()
        # Reentrant, a viewer disconnected by dispatch() forgets itself
        self._lock = threading.RLock()
        self._stop_event = threading.Event()
        self._thread = None

    def __repr__(self):
        return "<LogRelay %d viewers, %d deployments>" % (
            len(self._connections), len(self._subscriptions))

    def connect(self, send, on_close=None, name=None):
        """
        Registers a new viewer and starts its sender thread. The viewer is
        forgotten as soon as its connection closes.
        """

        def closed(connection):
            self._forget(connection)
            if on_close is not None:
                on_close(connection)

        connection = ClientConnection(
            send, maxsize=self.conf.relay_queue_size, overflow=self.conf.relay_overflow,
            on_close=closed, name=name)
        with self._lock:
            self._connections.add(connection)
        connection.start()
        return connection

    def join(self, connection, deployment_id):
        """
        Subscribes a viewer to a deployment, leaving the one it followed so
        far. The "Joined" acknowledgement is queued before any later message
        of that deployment.
        """
        with self._lock:
            if connection.closed:
                return
            self._connections.add(connection)
            for previous in list(connection.joined):
                self._unsubscribe(connection, previous)
            self._subscriptions.setdefault(deployment_id, set()).add(connection)
            connection.joined.add(deployment_id)
            connection.emit_logs("Joined %s" % deployment_id)
        log.info("[Channel] %r joined %s", connection, deployment_id)

    def leave(self, connection, deployment_id):
        with self._lock:
            self._unsubscribe(connection, deployment_id)
        log.info("[Channel] %r left %s", connection, deployment_id)

    def disconnect(self, connection):
        """ Forgets a viewer and closes its connection. """
        self._forget(connection)
        connection.close()

    def _forget(self, connection):
        with self._lock:
            for deployment_id in list(connection.joined):
                self._unsubscribe(connection, deployment_id)
            self._connections.discard(connection)

    def _unsubscribe(self, connection, deployment_id):
        # Caller holds self._lock
        connection.joined.discard(deployment_id)
        viewers = self._subscriptions.get(deployment_id)
        if viewers is None:
            return
        viewers.discard(connection)
        if not viewers:
            del self._subscriptions[deployment_id]

    def viewers(self, deployment_id):
        with self._lock:
            return set(self._subscriptions.get(deployment_id, ()))

    def dispatch(self, channel, body):
        """
        Forwards a bus message to every viewer joined to the channel's
        deployment. Returns the number of viewers it was queued for.
        """
        try:
            deployment_id = messaging.deployment_id_from_channel(channel)
        except IgnoreMessage as e:
            log.debug(str(e))
            return 0

        log.debug("[pmessage] %s", channel)
        delivered = 0
        with self._lock:
            for connection in list(self._subscriptions.get(deployment_id, ())):
                if connection.emit_logs(body):
                    delivered += 1
        return delivered

    def listen(self, events):
        """
        Dispatches (channel, body) tuples until they run out. When the bus
        itself fails, every viewer is closed and on_failure is called.
        """
        try:
            for channel, body in events:
                try:
                    self.dispatch(channel, body)
                except Exception:
                    log.exception("Failed while dispatching a message of %r", channel)
        except Exception:
            log.exception("Lost the subscription to %s", messaging.LOG_CHANNEL_PATTERN)
            self.failed = True
            self._close_all(timeout=5)
            if self.on_failure is not None:
                self.on_failure()

    def start(self):
        """ Subscribes to every log channel and starts dispatching. """
        if self._thread is not None:
            raise RuntimeError("%r is already started" % self)
        self._stop_event.clear()
        events = messaging.listen(
            self.conf, pattern=messaging.LOG_CHANNEL_PATTERN, stop_event=self._stop_event)
        self._thread = threading.Thread(
            target=self.listen, args=(events,), name="relay-ingest", daemon=True)
        self._thread.start()
        log.info("Log relay subscribed to %s", messaging.LOG_CHANNEL_PATTERN)

    def _close_all(self, timeout=None):
        with self._lock:
            connections = list(self._connections)
            self._connections.clear()
            self._subscriptions.clear()
        for connection in connections:
            connection.close()
        for connection in connections:
            connection.join_thread(timeout)

    def stop(self, timeout=None):
        """ Stops the subscription and closes every viewer. """
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        self._close_all(timeout)
        log.info("Log relay stopped")

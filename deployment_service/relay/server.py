# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
""" WebSocket front-end of the log relay. """

import logging
import signal
import threading

from websockets.exceptions import ConnectionClosed
from websockets.sync.server import serve

from deployment_service.common.errors import ValidationError
from deployment_service.relay.relay import LogRelay, parse_event

log = logging.getLogger(__name__)


def handle_event(relay, connection, raw):
    """ Applies one event received from a viewer. Malformed events are
    answered with an error event to that viewer only. """
    try:
        name, deployment_id = parse_event(raw)
    except ValidationError as e:
        log.debug("Rejected event from %r: %s", connection, e)
        connection.emit_error(str(e))
        return
    if name == "join":
        relay.join(connection, deployment_id)
    else:
        relay.leave(connection, deployment_id)


def make_handler(relay):
    """ Returns the websockets connection handler bound to relay. """

    def close_websocket(websocket):
        # Called while the relay holds its locks, the close handshake must not block it
        threading.Thread(target=websocket.close, daemon=True).start()

    def handler(websocket):
        peer = websocket.remote_address
        connection = relay.connect(
            websocket.send,
            on_close=lambda c: close_websocket(websocket),
            name="%s:%s" % tuple(peer[:2]) if peer else None)
        log.info("Viewer %r connected", connection)
        try:
            for raw in websocket:
                handle_event(relay, connection, raw)
        except ConnectionClosed:
            pass
        finally:
            relay.disconnect(connection)
            log.info("Viewer %r disconnected", connection)

    return handler


def run(conf):
    """
    Runs the log relay until SIGINT or SIGTERM.

    :raises RuntimeError: the relay lost its bus subscription
    """

    def stop_serving():
        # shutdown() waits for serve_forever() to return
        threading.Thread(target=server.shutdown, daemon=True).start()

    def bus_failed():
        log.error("The message bus failed, shutting down the log relay")
        stop_serving()

    relay = LogRelay(conf, on_failure=bus_failed)
    server = serve(make_handler(relay), conf.relay_host, conf.relay_port)

    def shutdown(signum, frame):
        log.info("Received signal %d, shutting down the log relay", signum)
        stop_serving()

    if threading.current_thread() is threading.main_thread():
        signal.signal(signal.SIGINT, shutdown)
        signal.signal(signal.SIGTERM, shutdown)

    relay.start()
    log.info("Log relay listening on ws://%s:%s", conf.relay_host, conf.relay_port)
    try:
        server.serve_forever()
    finally:
        relay.stop(timeout=5)
    if relay.failed:
        raise RuntimeError("The log relay lost its message bus subscription")

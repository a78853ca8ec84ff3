# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
import json
import threading

import mock
import pytest
from websockets.sync.client import connect
from websockets.sync.server import serve

from deployment_service.common import messaging
from deployment_service.relay.relay import LogRelay
from deployment_service.relay.server import handle_event, make_handler, run

from tests import make_conf


class TestHandleEvent:

    def setup_method(self, test_method):
        self.relay = mock.MagicMock()
        self.connection = mock.MagicMock()

    def test_join(self):
        handle_event(self.relay, self.connection, '{"event": "join", "data": "foo"}')
        self.relay.join.assert_called_once_with(self.connection, "foo")

    def test_leave(self):
        handle_event(self.relay, self.connection, '{"event": "leave", "data": "foo"}')
        self.relay.leave.assert_called_once_with(self.connection, "foo")

    def test_malformed(self):
        handle_event(self.relay, self.connection, "subscribe foo")
        self.connection.emit_error.assert_called_once()
        self.relay.join.assert_not_called()
        self.relay.leave.assert_not_called()


class TestRelayServer:

    def setup_method(self, test_method):
        self.conf = make_conf(messaging="in_memory")
        self.relay = LogRelay(self.conf)
        self.relay.start()
        self.server = serve(make_handler(self.relay), "127.0.0.1", 0)
        self.port = self.server.socket.getsockname()[1]
        self.thread = threading.Thread(target=self.server.serve_forever, daemon=True)
        self.thread.start()

    def teardown_method(self, test_method):
        self.server.shutdown()
        self.thread.join(5)
        self.relay.stop(timeout=5)

    def receive(self, websocket):
        return json.loads(websocket.recv(timeout=5))

    def test_join_and_receive_logs(self, quick_listen):
        with connect("ws://127.0.0.1:%d" % self.port) as websocket:
            websocket.send(json.dumps({"event": "join", "data": "foo"}))
            assert self.receive(websocket) == {"event": "logs", "data": "Joined foo"}

            messaging.publish(messaging.log_channel("bar"), "not for us", self.conf)
            messaging.publish(messaging.log_channel("foo"), "Build complete", self.conf)
            assert self.receive(websocket) == {"event": "logs", "data": "Build complete"}

    def test_malformed_event_only_affects_sender(self, quick_listen):
        with connect("ws://127.0.0.1:%d" % self.port) as good, \
                connect("ws://127.0.0.1:%d" % self.port) as bad:
            good.send(json.dumps({"event": "join", "data": "foo"}))
            assert self.receive(good)["data"] == "Joined foo"

            bad.send("this is not json")
            assert self.receive(bad)["event"] == "error"

            messaging.publish(messaging.log_channel("foo"), "still flowing", self.conf)
            assert self.receive(good) == {"event": "logs", "data": "still flowing"}


class TestRun:

    @mock.patch("deployment_service.relay.server.signal")
    @mock.patch("deployment_service.relay.server.serve")
    @mock.patch("deployment_service.relay.server.LogRelay")
    def test_bus_failure_fails_the_process(self, LogRelay, serve, signal):
        LogRelay.return_value.failed = True
        with pytest.raises(RuntimeError):
            run(make_conf())
        serve.return_value.serve_forever.assert_called_once_with()
        LogRelay.return_value.stop.assert_called_once_with(timeout=5)

    @mock.patch("deployment_service.relay.server.signal")
    @mock.patch("deployment_service.relay.server.serve")
    @mock.patch("deployment_service.relay.server.LogRelay")
    def test_bus_failure_stops_serving(self, LogRelay, serve, signal):
        LogRelay.return_value.failed = False
        shut_down = threading.Event()
        serve.return_value.shutdown.side_effect = shut_down.set
        run(make_conf())

        on_failure = LogRelay.call_args[1]["on_failure"]
        on_failure()
        assert shut_down.wait(5)

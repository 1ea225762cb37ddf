import json

import pytest

from clawbridge.bridge.connection import Backoff, GatewayConnection, build_connect_request
from clawbridge.bridge.models import ConnectionState


class FakeApp:
    def __init__(self, url, **callbacks):
        self.url = url
        self.callbacks = callbacks
        self.sent = []
        self.closed = False

    def send(self, data):
        self.sent.append(json.loads(data))

    def close(self):
        self.closed = True

    def run_forever(self, **kwargs):
        pass


class FakeThread:
    def __init__(self, target=None, args=(), name=None, daemon=None):
        self.target = target
        self.args = args
        self.started = False

    def start(self):
        self.started = True


class FakeTimer:
    def __init__(self, interval, function):
        self.interval = interval
        self.function = function
        self.daemon = False
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        self.function()


class Harness:
    def __init__(self):
        self.apps = []
        self.timers = []
        self.events = []
        self.connected = 0
        self.disconnected = 0
        self.conn = GatewayConnection(
            "ws://gw.test:18789",
            "secret-token",
            on_event=self.events.append,
            on_connected=self._connected,
            on_disconnected=self._disconnected,
            app_factory=self._app,
            thread_factory=FakeThread,
            timer_factory=self._timer,
        )

    def _app(self, url, **callbacks):
        app = FakeApp(url, **callbacks)
        self.apps.append(app)
        return app

    def _timer(self, interval, function):
        timer = FakeTimer(interval, function)
        self.timers.append(timer)
        return timer

    def _connected(self):
        self.connected += 1

    def _disconnected(self):
        self.disconnected += 1

    @property
    def app(self):
        return self.apps[-1]

    def receive(self, frame):
        raw = frame if isinstance(frame, str) else json.dumps(frame)
        self.conn._on_message(self.app, raw)

    def handshake(self):
        self.conn._on_open(self.app)
        self.receive({"type": "event", "event": "connect.challenge", "payload": {"nonce": "n"}})
        self.receive({"type": "res", "id": self.app.sent[-1]["id"], "ok": True})

    def drop(self):
        self.conn._on_close(self.app, 1006, "abnormal")


@pytest.fixture
def h():
    harness = Harness()
    harness.conn.start()
    return harness


def test_backoff_sequence_doubles_and_caps():
    backoff = Backoff()
    delays = [backoff.next_delay() for _ in range(8)]
    assert delays == [1000, 2000, 4000, 8000, 16000, 30000, 30000, 30000]


def test_backoff_reset_returns_to_floor():
    backoff = Backoff()
    for _ in range(4):
        backoff.next_delay()
    backoff.reset()
    assert backoff.next_delay() == 1000


def test_connect_request_shape():
    request = build_connect_request("tok")
    params = request["params"]
    assert request["type"] == "req"
    assert request["method"] == "connect"
    assert params["minProtocol"] == 3 and params["maxProtocol"] == 3
    assert params["role"] == "operator"
    assert params["scopes"] == ["operator.read"]
    assert params["auth"] == {"token": "tok"}
    assert params["client"]["id"] == "webchat"
    assert build_connect_request("tok")["id"] != request["id"]


def test_start_opens_socket_in_connecting_state(h):
    assert h.app.url == "ws://gw.test:18789"
    assert h.conn.state is ConnectionState.CONNECTING


def test_open_waits_for_challenge_without_sending(h):
    h.conn._on_open(h.app)
    assert h.conn.state is ConnectionState.AWAITING_HANDSHAKE_ACK
    assert h.app.sent == []


def test_challenge_sends_connect_but_does_not_connect(h):
    h.conn._on_open(h.app)
    h.receive({"type": "event", "event": "connect.challenge"})
    assert [f["method"] for f in h.app.sent] == ["connect"]
    assert h.app.sent[0]["params"]["auth"]["token"] == "secret-token"
    assert h.conn.state is ConnectionState.AWAITING_HANDSHAKE_ACK
    assert h.connected == 0


def test_successful_response_connects_and_signals_once(h):
    h.handshake()
    assert h.conn.is_connected
    assert h.connected == 1
    h.receive({"type": "res", "id": "later", "ok": True})
    assert h.connected == 1


def test_rejected_handshake_stays_pending(h):
    h.conn._on_open(h.app)
    h.receive({"type": "event", "event": "connect.challenge"})
    h.receive({"type": "res", "id": "1", "ok": False, "error": {"code": "AUTH", "message": "bad token"}})
    assert h.conn.state is ConnectionState.AWAITING_HANDSHAKE_ACK
    assert h.connected == 0
    assert len(h.app.sent) == 1
    assert h.timers == []


def test_events_forwarded_only_while_connected(h):
    early = {"type": "event", "event": "agent", "payload": {"seq": 1}}
    h.conn._on_open(h.app)
    h.receive(early)
    assert h.events == []

    h.receive({"type": "event", "event": "connect.challenge"})
    h.receive({"type": "res", "id": "x", "ok": True})
    frames = [{"type": "event", "event": "agent", "payload": {"seq": n}} for n in (2, 3, 4)]
    for frame in frames:
        h.receive(frame)
    assert h.events == frames


def test_unparseable_frames_are_dropped_without_disconnect(h):
    h.handshake()
    h.receive("{not json")
    h.receive("[1, 2]")
    h.receive({"type": "mystery"})
    assert h.conn.is_connected
    assert h.events == []
    assert h.timers == []


def test_event_handler_errors_do_not_escape(h):
    def boom(frame):
        raise RuntimeError("downstream")

    h.conn._on_event = boom
    h.handshake()
    h.receive({"type": "event", "event": "agent", "payload": {}})
    assert h.conn.is_connected


def test_drop_after_connected_signals_and_schedules_reconnect(h):
    h.handshake()
    h.drop()
    assert h.conn.state is ConnectionState.DISCONNECTED
    assert h.disconnected == 1
    assert [t.interval for t in h.timers] == [1.0]
    assert h.timers[0].started and h.timers[0].daemon


def test_close_reported_twice_is_handled_once(h):
    h.handshake()
    app = h.app
    h.conn._on_close(app, 1000, "bye")
    h.conn._on_transport_closed(app)
    assert h.disconnected == 1
    assert len(h.timers) == 1


def test_failed_connect_does_not_signal_disconnect(h):
    h.conn._on_error(h.app, ConnectionRefusedError("refused"))
    h.drop()
    assert h.disconnected == 0
    assert len(h.timers) == 1


def test_only_one_reconnect_timer_pending(h):
    h.drop()
    h.conn._schedule_reconnect()
    assert len(h.timers) == 1
    assert h.conn.reconnect_pending


def test_reconnect_delays_back_off_then_reset_on_connect(h):
    for _ in range(7):
        h.drop()
        h.timers[-1].fire()
    assert [t.interval for t in h.timers] == [1.0, 2.0, 4.0, 8.0, 16.0, 30.0, 30.0]
    assert len(h.apps) == 8

    h.handshake()
    assert h.conn.backoff.current == 1000
    h.drop()
    assert h.timers[-1].interval == 1.0


def test_stale_socket_callbacks_are_ignored(h):
    old = h.app
    h.drop()
    h.timers[-1].fire()
    h.conn._on_open(old)
    h.conn._on_message(old, json.dumps({"type": "res", "ok": True}))
    assert h.conn.state is ConnectionState.CONNECTING
    assert h.connected == 0


def test_close_cancels_timer_and_prevents_reconnect(h):
    h.drop()
    timer = h.timers[-1]
    h.conn.close()
    assert timer.cancelled
    timer.fire()
    assert len(h.apps) == 1
    assert not h.conn.reconnect_pending


def test_close_while_connected_closes_socket_quietly(h):
    h.handshake()
    app = h.app
    h.conn.close()
    assert app.closed
    assert h.conn.state is ConnectionState.DISCONNECTED
    h.conn._on_close(app, 1000, "normal")
    assert h.disconnected == 0
    assert h.timers == []

"""Persistent WebSocket connection to the gateway.

Owns the handshake (challenge -> connect request -> ``res``), forwards event
frames once connected and reconnects with capped exponential backoff until
``close()`` is called.

States::

    disconnected -> connecting -> awaiting-handshake-ack -> connected
          ^______________________________________________________|
                       (transport close or error, any state)
"""

from __future__ import annotations

import json
import sys
import threading
import uuid
from collections.abc import Callable

import structlog
import websocket

from clawbridge.bridge.models import ConnectionState
from clawbridge.common.constants import (
    CLIENT_DISPLAY_NAME,
    CLIENT_ID,
    CLIENT_LOCALE,
    CLIENT_MODE,
    CLIENT_ROLE,
    CLIENT_SCOPES,
    CLIENT_VERSION,
    FRAME_LOG_CHARS,
    PROTOCOL_VERSION,
    RECONNECT_CAP_MS,
    RECONNECT_FLOOR_MS,
    USER_AGENT,
    WS_PING_INTERVAL_SECS,
    WS_PING_TIMEOUT_SECS,
)

CHALLENGE_EVENT = "connect.challenge"


class Backoff:
    """Doubling reconnect delay in milliseconds, clamped to ``[floor, cap]``."""

    def __init__(self, floor_ms: int = RECONNECT_FLOOR_MS, cap_ms: int = RECONNECT_CAP_MS) -> None:
        self._floor = floor_ms
        self._cap = cap_ms
        self._current = floor_ms

    @property
    def current(self) -> int:
        return self._current

    def next_delay(self) -> int:
        """Return the delay for this attempt and double the one after it."""
        delay = self._current
        self._current = min(self._current * 2, self._cap)
        return delay

    def reset(self) -> None:
        self._current = self._floor


def build_connect_request(token: str) -> dict:
    """The ``connect`` request sent in reply to a gateway challenge."""
    return {
        "type": "req",
        "id": uuid.uuid4().hex,
        "method": "connect",
        "params": {
            "minProtocol": PROTOCOL_VERSION,
            "maxProtocol": PROTOCOL_VERSION,
            "client": {
                "id": CLIENT_ID,
                "version": CLIENT_VERSION,
                "platform": sys.platform,
                "mode": CLIENT_MODE,
                "displayName": CLIENT_DISPLAY_NAME,
            },
            "role": CLIENT_ROLE,
            "scopes": list(CLIENT_SCOPES),
            "caps": [],
            "commands": [],
            "permissions": {},
            "auth": {"token": token},
            "locale": CLIENT_LOCALE,
            "userAgent": USER_AGENT,
        },
    }


class GatewayConnection:
    """Single persistent gateway connection driven by websocket-client.

    ``on_event`` receives every event frame that arrives while connected, in
    arrival order, on the socket's reader thread. ``on_connected`` and
    ``on_disconnected`` fire once per transition into and out of
    ``connected``; an explicit ``close()`` does not count as a disconnect.

    Usage::

        conn = GatewayConnection(url, token, on_event=queue.put)
        conn.start()
        # ... later ...
        conn.close()
    """

    def __init__(
        self,
        url: str,
        token: str,
        *,
        on_event: Callable[[dict], None],
        on_connected: Callable[[], None] | None = None,
        on_disconnected: Callable[[], None] | None = None,
        app_factory: Callable[..., websocket.WebSocketApp] = websocket.WebSocketApp,
        thread_factory: Callable[..., threading.Thread] = threading.Thread,
        timer_factory: Callable[..., threading.Timer] = threading.Timer,
    ) -> None:
        self._url = url
        self._token = token
        self._on_event = on_event
        self._on_connected = on_connected
        self._on_disconnected = on_disconnected
        self._app_factory = app_factory
        self._thread_factory = thread_factory
        self._timer_factory = timer_factory

        self._lock = threading.RLock()
        self._state = ConnectionState.DISCONNECTED
        self._app: websocket.WebSocketApp | None = None
        self._timer: threading.Timer | None = None
        self._closing = False
        self._backoff = Backoff()
        self._log = structlog.get_logger("gateway_ws")

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    @property
    def backoff(self) -> Backoff:
        return self._backoff

    @property
    def reconnect_pending(self) -> bool:
        return self._timer is not None

    # ── Lifecycle ────────────────────────────────────────────────────────

    def start(self) -> None:
        """Open the first connection; later ones are driven by the backoff timer."""
        self._connect()

    def close(self) -> None:
        """Cancel any pending reconnect and close the live socket for good."""
        with self._lock:
            self._closing = True
            timer, self._timer = self._timer, None
            app, self._app = self._app, None
            self._state = ConnectionState.DISCONNECTED
        if timer is not None:
            timer.cancel()
        if app is not None:
            try:
                app.close()
            except Exception as exc:
                self._log.warning("gateway_close_failed", error=str(exc))
        self._log.info("gateway_connection_closed")

    def _connect(self) -> None:
        with self._lock:
            if self._closing:
                return
            self._state = ConnectionState.CONNECTING
            app = self._app_factory(
                self._url,
                on_open=self._on_open,
                on_message=self._on_message,
                on_error=self._on_error,
                on_close=self._on_close,
            )
            self._app = app

        self._log.info("gateway_connecting", url=self._url)
        thread = self._thread_factory(
            target=self._run,
            args=(app,),
            name="gateway-ws",
            daemon=True,
        )
        thread.start()

    def _run(self, app: websocket.WebSocketApp) -> None:
        """Reader thread: pump the socket until it closes, then hand over to backoff."""
        try:
            app.run_forever(
                ping_interval=WS_PING_INTERVAL_SECS,
                ping_timeout=WS_PING_TIMEOUT_SECS,
            )
        except Exception as exc:
            self._log.warning("gateway_ws_run_failed", error=str(exc))
        self._on_transport_closed(app)

    def _schedule_reconnect(self) -> None:
        with self._lock:
            if self._closing or self._timer is not None:
                return
            delay_ms = self._backoff.next_delay()
            timer = self._timer_factory(delay_ms / 1000, self._reconnect)
            timer.daemon = True
            self._timer = timer

        self._log.info("gateway_reconnect_scheduled", delay_ms=delay_ms)
        timer.start()

    def _reconnect(self) -> None:
        with self._lock:
            self._timer = None
        self._connect()

    # ── Socket callbacks ─────────────────────────────────────────────────

    def _on_open(self, ws: websocket.WebSocketApp) -> None:
        with self._lock:
            if ws is not self._app:
                return
            self._state = ConnectionState.AWAITING_HANDSHAKE_ACK
        self._log.info("gateway_ws_open", detail="waiting for challenge")

    def _on_message(self, ws: websocket.WebSocketApp, message: str | bytes) -> None:
        if ws is not self._app:
            return
        try:
            frame = json.loads(message)
        except (TypeError, ValueError) as exc:
            self._log.warning("gateway_frame_unparseable", error=str(exc))
            return
        if not isinstance(frame, dict):
            self._log.warning("gateway_frame_unparseable", error="frame is not an object")
            return

        self._log.debug("gateway_frame", frame=json.dumps(frame)[:FRAME_LOG_CHARS])
        try:
            self._handle_frame(ws, frame)
        except Exception:
            self._log.exception("gateway_frame_handler_failed", type=frame.get("type"))

    def _on_error(self, ws: websocket.WebSocketApp, error: object) -> None:
        self._log.warning("gateway_ws_error", error=str(error))

    def _on_close(self, ws: websocket.WebSocketApp, status_code: object = None, reason: object = None) -> None:
        self._log.info("gateway_ws_closed", code=status_code, reason=reason)
        self._on_transport_closed(ws)

    def _on_transport_closed(self, ws: websocket.WebSocketApp) -> None:
        """Move to ``disconnected`` exactly once per socket and arm the reconnect."""
        with self._lock:
            if ws is not self._app:
                return
            self._app = None
            was_connected = self._state is ConnectionState.CONNECTED
            self._state = ConnectionState.DISCONNECTED
            closing = self._closing

        self._log.info("gateway_disconnected", was_connected=was_connected)
        if was_connected and self._on_disconnected is not None:
            self._on_disconnected()
        if not closing:
            self._schedule_reconnect()

    # ── Frames ───────────────────────────────────────────────────────────

    def _handle_frame(self, ws: websocket.WebSocketApp, frame: dict) -> None:
        kind = frame.get("type")
        if kind == "event" and frame.get("event") == CHALLENGE_EVENT:
            self._send_connect(ws)
        elif kind == "res":
            self._handle_response(frame)
        elif kind == "event":
            if self.is_connected:
                self._on_event(frame)
            else:
                self._log.debug("gateway_event_dropped", event=frame.get("event"), state=self._state.value)
        else:
            self._log.debug("gateway_frame_ignored", type=kind)

    def _send_connect(self, ws: websocket.WebSocketApp) -> None:
        request = build_connect_request(self._token)
        ws.send(json.dumps(request))
        self._log.info("gateway_challenge_answered", request_id=request["id"], role=CLIENT_ROLE)

    def _handle_response(self, frame: dict) -> None:
        if frame.get("ok") is True:
            with self._lock:
                if self._state is not ConnectionState.AWAITING_HANDSHAKE_ACK:
                    self._log.debug("gateway_response", id=frame.get("id"), state=self._state.value)
                    return
                self._state = ConnectionState.CONNECTED
                self._backoff.reset()
            self._log.info("gateway_connected", id=frame.get("id"))
            if self._on_connected is not None:
                self._on_connected()
        elif frame.get("error"):
            # Stay in awaiting-handshake-ack; only a transport close restarts the cycle.
            self._log.error("gateway_handshake_rejected", error=json.dumps(frame.get("error"))[:FRAME_LOG_CHARS])
        else:
            self._log.debug("gateway_response", id=frame.get("id"))

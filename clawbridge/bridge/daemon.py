"""Wires the push path, the poll fallback and the watchdog into one process."""

from __future__ import annotations

import queue
import threading

import structlog

from clawbridge.bridge.connection import GatewayConnection
from clawbridge.bridge.dashboard import DashboardClient
from clawbridge.bridge.gateway import GatewayTools
from clawbridge.bridge.mapper import map_agent_event
from clawbridge.bridge.poller import PollReconciler
from clawbridge.bridge.watchdog import StaleStateWatchdog
from clawbridge.common.config import BridgeConfig

AGENT_EVENT = "agent"

_STOP = object()


class BridgeDaemon:
    """Owns every component and arbitrates between push and poll.

    Event frames from the socket are handed over through a FIFO queue to a
    single dispatcher thread, so they are mapped and published in arrival
    order without blocking the socket reader on dashboard I/O.
    """

    def __init__(
        self,
        config: BridgeConfig,
        *,
        dashboard: DashboardClient | None = None,
        gateway: GatewayTools | None = None,
        connection: GatewayConnection | None = None,
        poller: PollReconciler | None = None,
        watchdog: StaleStateWatchdog | None = None,
    ) -> None:
        self._config = config
        self._gateway = gateway or GatewayTools(
            config.gateway_http_url, config.gateway_token, timeout=config.http_timeout
        )
        self._dashboard = dashboard or DashboardClient(
            config.dashboard_url, config.dashboard_token, timeout=config.http_timeout
        )
        self._poller = poller or PollReconciler(self._gateway, self._dashboard)
        self._watchdog = watchdog or StaleStateWatchdog(self._gateway, self._dashboard)
        self._connection = connection or GatewayConnection(
            config.gateway_url,
            config.gateway_token,
            on_event=self.enqueue_event,
            on_connected=self._on_connected,
            on_disconnected=self._on_disconnected,
        )

        self._events: queue.Queue = queue.Queue()
        self._dispatcher: threading.Thread | None = None
        self._stopped = threading.Event()
        self._stop_lock = threading.Lock()
        self._log = structlog.get_logger("daemon")

    @property
    def mode(self) -> str:
        return "push" if self._connection.is_connected else "poll"

    @property
    def stopped(self) -> bool:
        return self._stopped.is_set()

    # ── Lifecycle ────────────────────────────────────────────────────────

    def start(self) -> None:
        self._log.info(
            "bridge_starting",
            gateway=self._config.gateway_url,
            dashboard=self._config.dashboard_url,
        )
        self._dispatcher = threading.Thread(
            target=self._dispatch_loop,
            name="event-dispatcher",
            daemon=True,
        )
        self._dispatcher.start()
        self._poller.start()
        self._watchdog.start()
        # Nothing is connected yet, so the poll path covers the gap until the
        # first handshake completes.
        self._poller.activate()
        self._connection.start()
        self._log.info("bridge_running", mode=self.mode)

    def run(self) -> None:
        """Start and block until ``stop()`` is called (e.g. from a signal handler)."""
        self.start()
        self._stopped.wait()
        self._shutdown()

    def stop(self) -> None:
        """Request shutdown; safe to call more than once and from any thread."""
        self._stopped.set()

    def _shutdown(self) -> None:
        with self._stop_lock:
            self._log.info("bridge_stopping")
            self._connection.close()
            self._poller.stop()
            self._watchdog.stop()
            self._events.put(_STOP)
            if self._dispatcher is not None:
                self._dispatcher.join(timeout=5)
                self._dispatcher = None
            self._log.info("bridge_stopped")

    def __enter__(self) -> BridgeDaemon:
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        self.stop()
        self._shutdown()

    # ── Mode arbitration ─────────────────────────────────────────────────

    def _on_connected(self) -> None:
        self._log.info("mode_changed", mode="push")
        self._poller.deactivate()

    def _on_disconnected(self) -> None:
        if self._stopped.is_set():
            return
        self._log.info("mode_changed", mode="poll")
        self._poller.activate()

    # ── Event path ───────────────────────────────────────────────────────

    def enqueue_event(self, frame: dict) -> None:
        self._events.put(frame)

    def _dispatch_loop(self) -> None:
        while True:
            frame = self._events.get()
            if frame is _STOP:
                break
            try:
                self.handle_event(frame)
            except Exception:
                self._log.exception("event_dispatch_failed", event_name=frame.get("event"))

    def handle_event(self, frame: dict) -> bool:
        """Map one gateway event frame and publish it; True if the dashboard accepted it."""
        if frame.get("event") != AGENT_EVENT:
            return False
        update = map_agent_event(frame.get("payload"))
        if update is None:
            return False
        return self._dashboard.publish_update(update)

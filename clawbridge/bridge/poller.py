"""HTTP poll fallback that feeds the dashboard while the socket is down."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable

import structlog

from clawbridge.bridge.dashboard import DashboardClient
from clawbridge.bridge.gateway import GatewayTools
from clawbridge.bridge.models import Session
from clawbridge.common.constants import (
    ACTIVITY_THRESHOLD_MS,
    IDLE_THRESHOLD_MS,
    POLL_INTERVAL_SECS,
    STATE_STANDBY,
    STATE_THINKING,
)


def classify_session(session: Session, now_ms: float) -> str | None:
    """Derive a state from how recently the session was updated.

    Sessions past the idle ceiling are left unclassified rather than forced
    to standby; the watchdog or a later cycle converges them.
    """
    age = session.age_ms(now_ms)
    if age < ACTIVITY_THRESHOLD_MS:
        return STATE_THINKING
    if age < IDLE_THRESHOLD_MS:
        return STATE_STANDBY
    return None


class PollReconciler:
    """Background poller that publishes per-agent state deltas.

    The thread runs for the whole process but only polls while active; the
    daemon activates it when the gateway socket drops and deactivates it on
    reconnect. Activation triggers an immediate cycle.

    Usage::

        with PollReconciler(gateway, dashboard) as poller:
            poller.activate()
            # ... later ...
            poller.deactivate()
    """

    def __init__(
        self,
        gateway: GatewayTools,
        dashboard: DashboardClient,
        *,
        interval: float = POLL_INTERVAL_SECS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._gateway = gateway
        self._dashboard = dashboard
        self._interval = interval
        self._clock = clock
        self._last_states: dict[str, str] = {}
        self._active = threading.Event()
        self._wake = threading.Event()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._log = structlog.get_logger("poller")

    @property
    def active(self) -> bool:
        return self._active.is_set()

    @property
    def known_states(self) -> dict[str, str]:
        return dict(self._last_states)

    def __enter__(self) -> PollReconciler:
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        self.stop()

    def start(self) -> None:
        self._thread = threading.Thread(
            target=self._poll_loop,
            name="gateway-poller",
            daemon=True,
        )
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        self._active.clear()
        self._wake.set()
        if self._thread is not None:
            self._thread.join(timeout=5)

    def activate(self) -> None:
        if self._stop.is_set() or self._active.is_set():
            return
        self._log.info("polling_started", interval=self._interval)
        self._active.set()
        self._wake.set()

    def deactivate(self) -> None:
        if not self._active.is_set():
            return
        self._log.info("polling_stopped")
        self._active.clear()

    def _poll_loop(self) -> None:
        """Poll while active, then sleep until the next interval or activation."""
        while not self._stop.is_set():
            if self._active.is_set():
                try:
                    self.run_cycle()
                except Exception:
                    self._log.exception("poll_cycle_failed")
            self._wake.wait(timeout=self._interval)
            self._wake.clear()

    def run_cycle(self) -> list[tuple[str, str]]:
        """Run one reconciliation pass and return the ``(agent_id, state)`` writes."""
        try:
            sessions = self._gateway.list_sessions()
        except Exception as exc:
            self._log.warning("poll_failed", error=str(exc))
            return []

        now_ms = self._clock() * 1000
        seen: set[str] = set()
        writes: list[tuple[str, str]] = []

        for session in sessions:
            agent_id = session.agent_id
            if agent_id is None:
                continue
            seen.add(agent_id)
            state = classify_session(session, now_ms)
            if state is None:
                continue
            previous = self._last_states.get(agent_id)
            if previous != state:
                self._log.info("agent_state_changed", agent_id=agent_id, previous=previous, state=state)
                self._dashboard.publish(agent_id, state, "")
                self._last_states[agent_id] = state
                writes.append((agent_id, state))

        for agent_id, previous in list(self._last_states.items()):
            if agent_id in seen or previous == STATE_STANDBY:
                continue
            self._log.info("agent_no_longer_active", agent_id=agent_id, previous=previous)
            self._dashboard.publish(agent_id, STATE_STANDBY, "")
            self._last_states[agent_id] = STATE_STANDBY
            writes.append((agent_id, STATE_STANDBY))

        self._log.info("poll_complete", sessions=len(sessions), agents=len(seen), writes=len(writes))
        return writes

"""Periodic cross-check of dashboard "busy" agents against gateway activity."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable

import structlog

from clawbridge.bridge.dashboard import DashboardClient
from clawbridge.bridge.gateway import GatewayTools
from clawbridge.common.constants import (
    BUSY_STATES,
    SOURCE_STALE,
    STATE_STANDBY,
    WATCHDOG_ACTIVE_WINDOW_MS,
    WATCHDOG_INTERVAL_SECS,
)


def recovery_wake_text(count: int, recovery_url: str) -> str:
    noun = "task needs" if count == 1 else "tasks need"
    return (
        f"⚠️ {count} {noun} recovery! An agent disconnected or was killed. "
        f"Check {recovery_url} and reassign the work."
    )


class StaleStateWatchdog:
    """Context manager that resets stale dashboard statuses on a fixed schedule.

    Runs regardless of whether the push or the poll path is feeding the
    dashboard. Any agent the dashboard shows as thinking/acting without a
    gateway session updated in the last minute is written back to standby
    with ``source="stale"``. When a cycle corrects anything, the recovery
    queue is checked and a single wake is sent into the gateway if it is
    non-empty.

    Usage::

        with StaleStateWatchdog(gateway, dashboard, interval=60):
            # ... run bridge ...
    """

    def __init__(
        self,
        gateway: GatewayTools,
        dashboard: DashboardClient,
        *,
        interval: float = WATCHDOG_INTERVAL_SECS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._gateway = gateway
        self._dashboard = dashboard
        self._interval = interval
        self._clock = clock
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._log = structlog.get_logger("watchdog")

    def __enter__(self) -> StaleStateWatchdog:
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        self.stop()

    def start(self) -> None:
        self._thread = threading.Thread(
            target=self._watch_loop,
            name="stale-watchdog",
            daemon=True,
        )
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=5)

    def _watch_loop(self) -> None:
        while not self._stop.is_set():
            self._stop.wait(timeout=self._interval)
            if self._stop.is_set():
                break
            try:
                self.run_cycle()
            except Exception:
                self._log.exception("watchdog_cycle_failed")

    def run_cycle(self) -> list[str]:
        """Correct drift once and return the agent ids reset to standby."""
        try:
            sessions = self._gateway.list_sessions()
        except Exception as exc:
            self._log.warning("stale_check_sessions_failed", error=str(exc))
            return []

        now_ms = self._clock() * 1000
        active = {
            s.agent_id
            for s in sessions
            if s.agent_id is not None and s.age_ms(now_ms) < WATCHDOG_ACTIVE_WINDOW_MS
        }

        try:
            statuses = self._dashboard.fetch_statuses()
        except Exception as exc:
            self._log.warning("stale_check_dashboard_failed", error=str(exc))
            return []

        corrected: list[str] = []
        for agent_id, status in statuses.items():
            state = status.get("state")
            if not isinstance(state, str) or state not in BUSY_STATES or agent_id in active:
                continue
            self._log.info("stale_status_reset", agent_id=agent_id, state=state)
            self._dashboard.publish(agent_id, STATE_STANDBY, "", SOURCE_STALE)
            corrected.append(agent_id)

        if corrected:
            self._request_recovery(len(corrected))
        return corrected

    def _request_recovery(self, corrected: int) -> None:
        try:
            tasks = self._dashboard.fetch_recovery_tasks()
        except Exception as exc:
            self._log.warning("recovery_check_failed", error=str(exc))
            return
        if not tasks:
            self._log.debug("recovery_queue_empty", corrected=corrected)
            return

        self._log.warning("tasks_need_recovery", count=len(tasks), corrected=corrected)
        self._gateway.wake(recovery_wake_text(len(tasks), self._dashboard.recovery_url))

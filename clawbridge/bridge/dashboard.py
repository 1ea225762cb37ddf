"""Dashboard HTTP client: status publishing and the reads the watchdog needs."""

from __future__ import annotations

from urllib.parse import quote

import structlog

from clawbridge.bridge.models import StatusUpdate
from clawbridge.common.constants import DEFAULT_HTTP_TIMEOUT_SECS, SOURCE_NORMAL
from clawbridge.common.http import bearer, http_get, http_put

RECOVERY_PATH = "/api/tasks/recovery"


class DashboardClient:
    """Best-effort, last-write-wins status publisher for the dashboard.

    ``publish`` never raises: a failed write is logged and reported as False,
    and the next event, poll cycle or watchdog cycle writes again. There is
    no queue; concurrent callers simply race and the last write wins.
    """

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        *,
        timeout: float = DEFAULT_HTTP_TIMEOUT_SECS,
        audit_log: structlog.BoundLogger | None = None,
    ) -> None:
        self._base = base_url.rstrip("/")
        self._token = token
        self._timeout = timeout
        self._audit = audit_log
        self._log = structlog.get_logger("dashboard")

    @property
    def recovery_url(self) -> str:
        return f"{self._base}{RECOVERY_PATH}"

    def publish(self, agent_id: str, state: str, task: str = "", source: str = SOURCE_NORMAL) -> bool:
        url = f"{self._base}/api/agents/{quote(agent_id, safe='')}/status"
        try:
            http_put(
                url,
                {"state": state, "task": task, "source": source},
                headers=bearer(self._token),
                timeout=self._timeout,
            )
        except Exception as exc:
            self._log.warning(
                "status_publish_failed",
                agent_id=agent_id,
                state=state,
                source=source,
                error=str(exc),
            )
            self._record(agent_id, state, task, source, ok=False)
            return False

        self._log.info("status_published", agent_id=agent_id, state=state, task=task or None, source=source)
        self._record(agent_id, state, task, source, ok=True)
        return True

    def publish_update(self, update: StatusUpdate) -> bool:
        return self.publish(update.agent_id, update.state, update.task, update.source)

    def fetch_statuses(self) -> dict[str, dict]:
        """Return ``{agent_id: {state, task, updatedAt}}``; raises on failure."""
        data = http_get(f"{self._base}/api/agents/status", headers=bearer(self._token), timeout=self._timeout)
        statuses = data.get("data") if isinstance(data, dict) else None
        if not isinstance(statuses, dict):
            return {}
        return {k: v for k, v in statuses.items() if isinstance(v, dict)}

    def fetch_recovery_tasks(self) -> list:
        """Return work items flagged for recovery; raises on failure."""
        data = http_get(self.recovery_url, headers=bearer(self._token), timeout=self._timeout)
        tasks = data.get("data") if isinstance(data, dict) else None
        return tasks if isinstance(tasks, list) else []

    def _record(self, agent_id: str, state: str, task: str, source: str, *, ok: bool) -> None:
        if self._audit is None:
            return
        self._audit.info("status_publish", agent_id=agent_id, state=state, task=task, source=source, ok=ok)

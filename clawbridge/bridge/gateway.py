"""Gateway ``/tools/invoke`` calls used by the poll path and the watchdog."""

from __future__ import annotations

import structlog

from clawbridge.bridge.models import Session
from clawbridge.common.constants import DEFAULT_HTTP_TIMEOUT_SECS
from clawbridge.common.http import bearer, http_post


class GatewayTools:
    """Thin client for the gateway's HTTP tool endpoint.

    ``list_sessions`` raises on failure so callers can skip a whole cycle;
    ``wake`` is fire-and-forget and only logs.
    """

    def __init__(self, base_url: str, token: str, *, timeout: float = DEFAULT_HTTP_TIMEOUT_SECS) -> None:
        self._url = f"{base_url.rstrip('/')}/tools/invoke"
        self._token = token
        self._timeout = timeout
        self._log = structlog.get_logger("gateway_http")

    def invoke(self, tool: str, args: dict | None = None, *, expect_json: bool = True) -> dict:
        """POST one tool invocation and return the decoded response body."""
        return http_post(
            self._url,
            {"tool": tool, "action": "json", "args": args or {}},
            headers=bearer(self._token),
            timeout=self._timeout,
            expect_json=expect_json,
        )

    def list_sessions(self) -> list[Session]:
        data = self.invoke("sessions_list")
        result = data.get("result") if isinstance(data, dict) else None
        details = result.get("details") if isinstance(result, dict) else None
        raw = details.get("sessions") if isinstance(details, dict) else None
        if not isinstance(raw, list):
            return []
        sessions = (Session.from_dict(entry) for entry in raw)
        return [s for s in sessions if s is not None]

    def wake(self, text: str) -> bool:
        """Ask the gateway to wake its operator agent with *text*."""
        try:
            self.invoke("cron", {"action": "wake", "text": text, "mode": "now"}, expect_json=False)
        except Exception as exc:
            self._log.warning("gateway_wake_failed", error=str(exc))
            return False
        self._log.info("gateway_wake_sent")
        return True

"""Data model shared by the push path, the poll path and the watchdog."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

from clawbridge.common.constants import SOURCE_NORMAL

_AGENT_KEY = re.compile(r"^agent:([^:]+):")


def parse_agent_id(session_key: object) -> str | None:
    """Extract ``<id>`` from a ``agent:<id>:<scope>`` session key."""
    if not isinstance(session_key, str):
        return None
    match = _AGENT_KEY.match(session_key)
    return match.group(1) if match else None


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AWAITING_HANDSHAKE_ACK = "awaiting-handshake-ack"
    CONNECTED = "connected"


@dataclass(frozen=True)
class StatusUpdate:
    """One status write destined for the dashboard."""

    agent_id: str
    state: str                   # standby | thinking | acting | error
    task: str = ""
    source: str = SOURCE_NORMAL  # normal | stale


@dataclass(frozen=True)
class Session:
    """A gateway session as reported by ``sessions_list``."""

    key: str
    updated_at: float = 0.0      # epoch milliseconds

    @property
    def agent_id(self) -> str | None:
        return parse_agent_id(self.key)

    def age_ms(self, now_ms: float) -> float:
        return now_ms - self.updated_at

    @classmethod
    def from_dict(cls, raw: object) -> Session | None:
        """Build a session from one ``sessions_list`` entry, or None if unusable."""
        if not isinstance(raw, dict):
            return None
        key = raw.get("key")
        if not isinstance(key, str) or not key:
            return None
        updated = raw.get("updatedAt")
        if isinstance(updated, bool) or not isinstance(updated, (int, float)):
            updated = 0
        return cls(key=key, updated_at=float(updated))

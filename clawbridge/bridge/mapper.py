"""Map gateway lifecycle events to dashboard status updates."""

from __future__ import annotations

from clawbridge.bridge.models import StatusUpdate, parse_agent_id
from clawbridge.common.constants import (
    STATE_ERROR,
    STATE_STANDBY,
    STATE_THINKING,
    TASK_MAX_CHARS,
)

LIFECYCLE_STREAM = "lifecycle"

_PHASE_STATES = {
    "start": STATE_THINKING,
    "end": STATE_STANDBY,
    "error": STATE_ERROR,
}


def map_agent_event(payload: object) -> StatusUpdate | None:
    """Translate an ``agent`` event payload into a status update.

    Only ``lifecycle`` events for ``agent:<id>:...`` sessions with phase
    ``start``, ``end`` or ``error`` are mappable; anything else yields None.
    Never raises.
    """
    if not isinstance(payload, dict):
        return None

    agent_id = parse_agent_id(payload.get("sessionKey"))
    if agent_id is None or payload.get("stream") != LIFECYCLE_STREAM:
        return None

    data = payload.get("data")
    if not isinstance(data, dict):
        data = {}
    phase = data.get("phase")
    state = _PHASE_STATES.get(phase) if isinstance(phase, str) else None
    if state is None:
        return None

    task = ""
    if state == STATE_ERROR:
        message = data.get("error")
        task = str(message)[:TASK_MAX_CHARS] if message else "error"

    return StatusUpdate(agent_id=agent_id, state=state, task=task)

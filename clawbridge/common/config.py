"""Environment-driven configuration for the bridge daemon."""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from clawbridge.common.constants import (
    DEFAULT_DASHBOARD_URL,
    DEFAULT_GATEWAY_URL,
    DEFAULT_HTTP_TIMEOUT_SECS,
)


class ConfigError(ValueError):
    """Raised when the environment cannot produce a usable configuration."""


def load_dotenv(env_path: Path) -> bool:
    """Load variables from *env_path* into os.environ (no overwrite).

    Returns True when a file was read.
    """
    if not env_path.is_file():
        return False
    with open(env_path, encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, _, value = line.partition("=")
            key = key.strip()
            if key.startswith("export "):
                key = key[len("export "):].strip()
            value = value.strip().strip("\"'")
            os.environ.setdefault(key, value)
    return True


def gateway_http_base(gateway_url: str) -> str:
    """Map ``ws://host`` to ``http://host`` (and ``wss`` to ``https``)."""
    return re.sub(r"^ws", "http", gateway_url.rstrip("/"), flags=re.IGNORECASE)


@dataclass(frozen=True)
class BridgeConfig:
    gateway_url: str
    gateway_token: str
    dashboard_url: str = DEFAULT_DASHBOARD_URL
    dashboard_token: str | None = None
    http_timeout: float = DEFAULT_HTTP_TIMEOUT_SECS

    @property
    def gateway_http_url(self) -> str:
        return gateway_http_base(self.gateway_url)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> BridgeConfig:
        """Build a config from *environ* (defaults to ``os.environ``).

        The gateway token is the only required value.
        """
        env = os.environ if environ is None else environ

        token = env.get("OPENCLAW_GATEWAY_TOKEN", "").strip()
        if not token:
            raise ConfigError("OPENCLAW_GATEWAY_TOKEN is required")

        raw_timeout = env.get("BRIDGE_HTTP_TIMEOUT_SEC", "").strip()
        timeout = DEFAULT_HTTP_TIMEOUT_SECS
        if raw_timeout:
            try:
                timeout = float(raw_timeout)
            except ValueError:
                raise ConfigError(
                    f"BRIDGE_HTTP_TIMEOUT_SEC must be a number, got {raw_timeout!r}"
                ) from None
            if timeout <= 0:
                raise ConfigError("BRIDGE_HTTP_TIMEOUT_SEC must be positive")

        return cls(
            gateway_url=env.get("OPENCLAW_GATEWAY_URL", "").strip() or DEFAULT_GATEWAY_URL,
            gateway_token=token,
            dashboard_url=(
                env.get("DASHBOARD_API_URL", "").strip() or DEFAULT_DASHBOARD_URL
            ).rstrip("/"),
            dashboard_token=env.get("DASHBOARD_API_TOKEN", "").strip() or None,
            http_timeout=timeout,
        )

"""Shared constants for the gateway-to-dashboard status bridge."""

# ── Defaults for the configuration surface ──────────────────────────────────
DEFAULT_GATEWAY_URL = "ws://127.0.0.1:18789"
DEFAULT_DASHBOARD_URL = "http://127.0.0.1:3001"
DEFAULT_HTTP_TIMEOUT_SECS = 10.0

# ── Agent states (dashboard vocabulary) ─────────────────────────────────────
STATE_STANDBY = "standby"
STATE_THINKING = "thinking"
STATE_ACTING = "acting"
STATE_ERROR = "error"
BUSY_STATES = frozenset({STATE_THINKING, STATE_ACTING})

SOURCE_NORMAL = "normal"
SOURCE_STALE = "stale"

TASK_MAX_CHARS = 100

# ── Reconnect backoff (milliseconds) ────────────────────────────────────────
RECONNECT_FLOOR_MS = 1_000
RECONNECT_CAP_MS = 30_000

# ── Poll fallback ───────────────────────────────────────────────────────────
POLL_INTERVAL_SECS = 10.0
ACTIVITY_THRESHOLD_MS = 30_000   # younger than this -> thinking
IDLE_THRESHOLD_MS = 120_000      # younger than this -> standby, older -> unclassified

# ── Stale-state watchdog ────────────────────────────────────────────────────
WATCHDOG_INTERVAL_SECS = 60.0
WATCHDOG_ACTIVE_WINDOW_MS = 60_000

# ── Gateway wire protocol ───────────────────────────────────────────────────
PROTOCOL_VERSION = 3
CLIENT_ID = "webchat"
CLIENT_VERSION = "1.0.0"
CLIENT_MODE = "backend"
CLIENT_DISPLAY_NAME = "Dashboard Bridge"
CLIENT_ROLE = "operator"
CLIENT_SCOPES = ["operator.read"]
CLIENT_LOCALE = "en-US"
USER_AGENT = "clawbridge/1.0.0"

WS_PING_INTERVAL_SECS = 30
WS_PING_TIMEOUT_SECS = 10

FRAME_LOG_CHARS = 200

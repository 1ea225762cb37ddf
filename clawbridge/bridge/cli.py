"""CLI entrypoint for the gateway-to-dashboard status bridge.

Architecture:
  1. Load .env, then read configuration from the environment
  2. Start the event dispatcher, the poll fallback and the stale watchdog
  3. Connect to the gateway socket; poll only while it is down
  4. Run until SIGINT/SIGTERM, then shut every loop down without retrying
"""

from __future__ import annotations

import argparse
import signal
import textwrap
from pathlib import Path

from clawbridge.bridge.daemon import BridgeDaemon
from clawbridge.bridge.dashboard import DashboardClient
from clawbridge.common.config import BridgeConfig, ConfigError, load_dotenv
from clawbridge.common.console import banner, fail, info, mask, ok
from clawbridge.common.logging import configure_structlog, get_audit_logger


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="clawbridge",
        description="Relay gateway agent status to the dashboard (push + poll + watchdog).",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
            environment:
              OPENCLAW_GATEWAY_TOKEN   gateway auth token (required)
              OPENCLAW_GATEWAY_URL     default ws://127.0.0.1:18789
              DASHBOARD_API_URL        default http://127.0.0.1:3001
              DASHBOARD_API_TOKEN      optional bearer token for the dashboard
              BRIDGE_HTTP_TIMEOUT_SEC  per-request timeout, default 10
        """),
    )
    parser.add_argument(
        "--env-file", type=Path, default=Path(".env"),
        help="Read variables from this file first (never overrides the environment). Default: ./.env",
    )
    parser.add_argument(
        "--audit-log", type=Path, default=None, metavar="FILE",
        help="Append every status publish to FILE as JSON lines",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Log raw gateway frames and other debug detail",
    )
    return parser


def _install_signal_handlers(daemon: BridgeDaemon) -> None:
    def _handle(signum, frame) -> None:  # noqa: ANN001
        info(f"Received {signal.Signals(signum).name}, shutting down ...")
        daemon.stop()

    signal.signal(signal.SIGINT, _handle)
    signal.signal(signal.SIGTERM, _handle)


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)

    if load_dotenv(args.env_file):
        info(f"Loaded environment from {args.env_file}")

    try:
        config = BridgeConfig.from_env()
    except ConfigError as exc:
        fail(str(exc))

    configure_structlog(verbose=args.verbose)

    banner("Dashboard Gateway Bridge")
    info(f"Gateway:   {config.gateway_url}  (token {mask(config.gateway_token)})")
    info(f"Dashboard: {config.dashboard_url}  (token {mask(config.dashboard_token or '')})")

    dashboard = DashboardClient(
        config.dashboard_url,
        config.dashboard_token,
        timeout=config.http_timeout,
        audit_log=get_audit_logger(args.audit_log) if args.audit_log else None,
    )
    if args.audit_log:
        info(f"Audit log: {args.audit_log}")

    daemon = BridgeDaemon(config, dashboard=dashboard)
    _install_signal_handlers(daemon)
    ok("Bridge running (socket first, polling while it is down)")
    daemon.run()
    ok("Bridge stopped.")

"""Structured logging configuration (structlog)."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import structlog


def configure_structlog(*, verbose: bool = False) -> None:
    """Configure structlog for human-readable console output.

    Raw gateway frames are only visible with *verbose* (DEBUG). Call once at
    process startup, before any component grabs a logger.
    """
    level = logging.DEBUG if verbose else logging.INFO
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_audit_logger(log_path: Path) -> structlog.BoundLogger:
    """Return a logger that appends one JSON object per status publish.

    Backed by its own stdlib FileHandler so the audit trail stays JSON even
    though the console renderer is human-readable.
    """
    log_path = log_path.expanduser()
    log_path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(str(log_path), mode="a", encoding="utf-8")
    handler.setLevel(logging.INFO)

    stdlib_logger = logging.getLogger(f"clawbridge.audit.{log_path}")
    stdlib_logger.handlers = [handler]
    stdlib_logger.setLevel(logging.INFO)
    stdlib_logger.propagate = False

    return structlog.wrap_logger(
        stdlib_logger,
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.JSONRenderer(sort_keys=True),
        ],
    )

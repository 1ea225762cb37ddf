#!/usr/bin/env python3
"""
Dashboard Gateway Bridge
========================
Thin entry-point. All logic lives in clawbridge.bridge.cli.

Usage:
    python3 run_bridge.py                         # reads ./.env and the environment
    python3 run_bridge.py --env-file prod.env -v  # alternate env file, debug logging
    python3 run_bridge.py --audit-log logs/status.jsonl
"""

from clawbridge.bridge.cli import main

if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""CLI script to run one HubSpot sync pass over the configured domain.

Usage:
    uv run python scripts/run_sync.py
    uv run python scripts/run_sync.py --passes meetings --dry-run
    uv run python scripts/run_sync.py --store ./domain.json

Reads HUBSPOT_CID / HUBSPOT_CS and the rest of the settings from environment
or .env file.
"""

from __future__ import annotations

import os
import sys

# Ensure project root is on sys.path so we can import src.hubsync
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from dotenv import load_dotenv  # noqa: E402

# Load .env from project root
load_dotenv(os.path.join(os.path.dirname(__file__), "..", ".env"))

from src.hubsync.main import main  # noqa: E402

if __name__ == "__main__":
    sys.exit(main())

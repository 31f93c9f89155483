#!/usr/bin/env python3
"""
============================================================================
Burn Bridge v1.0.0
Settlement Orchestrator - Process Entry Point
============================================================================

Reliability Level: SOVEREIGN TIER (Mission-Critical)
Traceability: All operations include correlation_id for audit

THE PIPELINE:
    1. Migrate - copy qualifying source burns into the destination store
    2. Mint    - settle every PENDING record on the destination ledger
    3. Report  - write the settlement snapshot

SOVEREIGN MANDATE:
    Every burn is credited at most once. Without a mint authority the
    bridge runs in simulation mode and never touches the store.

USAGE:
    python main.py [migrate|mint|report|run] [--burner ADDR]

============================================================================
"""

import sys

from dotenv import load_dotenv

# Load environment variables first
load_dotenv()

from jobs.settlement_run import main  # noqa: E402


if __name__ == "__main__":
    sys.exit(main())

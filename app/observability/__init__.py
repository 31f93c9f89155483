"""
============================================================================
Burn Bridge v1.0.0
Observability Module - Prometheus Metrics
============================================================================

Reliability Level: SOVEREIGN TIER (Mission-Critical)
Input Constraints: None
Side Effects: Exposes Prometheus metrics

============================================================================
"""

from app.observability.metrics import (
    BURNS_MIGRATED,
    BURNS_SKIPPED,
    MINTS_SUBMITTED,
    MINTS_CONFIRMED,
    MINTS_FAILED,
    MINTED_TOKENS,
    PENDING_RECORDS,
    record_migrated,
    record_skipped,
    record_mint_submitted,
    record_mint_confirmed,
    record_mint_failed,
    update_pending,
)

__all__ = [
    "BURNS_MIGRATED",
    "BURNS_SKIPPED",
    "MINTS_SUBMITTED",
    "MINTS_CONFIRMED",
    "MINTS_FAILED",
    "MINTED_TOKENS",
    "PENDING_RECORDS",
    "record_migrated",
    "record_skipped",
    "record_mint_submitted",
    "record_mint_confirmed",
    "record_mint_failed",
    "update_pending",
]

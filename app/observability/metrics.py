"""
============================================================================
Burn Bridge v1.0.0
Prometheus Metrics - Settlement Observability
============================================================================

Reliability Level: SOVEREIGN TIER (Mission-Critical)
Input Constraints: Token amounts arrive as raw integers
Side Effects: Updates Prometheus metrics registry

METRICS EXPOSED
---------------
- bridge_burns_migrated_total: Burns inserted as PENDING
- bridge_burns_skipped_total: Burns skipped during migration, by reason
- bridge_mints_submitted_total: Mint submissions, by mode
- bridge_mints_confirmed_total: Mints confirmed on the destination ledger
- bridge_mints_failed_total: Mint attempts left PENDING, by reason
- bridge_minted_tokens_total: Display units minted
- bridge_pending_records: PENDING records after the last settlement run

ZERO-FLOAT MANDATE
------------------
Raw integers are converted to display Decimals and then to float ONLY at
the Prometheus boundary.

============================================================================
"""

import logging
from typing import Optional

from prometheus_client import Counter, Gauge

from app.ledger.decimal_gateway import to_display

# Configure module logger
logger = logging.getLogger(__name__)


# ============================================================================
# PROMETHEUS METRICS DEFINITIONS
# ============================================================================

BURNS_MIGRATED = Counter(
    "bridge_burns_migrated_total",
    "Total number of burn events inserted into the destination store"
)

BURNS_SKIPPED = Counter(
    "bridge_burns_skipped_total",
    "Total number of burn events skipped during migration",
    ["reason"]
)

MINTS_SUBMITTED = Counter(
    "bridge_mints_submitted_total",
    "Total number of mint submissions",
    ["mode"]
)

MINTS_CONFIRMED = Counter(
    "bridge_mints_confirmed_total",
    "Total number of mints confirmed on the destination ledger"
)

MINTS_FAILED = Counter(
    "bridge_mints_failed_total",
    "Total number of mint attempts that left the record PENDING",
    ["reason"]
)

MINTED_TOKENS = Counter(
    "bridge_minted_tokens_total",
    "Total display units minted on the destination ledger"
)

PENDING_RECORDS = Gauge(
    "bridge_pending_records",
    "PENDING records remaining after the last settlement run"
)


# ============================================================================
# METRIC UPDATE FUNCTIONS
# ============================================================================

def record_migrated(count: int = 1, correlation_id: Optional[str] = None) -> None:
    """
    Record burns inserted as PENDING.

    Side Effects: Increments Prometheus counter
    """
    try:
        BURNS_MIGRATED.inc(count)
        logger.debug(
            "Metric: burns_migrated | count=%s | correlation_id=%s",
            count, correlation_id
        )
    except Exception as e:
        logger.error(
            "[OBS-001] Failed to record burns_migrated metric | error=%s",
            str(e)
        )


def record_skipped(
    reason: str,
    count: int = 1,
    correlation_id: Optional[str] = None
) -> None:
    """
    Record burns skipped during migration.

    Args:
        reason: "duplicate", "below_minimum" or "malformed"
        count: Number of skipped burns
        correlation_id: Optional tracking ID
    """
    if count <= 0:
        return
    try:
        BURNS_SKIPPED.labels(reason=reason).inc(count)
        logger.debug(
            "Metric: burns_skipped | reason=%s | count=%s | correlation_id=%s",
            reason, count, correlation_id
        )
    except Exception as e:
        logger.error(
            "[OBS-002] Failed to record burns_skipped metric | error=%s",
            str(e)
        )


def record_mint_submitted(mode: str, correlation_id: Optional[str] = None) -> None:
    """Record a mint submission ("live" or "simulation")."""
    try:
        MINTS_SUBMITTED.labels(mode=mode).inc()
    except Exception as e:
        logger.error(
            "[OBS-003] Failed to record mints_submitted metric | error=%s",
            str(e)
        )


def record_mint_confirmed(amount_raw: int, correlation_id: Optional[str] = None) -> None:
    """
    Record a confirmed mint and its amount.

    ZERO-FLOAT MANDATE: raw -> Decimal -> float at Prometheus boundary.
    """
    try:
        MINTS_CONFIRMED.inc()
        MINTED_TOKENS.inc(float(to_display(amount_raw)))
        logger.debug(
            "Metric: mint_confirmed | amount_raw=%s | correlation_id=%s",
            amount_raw, correlation_id
        )
    except Exception as e:
        logger.error(
            "[OBS-004] Failed to record mint_confirmed metric | error=%s",
            str(e)
        )


def record_mint_failed(reason: str, correlation_id: Optional[str] = None) -> None:
    """Record a mint attempt that left its record PENDING."""
    try:
        MINTS_FAILED.labels(reason=reason).inc()
        logger.debug(
            "Metric: mint_failed | reason=%s | correlation_id=%s",
            reason, correlation_id
        )
    except Exception as e:
        logger.error(
            "[OBS-005] Failed to record mint_failed metric | error=%s",
            str(e)
        )


def update_pending(count: int, correlation_id: Optional[str] = None) -> None:
    """Set the PENDING records gauge."""
    try:
        PENDING_RECORDS.set(count)
    except Exception as e:
        logger.error(
            "[OBS-006] Failed to update pending_records metric | error=%s",
            str(e)
        )

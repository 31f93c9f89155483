"""
============================================================================
Burn Bridge - Migration Engine
============================================================================

Reliability Level: L6 Critical (Mission-Critical)
Input Constraints: Available source store, writable destination store
Side Effects: Inserts PENDING records into the destination store

MODES:
    Bulk            every source burn is considered
    Single-burner   the burner's burns are scanned newest first and at
                    most ONE new qualifying burn is inserted per run

Both modes are safe to re-run: existing signatures are skipped and the
insert itself is conditional.

============================================================================
"""

import logging
from contextlib import closing
from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional

from app.ledger.decimal_gateway import DecimalGateway
from app.observability.metrics import record_migrated, record_skipped
from services.burn_source import BurnSourceReader, SourceBurnEvent
from services.settlement_store import InsertOutcome, SettlementStore

# Configure module logger
logger = logging.getLogger(__name__)


@dataclass
class MigrationSummary:
    """Counts produced by one migration run."""
    migrated: int = 0
    skipped_duplicate: int = 0
    skipped_below_minimum: int = 0
    malformed: int = 0
    scanned: int = 0
    burner: Optional[str] = None
    correlation_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class MigrationEngine:
    """
    Copies qualifying source burns into the destination store.

    Reliability Level: L6 Critical
    Side Effects: Destination writes (never before the source is verified)

    Example Usage:
        engine = MigrationEngine(reader, store, correlation_id=cid)
        summary = engine.migrate()
        summary = engine.migrate(burner="7xKX...AsU9")
    """

    def __init__(
        self,
        reader: BurnSourceReader,
        store: SettlementStore,
        correlation_id: Optional[str] = None
    ) -> None:
        self.reader = reader
        self.store = store
        self.correlation_id = correlation_id
        self._gateway = DecimalGateway()

    @property
    def minimum_burn_amount(self) -> int:
        return self.store.minimum_burn_amount

    def migrate(self, burner: Optional[str] = None) -> MigrationSummary:
        """
        Run one migration pass.

        Args:
            burner: Restrict to a single burner (single-burner mode)

        Returns:
            MigrationSummary

        Raises:
            SourceUnavailableError: Source missing or unreadable; nothing written
        """
        summary = MigrationSummary(burner=burner, correlation_id=self.correlation_id)

        logger.info(
            f"[BRG-MIGRATE] Starting migration | source={self.reader.path} | "
            f"burner={burner or 'ALL'} | "
            f"minimum={self._gateway.format_amount(self.minimum_burn_amount)} | "
            f"correlation_id={self.correlation_id}"
        )

        # Source must be verified before the destination is touched
        self.reader.check_available()
        self.store.ensure_schema()

        malformed_before = self.reader.malformed_rows

        if burner is None:
            self._migrate_all(summary)
        else:
            self._migrate_burner(burner, summary)

        summary.malformed = self.reader.malformed_rows - malformed_before

        record_migrated(summary.migrated, self.correlation_id)
        record_skipped("duplicate", summary.skipped_duplicate, self.correlation_id)
        record_skipped("below_minimum", summary.skipped_below_minimum, self.correlation_id)
        record_skipped("malformed", summary.malformed, self.correlation_id)

        if summary.skipped_duplicate:
            logger.info(
                f"[BRG-MIGRATE] Skipped {summary.skipped_duplicate} existing records | "
                f"correlation_id={self.correlation_id}"
            )
        if summary.skipped_below_minimum:
            logger.info(
                f"[BRG-MIGRATE] Skipped {summary.skipped_below_minimum} records below "
                f"minimum ({self._gateway.format_amount(self.minimum_burn_amount)}) | "
                f"correlation_id={self.correlation_id}"
            )
        if summary.malformed:
            logger.warning(
                f"[BRG-SRC-002] Skipped {summary.malformed} malformed source rows | "
                f"correlation_id={self.correlation_id}"
            )

        logger.info(
            f"[BRG-MIGRATE] Migration completed | migrated={summary.migrated} | "
            f"scanned={summary.scanned} | correlation_id={self.correlation_id}"
        )
        return summary

    # -------------------------------------------------------------------------
    # Modes
    # -------------------------------------------------------------------------

    def _migrate_all(self, summary: MigrationSummary) -> None:
        for event in self.reader.list_burns():
            self._process_event(event, summary)

    def _migrate_burner(self, burner: str, summary: MigrationSummary) -> None:
        total = self.reader.count_burns(burner)
        logger.info(
            f"[BRG-MIGRATE] Found {total} total records for burner | "
            f"burner={burner} | correlation_id={self.correlation_id}"
        )

        if total == 0:
            logger.warning(
                f"[BRG-MIGRATE] No records found for burner | burner={burner} | "
                f"correlation_id={self.correlation_id}"
            )
            return

        with closing(self.reader.list_burns(burner)) as events:
            for event in events:
                if self._process_event(event, summary):
                    # One record per burner per run
                    break

        if summary.migrated == 0:
            logger.warning(
                f"[BRG-MIGRATE] No qualifying records found for burner | "
                f"burner={burner} | "
                f"minimum={self._gateway.format_amount(self.minimum_burn_amount)} | "
                f"correlation_id={self.correlation_id}"
            )

    def _process_event(self, event: SourceBurnEvent, summary: MigrationSummary) -> bool:
        """Returns True if the event was inserted."""
        summary.scanned += 1

        if self.store.exists(event.signature):
            summary.skipped_duplicate += 1
            logger.debug(
                f"[BRG-MIGRATE] Record already exists, skipping | "
                f"signature={event.short_signature()} | "
                f"correlation_id={self.correlation_id}"
            )
            return False

        if not self._gateway.meets_minimum(event.amount, self.minimum_burn_amount):
            summary.skipped_below_minimum += 1
            logger.debug(
                f"[BRG-MIGRATE] Below minimum, skipping | "
                f"signature={event.short_signature()} | amount={event.amount} | "
                f"correlation_id={self.correlation_id}"
            )
            return False

        outcome = self.store.insert_pending(event)
        if outcome is InsertOutcome.DUPLICATE:
            summary.skipped_duplicate += 1
            return False

        summary.migrated += 1
        logger.info(
            f"[BRG-MIGRATE] Migrated record | burner={event.burner} | "
            f"amount={self._gateway.format_amount(event.amount)} | "
            f"signature={event.short_signature()} | "
            f"correlation_id={self.correlation_id}"
        )
        return True

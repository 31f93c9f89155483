"""
============================================================================
Burn Bridge - Destination Store
============================================================================

Reliability Level: L6 Critical (Mission-Critical)
Input Constraints: SourceBurnEvent values with amount >= minimum
Side Effects: Database writes to burn_records table

IDEMPOTENCY:
`signature` carries a UNIQUE constraint and inserts are conditional
(INSERT ... ON CONFLICT DO NOTHING). Re-inserting a known burn reports
DUPLICATE and leaves the stored row untouched.

TERMINALITY:
mark_minted() only updates rows still in PENDING. A MINTED record is
never reset or re-stamped.

SUBMISSION INTENT:
record_submission() persists the signed transaction id and the blockhash
it is bound to before broadcast, so a crash between broadcast and
mark_minted() can be reconciled on the next run.

ERROR CODES:
    - BRG-DST-001: Record not found
    - BRG-DST-002: Amount below minimum burn threshold

============================================================================
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy import text
from sqlalchemy.engine import Engine

from app.ledger.decimal_gateway import to_display
from services.burn_source import SourceBurnEvent

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

TABLE_NAME = "burn_records"

SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS burn_records (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        signature TEXT NOT NULL UNIQUE,
        burner TEXT NOT NULL,
        amount INTEGER NOT NULL CHECK (amount >= 0),
        memo TEXT,
        token TEXT,
        observed_at TEXT,
        memo_checked TEXT,
        created_at TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'PENDING'
            CHECK (status IN ('PENDING', 'MINTED')),
        minted_at TEXT,
        mint_signature TEXT,
        submission_signature TEXT,
        submission_reference TEXT,
        submitted_at TEXT,
        CHECK (
            (status = 'MINTED' AND minted_at IS NOT NULL AND mint_signature IS NOT NULL)
            OR (status = 'PENDING' AND minted_at IS NULL AND mint_signature IS NULL)
        )
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_burn_records_burner ON burn_records(burner)",
    "CREATE INDEX IF NOT EXISTS idx_burn_records_amount ON burn_records(amount)",
    "CREATE INDEX IF NOT EXISTS idx_burn_records_status ON burn_records(status)",
    "CREATE INDEX IF NOT EXISTS idx_burn_records_observed_at ON burn_records(observed_at)",
    "CREATE INDEX IF NOT EXISTS idx_burn_records_status_observed "
    "ON burn_records(status, observed_at)",
)

RECORD_COLUMNS = (
    "id, signature, burner, amount, memo, token, observed_at, memo_checked, "
    "created_at, status, minted_at, mint_signature, submission_signature, "
    "submission_reference, submitted_at"
)


# =============================================================================
# Exceptions
# =============================================================================

class SettlementStoreError(Exception):
    """Base exception for destination store errors."""
    error_code = "BRG-DST-000"


class RecordNotFoundError(SettlementStoreError):
    """Raised when a signature has no settlement record (BRG-DST-001)."""
    error_code = "BRG-DST-001"


class BelowThresholdError(SettlementStoreError):
    """Raised when a record below the minimum reaches the store (BRG-DST-002)."""
    error_code = "BRG-DST-002"


# =============================================================================
# Enums & Data Classes
# =============================================================================

class RecordStatus(Enum):
    PENDING = "PENDING"
    MINTED = "MINTED"


class InsertOutcome(Enum):
    INSERTED = "INSERTED"
    DUPLICATE = "DUPLICATE"


@dataclass
class SettlementRecord:
    """
    Tracked burn awaiting (or having received) its mint.

    Reliability Level: L6 Critical
    """
    id: Optional[int]
    signature: str
    burner: str
    amount: int
    memo: Optional[str]
    token: Optional[str]
    observed_at: Optional[datetime]
    memo_checked: Optional[str]
    created_at: datetime
    status: RecordStatus
    minted_at: Optional[datetime] = None
    mint_signature: Optional[str] = None
    submission_signature: Optional[str] = None
    submission_reference: Optional[str] = None
    submitted_at: Optional[datetime] = None

    @property
    def is_minted(self) -> bool:
        return self.status is RecordStatus.MINTED

    @property
    def has_submission(self) -> bool:
        return self.submission_signature is not None

    @property
    def amount_display(self) -> Decimal:
        return to_display(self.amount)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "signature": self.signature,
            "burner": self.burner,
            "amount": self.amount,
            "amount_display": str(self.amount_display),
            "memo": self.memo,
            "token": self.token,
            "observed_at": _to_iso(self.observed_at),
            "memo_checked": self.memo_checked,
            "created_at": _to_iso(self.created_at),
            "status": self.status.value,
            "minted_at": _to_iso(self.minted_at),
            "mint_signature": self.mint_signature,
        }


@dataclass
class WalletSummary:
    """Per-wallet projection. `total_burned` counts pending amounts only."""
    wallet_address: str
    total_burned: Decimal
    total_minted: Decimal
    burn_count: int
    mint_count: int
    first_burn: Optional[datetime]
    last_mint: Optional[datetime]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "wallet_address": self.wallet_address,
            "total_burned": str(self.total_burned),
            "total_minted": str(self.total_minted),
            "burn_count": self.burn_count,
            "mint_count": self.mint_count,
            "first_burn": _to_iso(self.first_burn),
            "last_mint": _to_iso(self.last_mint),
        }


@dataclass
class Statistics:
    """Store-wide totals."""
    total_records: int
    total_burned_amount: Decimal
    total_minted_amount: Decimal
    unique_wallets: int
    pending_mints: int
    successful_mints: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_records": self.total_records,
            "total_burned_amount": str(self.total_burned_amount),
            "total_minted_amount": str(self.total_minted_amount),
            "unique_wallets": self.unique_wallets,
            "pending_mints": self.pending_mints,
            "successful_mints": self.successful_mints,
        }


# =============================================================================
# Timestamp helpers
# =============================================================================

def _to_iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _from_iso(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except (TypeError, ValueError):
        logger.warning(f"[BRG-DST] Unreadable stored timestamp | value={value!r}")
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# =============================================================================
# Settlement Store Class
# =============================================================================

class SettlementStore:
    """
    Destination store persistence layer.

    Reliability Level: L6 Critical
    Input Constraints: Engine bound to the destination database
    Side Effects: Database INSERT/UPDATE on burn_records

    Every mutation runs in its own transaction (engine.begin()).
    SQLAlchemy errors propagate to the caller.
    """

    def __init__(
        self,
        engine: Engine,
        minimum_burn_amount: int,
        correlation_id: Optional[str] = None
    ) -> None:
        self._engine = engine
        self.minimum_burn_amount = minimum_burn_amount
        self.correlation_id = correlation_id

    @property
    def engine(self) -> Engine:
        return self._engine

    # -------------------------------------------------------------------------
    # Schema
    # -------------------------------------------------------------------------

    def ensure_schema(self) -> None:
        """Create the table and its indexes if they do not exist."""
        with self._engine.begin() as conn:
            for statement in SCHEMA_STATEMENTS:
                conn.execute(text(statement))

        logger.info(
            f"[BRG-DST] Destination schema ready | table={TABLE_NAME} | "
            f"correlation_id={self.correlation_id}"
        )

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def insert_pending(self, event: SourceBurnEvent) -> InsertOutcome:
        """
        Insert a PENDING record for `event` unless its signature exists.

        Returns:
            InsertOutcome.INSERTED or InsertOutcome.DUPLICATE

        Raises:
            BelowThresholdError: If event.amount < minimum_burn_amount
        """
        if event.amount < self.minimum_burn_amount:
            logger.error(
                f"[BRG-DST-002] Refusing below-minimum record | "
                f"signature={event.signature} | amount={event.amount} | "
                f"minimum={self.minimum_burn_amount} | "
                f"correlation_id={self.correlation_id}"
            )
            raise BelowThresholdError(
                f"BRG-DST-002: amount {event.amount} below minimum "
                f"{self.minimum_burn_amount} for {event.signature}"
            )

        insert_query = text("""
            INSERT INTO burn_records (
                signature, burner, amount, memo, token, observed_at,
                memo_checked, created_at, status
            ) VALUES (
                :signature, :burner, :amount, :memo, :token, :observed_at,
                :memo_checked, :created_at, 'PENDING'
            )
            ON CONFLICT(signature) DO NOTHING
        """)

        with self._engine.begin() as conn:
            result = conn.execute(insert_query, {
                "signature": event.signature,
                "burner": event.burner,
                "amount": event.amount,
                "memo": event.memo,
                "token": event.token,
                "observed_at": _to_iso(event.observed_at),
                "memo_checked": event.memo_checked,
                "created_at": _to_iso(event.created_at),
            })

        if result.rowcount == 1:
            logger.debug(
                f"[BRG-DST] Record inserted | signature={event.signature} | "
                f"correlation_id={self.correlation_id}"
            )
            return InsertOutcome.INSERTED
        return InsertOutcome.DUPLICATE

    def mark_minted(
        self,
        signature: str,
        mint_signature: str,
        minted_at: Optional[datetime] = None
    ) -> bool:
        """
        Transition a PENDING record to MINTED.

        Returns:
            True if the record transitioned, False if it was already MINTED

        Raises:
            RecordNotFoundError: If no record exists for `signature`
        """
        minted_at = minted_at or datetime.now(timezone.utc)

        update_query = text("""
            UPDATE burn_records
            SET status = 'MINTED',
                minted_at = :minted_at,
                mint_signature = :mint_signature
            WHERE signature = :signature
              AND status = 'PENDING'
        """)

        with self._engine.begin() as conn:
            result = conn.execute(update_query, {
                "signature": signature,
                "mint_signature": mint_signature,
                "minted_at": _to_iso(minted_at),
            })

        if result.rowcount == 1:
            logger.info(
                f"[BRG-DST] Record marked minted | signature={signature} | "
                f"mint_signature={mint_signature} | "
                f"correlation_id={self.correlation_id}"
            )
            return True

        self._require_exists(signature)
        logger.warning(
            f"[BRG-DST] Record already minted - not updated | "
            f"signature={signature} | correlation_id={self.correlation_id}"
        )
        return False

    def record_submission(
        self,
        signature: str,
        submission_signature: str,
        reference: str,
        submitted_at: Optional[datetime] = None
    ) -> bool:
        """
        Persist the intent to broadcast `submission_signature`.

        Returns:
            True if recorded, False if the record is already MINTED

        Raises:
            RecordNotFoundError: If no record exists for `signature`
        """
        update_query = text("""
            UPDATE burn_records
            SET submission_signature = :submission_signature,
                submission_reference = :reference,
                submitted_at = :submitted_at
            WHERE signature = :signature
              AND status = 'PENDING'
        """)

        with self._engine.begin() as conn:
            result = conn.execute(update_query, {
                "signature": signature,
                "submission_signature": submission_signature,
                "reference": reference,
                "submitted_at": _to_iso(submitted_at or datetime.now(timezone.utc)),
            })

        if result.rowcount == 1:
            logger.debug(
                f"[BRG-DST] Submission intent recorded | signature={signature} | "
                f"submission_signature={submission_signature} | "
                f"correlation_id={self.correlation_id}"
            )
            return True

        self._require_exists(signature)
        return False

    def clear_submission(self, signature: str) -> None:
        """Drop the submission intent of a PENDING record."""
        update_query = text("""
            UPDATE burn_records
            SET submission_signature = NULL,
                submission_reference = NULL,
                submitted_at = NULL
            WHERE signature = :signature
              AND status = 'PENDING'
        """)

        with self._engine.begin() as conn:
            conn.execute(update_query, {"signature": signature})

        logger.debug(
            f"[BRG-DST] Submission intent cleared | signature={signature} | "
            f"correlation_id={self.correlation_id}"
        )

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def exists(self, signature: str) -> bool:
        query = text("SELECT 1 FROM burn_records WHERE signature = :signature")
        with self._engine.connect() as conn:
            return conn.execute(query, {"signature": signature}).first() is not None

    def get(self, signature: str) -> Optional[SettlementRecord]:
        query = text(
            f"SELECT {RECORD_COLUMNS} FROM burn_records WHERE signature = :signature"
        )
        with self._engine.connect() as conn:
            row = conn.execute(query, {"signature": signature}).first()
        return self._row_to_record(row) if row is not None else None

    def list_pending(self, min_amount: Optional[int] = None) -> List[SettlementRecord]:
        """
        PENDING records at or above `min_amount`, oldest burn first.

        Args:
            min_amount: Raw threshold (defaults to the store minimum)
        """
        threshold = self.minimum_burn_amount if min_amount is None else min_amount
        query = text(f"""
            SELECT {RECORD_COLUMNS}
            FROM burn_records
            WHERE status = 'PENDING'
              AND amount >= :min_amount
            ORDER BY observed_at ASC, id ASC
        """)
        with self._engine.connect() as conn:
            rows = conn.execute(query, {"min_amount": threshold}).fetchall()
        return [self._row_to_record(row) for row in rows]

    def list_all(self) -> List[SettlementRecord]:
        """All records, newest burn first."""
        query = text(f"""
            SELECT {RECORD_COLUMNS}
            FROM burn_records
            ORDER BY observed_at DESC, id DESC
        """)
        with self._engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [self._row_to_record(row) for row in rows]

    def wallet_summaries(self) -> List[WalletSummary]:
        query = text("""
            SELECT
                burner,
                COALESCE(SUM(CASE WHEN status = 'PENDING' THEN amount ELSE 0 END), 0)
                    AS total_burned,
                COALESCE(SUM(CASE WHEN status = 'MINTED' THEN amount ELSE 0 END), 0)
                    AS total_minted,
                COUNT(*) AS burn_count,
                COALESCE(SUM(CASE WHEN status = 'MINTED' THEN 1 ELSE 0 END), 0)
                    AS mint_count,
                MIN(observed_at) AS first_burn,
                MAX(minted_at) AS last_mint
            FROM burn_records
            GROUP BY burner
            ORDER BY total_burned DESC, burner ASC
        """)
        with self._engine.connect() as conn:
            rows = conn.execute(query).fetchall()

        return [
            WalletSummary(
                wallet_address=row[0],
                total_burned=to_display(row[1]),
                total_minted=to_display(row[2]),
                burn_count=int(row[3]),
                mint_count=int(row[4]),
                first_burn=_from_iso(row[5]),
                last_mint=_from_iso(row[6]),
            )
            for row in rows
        ]

    def statistics(self) -> Statistics:
        query = text("""
            SELECT
                COUNT(*),
                COALESCE(SUM(amount), 0),
                COALESCE(SUM(CASE WHEN status = 'MINTED' THEN amount ELSE 0 END), 0),
                COUNT(DISTINCT burner),
                COALESCE(SUM(CASE WHEN status = 'PENDING' THEN 1 ELSE 0 END), 0),
                COALESCE(SUM(CASE WHEN status = 'MINTED' THEN 1 ELSE 0 END), 0)
            FROM burn_records
        """)
        with self._engine.connect() as conn:
            row = conn.execute(query).one()

        return Statistics(
            total_records=int(row[0]),
            total_burned_amount=to_display(row[1]),
            total_minted_amount=to_display(row[2]),
            unique_wallets=int(row[3]),
            pending_mints=int(row[4]),
            successful_mints=int(row[5]),
        )

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _require_exists(self, signature: str) -> None:
        if not self.exists(signature):
            logger.error(
                f"[BRG-DST-001] Record not found | signature={signature} | "
                f"correlation_id={self.correlation_id}"
            )
            raise RecordNotFoundError(f"BRG-DST-001: No record for {signature}")

    @staticmethod
    def _row_to_record(row) -> SettlementRecord:
        return SettlementRecord(
            id=row[0],
            signature=row[1],
            burner=row[2],
            amount=int(row[3]),
            memo=row[4],
            token=row[5],
            observed_at=_from_iso(row[6]),
            memo_checked=row[7],
            created_at=_from_iso(row[8]) or datetime.now(timezone.utc),
            status=RecordStatus(row[9]),
            minted_at=_from_iso(row[10]),
            mint_signature=row[11],
            submission_signature=row[12],
            submission_reference=row[13],
            submitted_at=_from_iso(row[14]),
        )

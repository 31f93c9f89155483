"""
============================================================================
Burn Bridge - Source Record Reader
============================================================================

Reliability Level: L6 Critical (Mission-Critical)
Input Constraints: SQLite file with a `burns` table
Side Effects: None (the source store is opened read-only)

The source store is owned by the burn indexer and was written by several
generations of tooling, so a single column can hold mixed encodings:

    amount      decimal string | float | integer
    timestamp   unix epoch (int/float) | RFC3339 | "YYYY-MM-DD HH:MM:SS"
                | "YYYY-MM-DDTHH:MM:SS"
    created_at  same as timestamp

All normalization happens here. Downstream components only ever see
SourceBurnEvent values with integer raw amounts and aware UTC datetimes.

ERROR CODES:
    - BRG-SRC-001: Source store unavailable
    - BRG-SRC-002: Row cannot be decoded (skipped)

============================================================================
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Union

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from app.database.session import create_source_engine
from app.ledger.decimal_gateway import parse_raw_amount

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

SOURCE_TABLE = "burns"

REQUIRED_COLUMNS = ("signature", "burner", "amount")
OPTIONAL_COLUMNS = ("memo", "token", "timestamp", "memo_checked", "created_at")

DATETIME_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d %H:%M:%S.%f",
    "%Y-%m-%dT%H:%M:%S.%f",
)

_NUMERIC_RE = re.compile(r"^-?\d+(\.\d+)?$")


# =============================================================================
# Exceptions
# =============================================================================

class SourceUnavailableError(Exception):
    """Raised when the source store cannot be read (BRG-SRC-001)."""
    error_code = "BRG-SRC-001"


class RowDecodeError(ValueError):
    """Raised when a required field of a source row is unusable (BRG-SRC-002)."""
    error_code = "BRG-SRC-002"


# =============================================================================
# Data Classes
# =============================================================================

@dataclass(frozen=True)
class SourceBurnEvent:
    """
    A burn observed on the source ledger.

    Reliability Level: L6 Critical
    """
    signature: str
    burner: str
    amount: int
    memo: Optional[str]
    token: Optional[str]
    observed_at: Optional[datetime]
    memo_checked: Optional[str]
    created_at: datetime

    def short_signature(self) -> str:
        return self.signature[:8]


# =============================================================================
# Field Normalization
# =============================================================================

def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Normalize a stored timestamp to an aware UTC datetime.

    Naive strings are interpreted as UTC. Returns None when the value
    cannot be interpreted.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, bytes):
        try:
            value = value.decode("utf-8")
        except UnicodeDecodeError:
            return None

    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None

    if not isinstance(value, str):
        return None

    candidate = value.strip()
    if not candidate:
        return None

    if _NUMERIC_RE.match(candidate):
        return parse_timestamp(float(candidate))

    parsed: Optional[datetime] = None
    try:
        # RFC3339; "Z" is not accepted by fromisoformat before Python 3.11
        parsed = datetime.fromisoformat(candidate.replace("Z", "+00:00"))
    except ValueError:
        for fmt in DATETIME_FORMATS:
            try:
                parsed = datetime.strptime(candidate, fmt)
                break
            except ValueError:
                continue

    if parsed is None:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def optional_text(value: Any) -> Optional[str]:
    """Keep str, decode bytes, drop anything else."""
    if isinstance(value, str):
        return value
    if isinstance(value, bytes):
        try:
            return value.decode("utf-8")
        except UnicodeDecodeError:
            return None
    return None


def required_text(value: Any, field_name: str) -> str:
    """
    Decode a required identifier column.

    Raises:
        RowDecodeError: If the value is missing, empty or not text
    """
    decoded = optional_text(value)
    if decoded is None or not decoded.strip():
        raise RowDecodeError(
            f"BRG-SRC-002: {field_name} is missing or not text ({type(value).__name__})"
        )
    return decoded.strip()


# =============================================================================
# Source Record Reader
# =============================================================================

class BurnSourceReader:
    """
    Read-only access to the source burn store.

    Reliability Level: L6 Critical
    Input Constraints: Path to an existing SQLite file
    Side Effects: None

    Example Usage:
        reader = BurnSourceReader("burn-data/burns.db", correlation_id=cid)
        reader.check_available()
        for event in reader.list_burns():
            ...
    """

    def __init__(
        self,
        path: Union[str, Path],
        correlation_id: Optional[str] = None,
        engine: Optional[Engine] = None
    ) -> None:
        self.path = Path(path).expanduser()
        self.correlation_id = correlation_id
        self._engine = engine
        self._columns: Optional[List[str]] = None
        self.malformed_rows = 0

    # -------------------------------------------------------------------------
    # Availability
    # -------------------------------------------------------------------------

    def check_available(self) -> None:
        """
        Verify the source store can be read.

        Raises:
            SourceUnavailableError: If the file is missing, cannot be opened,
                or lacks the burns table / required columns
        """
        if self._engine is None and not self.path.exists():
            logger.error(
                f"[BRG-SRC-001] Source database not found | "
                f"path={self.path} | correlation_id={self.correlation_id}"
            )
            raise SourceUnavailableError(
                f"BRG-SRC-001: Source database not found: {self.path}"
            )

        try:
            engine = self._get_engine()
            with engine.connect() as conn:
                rows = conn.execute(
                    text(f"PRAGMA table_info({SOURCE_TABLE})")
                ).fetchall()
        except SQLAlchemyError as e:
            logger.error(
                f"[BRG-SRC-001] Source database unreadable | "
                f"path={self.path} | error={e} | correlation_id={self.correlation_id}"
            )
            raise SourceUnavailableError(
                f"BRG-SRC-001: Source database unreadable: {self.path}: {e}"
            ) from e

        columns = [row[1] for row in rows]
        missing = [c for c in REQUIRED_COLUMNS if c not in columns]
        if not columns or missing:
            detail = "table missing" if not columns else f"missing columns {missing}"
            logger.error(
                f"[BRG-SRC-001] Source schema invalid | "
                f"table={SOURCE_TABLE} | detail={detail} | "
                f"correlation_id={self.correlation_id}"
            )
            raise SourceUnavailableError(
                f"BRG-SRC-001: Source table '{SOURCE_TABLE}' invalid: {detail}"
            )

        self._columns = columns

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def count_burns(self, burner: Optional[str] = None) -> int:
        """Number of source rows, optionally for a single burner."""
        self._require_available()
        query = f"SELECT COUNT(*) FROM {SOURCE_TABLE}"
        params: Dict[str, Any] = {}
        if burner is not None:
            query += " WHERE burner = :burner"
            params["burner"] = burner

        with self._get_engine().connect() as conn:
            return int(conn.execute(text(query), params).scalar() or 0)

    def list_burns(self, burner: Optional[str] = None) -> Iterator[SourceBurnEvent]:
        """
        Stream burn events, newest first.

        Rows whose signature or burner cannot be decoded are skipped with a
        warning and counted in `malformed_rows`.

        Args:
            burner: Restrict to a single burner address

        Yields:
            SourceBurnEvent
        """
        self._require_available()

        select_list = ", ".join(
            c if c in self._columns else f"NULL AS {c}"
            for c in REQUIRED_COLUMNS + OPTIONAL_COLUMNS
        )
        where = " WHERE burner = :burner" if burner is not None else ""
        order_key = (
            "CASE WHEN typeof(timestamp) IN ('integer', 'real') "
            "THEN datetime(timestamp, 'unixepoch') "
            # Epoch stored as text; datetime() would read it as a Julian day
            "WHEN typeof(timestamp) = 'text' AND timestamp GLOB '*[0-9]*' "
            "AND timestamp NOT GLOB '*[^0-9.]*' "
            "THEN datetime(CAST(timestamp AS REAL), 'unixepoch') "
            "ELSE datetime(timestamp) END"
            if "timestamp" in self._columns else "NULL"
        )
        query = text(
            f"SELECT {select_list} FROM {SOURCE_TABLE}{where} "
            f"ORDER BY {order_key} DESC, signature DESC"
        )
        params = {"burner": burner} if burner is not None else {}

        with self._get_engine().connect() as conn:
            result = conn.execute(query, params)
            for row in result:
                mapping = row._mapping
                try:
                    yield self._decode_row(mapping)
                except RowDecodeError as e:
                    self.malformed_rows += 1
                    logger.warning(
                        f"[BRG-SRC-002] Skipping malformed source row | "
                        f"error={e} | correlation_id={self.correlation_id}"
                    )

    def _decode_row(self, mapping) -> SourceBurnEvent:
        signature = required_text(mapping["signature"], "signature")
        burner = required_text(mapping["burner"], "burner")

        created_at = parse_timestamp(mapping["created_at"])
        if created_at is None:
            created_at = datetime.now(timezone.utc)

        return SourceBurnEvent(
            signature=signature,
            burner=burner,
            amount=parse_raw_amount(mapping["amount"], self.correlation_id),
            memo=optional_text(mapping["memo"]),
            token=optional_text(mapping["token"]),
            observed_at=parse_timestamp(mapping["timestamp"]),
            memo_checked=optional_text(mapping["memo_checked"]),
            created_at=created_at,
        )

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _require_available(self) -> None:
        if self._columns is None:
            self.check_available()

    def _get_engine(self) -> Engine:
        if self._engine is None:
            self._engine = create_source_engine(self.path)
        return self._engine

    def close(self) -> None:
        """Release pooled connections."""
        if self._engine is not None:
            self._engine.dispose()

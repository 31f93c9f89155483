"""
============================================================================
Burn Bridge - Settlement Engine
============================================================================

Reliability Level: L6 Critical (Mission-Critical)
Input Constraints: Destination store with PENDING records
Side Effects: Ledger submissions, PENDING -> MINTED transitions

STATE MACHINE:
    PENDING --(submitted + confirmed)--> MINTED

There is no FAILED state. A record whose mint fails, is rejected or times
out stays PENDING and is picked up by the next run.

SUBMISSION INTENT:
Each transaction is signed locally before broadcast, so its id is known
up front. The id and the blockhash it is bound to are stored first, then
the transaction is sent. A record that still carries an intent at the
start of a run is reconciled before anything new is submitted:

    intent CONFIRMED on ledger          -> mark MINTED, no resubmission
    intent FAILED on ledger             -> clear intent, resubmit
    intent IN_FLIGHT on ledger          -> defer (not yet confirmed)
    intent UNKNOWN, blockhash valid     -> defer (it may still land)
    intent UNKNOWN, blockhash expired   -> clear intent, resubmit

SIMULATION MODE:
Without a mint authority no ledger call is made and the store is never
mutated. Each record gets a deterministic placeholder id.

============================================================================
"""

import hashlib
import logging
import time
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import base58

from app.ledger.authority_signer import MintAuthority
from app.ledger.decimal_gateway import format_amount
from app.ledger.ledger_client import (
    ConfirmationStatus,
    ConfirmationTimeoutError,
    CreateReceivingAccount,
    LedgerClient,
    LedgerClientError,
    MintInstruction,
    MintTo,
    SignatureStatus,
    SubmissionRejectedError,
)
from app.ledger.rate_limiter import SubmissionPacer
from app.observability.metrics import (
    record_mint_confirmed,
    record_mint_failed,
    record_mint_submitted,
    update_pending,
)
from services.settlement_store import SettlementRecord, SettlementStore

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

DEFAULT_SIMULATION_DELAY_SECONDS = 0.5


# =============================================================================
# Enums & Data Classes
# =============================================================================

class SettlementMode(Enum):
    LIVE = "live"
    SIMULATION = "simulation"


class RecordOutcome(Enum):
    """Result of settling one record."""
    MINTED = "MINTED"
    RECOVERED = "RECOVERED"
    DEFERRED = "DEFERRED"
    FAILED = "FAILED"
    SIMULATED = "SIMULATED"
    SKIPPED = "SKIPPED"


@dataclass
class SettlementSummary:
    """Counts produced by one settlement run."""
    mode: str
    attempted: int = 0
    minted: int = 0
    failed: int = 0
    deferred: int = 0
    recovered: int = 0
    simulated: int = 0
    skipped: int = 0
    placeholder_ids: List[str] = field(default_factory=list)
    pending_after: int = 0
    minted_after: int = 0
    total_records: int = 0
    correlation_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def simulation_signature(signature: str, burner: str, amount: int) -> str:
    """
    Deterministic placeholder transaction id for simulation mode.

    base58(sha256("signature|burner|amount")), so it has the shape of a
    real transaction id but can never collide with one.
    """
    digest = hashlib.sha256(f"{signature}|{burner}|{amount}".encode("utf-8")).digest()
    return base58.b58encode(digest).decode("ascii")


# =============================================================================
# Settlement Engine
# =============================================================================

class SettlementEngine:
    """
    Mints the destination token for every PENDING record, one at a time.

    Reliability Level: L6 Critical
    Side Effects: Ledger submissions and store updates (live mode only)

    Example Usage:
        engine = SettlementEngine(store, ledger, authority, correlation_id=cid)
        summary = engine.process_pending()
    """

    def __init__(
        self,
        store: SettlementStore,
        ledger: Optional[LedgerClient],
        authority: Optional[MintAuthority],
        pacer: Optional[SubmissionPacer] = None,
        simulation_delay_seconds: float = DEFAULT_SIMULATION_DELAY_SECONDS,
        explorer_url: Optional[str] = None,
        correlation_id: Optional[str] = None,
        sleep: Callable[[float], None] = time.sleep,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc)
    ) -> None:
        self.store = store
        self.ledger = ledger
        self.authority = authority
        self.pacer = pacer or SubmissionPacer()
        self.simulation_delay_seconds = simulation_delay_seconds
        self.explorer_url = explorer_url
        self.correlation_id = correlation_id
        self._sleep = sleep
        self._now = now

    @property
    def mode(self) -> SettlementMode:
        if self.authority is None or self.ledger is None:
            return SettlementMode.SIMULATION
        return SettlementMode.LIVE

    # -------------------------------------------------------------------------
    # Batch
    # -------------------------------------------------------------------------

    def process_pending(self) -> SettlementSummary:
        """
        Settle every PENDING record at or above the store minimum.

        Returns:
            SettlementSummary

        Raises:
            LedgerUnavailableError: Ledger unreachable at start (live mode)
            RecordNotFoundError: Store changed underneath the engine
            sqlalchemy.exc.SQLAlchemyError: Store connectivity failure
        """
        mode = self.mode
        summary = SettlementSummary(mode=mode.value, correlation_id=self.correlation_id)

        if mode is SettlementMode.LIVE:
            self.ledger.check_connection()
            self.ledger.preflight(self.authority)
        else:
            logger.warning(
                f"[BRG-SEC-001] No mint authority - running in simulation mode | "
                f"correlation_id={self.correlation_id}"
            )

        pending = self.store.list_pending()
        logger.info(
            f"[BRG-SETTLE] Found {len(pending)} records to mint | mode={mode.value} | "
            f"correlation_id={self.correlation_id}"
        )

        for record in pending:
            summary.attempted += 1
            logger.info(
                f"[BRG-SETTLE] Minting {format_amount(record.amount)} | "
                f"burner={record.burner} | burn_signature={record.signature} | "
                f"correlation_id={self.correlation_id}"
            )

            if mode is SettlementMode.SIMULATION:
                summary.placeholder_ids.append(self._simulate(record))
                summary.simulated += 1
                continue

            outcome = self.settle_record(record)
            if outcome is RecordOutcome.MINTED:
                summary.minted += 1
            elif outcome is RecordOutcome.RECOVERED:
                summary.recovered += 1
            elif outcome is RecordOutcome.DEFERRED:
                summary.deferred += 1
            elif outcome is RecordOutcome.SKIPPED:
                summary.skipped += 1
            else:
                summary.failed += 1

        statistics = self.store.statistics()
        summary.pending_after = statistics.pending_mints
        summary.minted_after = statistics.successful_mints
        summary.total_records = statistics.total_records
        update_pending(statistics.pending_mints, self.correlation_id)

        logger.info(
            f"[BRG-SETTLE] Settlement completed | mode={mode.value} | "
            f"attempted={summary.attempted} | minted={summary.minted} | "
            f"recovered={summary.recovered} | deferred={summary.deferred} | "
            f"failed={summary.failed} | skipped={summary.skipped} | "
            f"simulated={summary.simulated} | "
            f"correlation_id={self.correlation_id}"
        )
        logger.info(
            f"[BRG-SETTLE] Store summary | pending={summary.pending_after} | "
            f"minted={summary.minted_after} | total={summary.total_records} | "
            f"correlation_id={self.correlation_id}"
        )
        return summary

    # -------------------------------------------------------------------------
    # Single record (live)
    # -------------------------------------------------------------------------

    def settle_record(self, record: SettlementRecord) -> RecordOutcome:
        """
        Settle one PENDING record against the ledger.

        Ledger errors are contained: the record stays PENDING and the
        outcome is FAILED. Store errors propagate.
        """
        try:
            if record.has_submission:
                outcome = self._reconcile_intent(record)
                if outcome is not None:
                    return outcome
            return self._submit_mint(record)

        except LedgerClientError as e:
            logger.error(
                f"[{e.error_code}] Mint failed - record stays PENDING | "
                f"burn_signature={record.signature} | "
                f"amount={format_amount(record.amount)} | error={e} | "
                f"correlation_id={self.correlation_id}"
            )
            record_mint_failed(e.error_code, self.correlation_id)
            return RecordOutcome.FAILED

        except ValueError as e:
            logger.error(
                f"[BRG-LED-000] Invalid burner address - record stays PENDING | "
                f"burn_signature={record.signature} | burner={record.burner} | "
                f"error={e} | correlation_id={self.correlation_id}"
            )
            record_mint_failed("invalid_address", self.correlation_id)
            return RecordOutcome.FAILED

    def _reconcile_intent(self, record: SettlementRecord) -> Optional[RecordOutcome]:
        """
        Returns an outcome, or None when the record must be resubmitted.

        Reference validity is read before the signature status, so a
        transaction that lands while the reference expires is still seen.
        """
        tx_id = record.submission_signature
        reference = record.submission_reference
        reference_valid = reference is not None and self.ledger.is_reference_valid(reference)
        status = self.ledger.signature_status(tx_id)

        if status is SignatureStatus.CONFIRMED:
            self.store.mark_minted(record.signature, tx_id, self._now())
            record_mint_confirmed(record.amount, self.correlation_id)
            logger.info(
                f"[BRG-SETTLE] Recovered confirmed submission | "
                f"burn_signature={record.signature} | mint_signature={tx_id} | "
                f"correlation_id={self.correlation_id}"
            )
            return RecordOutcome.RECOVERED

        if status is SignatureStatus.FAILED:
            logger.warning(
                f"[BRG-SETTLE] Previous submission failed on ledger - resubmitting | "
                f"burn_signature={record.signature} | mint_signature={tx_id} | "
                f"correlation_id={self.correlation_id}"
            )
            self.store.clear_submission(record.signature)
            return None

        if status is SignatureStatus.IN_FLIGHT or reference_valid:
            logger.warning(
                f"[BRG-SETTLE] Previous submission still in flight - deferring | "
                f"burn_signature={record.signature} | mint_signature={tx_id} | "
                f"status={status.value} | correlation_id={self.correlation_id}"
            )
            return RecordOutcome.DEFERRED

        logger.warning(
            f"[BRG-SETTLE] Previous submission expired - resubmitting | "
            f"burn_signature={record.signature} | mint_signature={tx_id} | "
            f"correlation_id={self.correlation_id}"
        )
        self.store.clear_submission(record.signature)
        return None

    def _submit_mint(self, record: SettlementRecord) -> RecordOutcome:
        self.pacer.wait(self.correlation_id)

        receiving_account = self.ledger.receiving_account(record.burner)
        instructions: List[MintInstruction] = []
        if not self.ledger.account_exists(receiving_account):
            logger.info(
                f"[BRG-SETTLE] Creating receiving account | owner={record.burner} | "
                f"account={receiving_account} | correlation_id={self.correlation_id}"
            )
            instructions.append(CreateReceivingAccount(owner=record.burner))
        instructions.append(MintTo(receiving_account=receiving_account, amount=record.amount))

        reference = self.ledger.get_latest_reference()
        prepared = self.ledger.prepare(instructions, self.authority, reference)

        recorded = self.store.record_submission(
            record.signature, prepared.transaction_id, reference, self._now()
        )
        if not recorded:
            logger.warning(
                f"[BRG-SETTLE] Record already minted - not sending | "
                f"burn_signature={record.signature} | "
                f"correlation_id={self.correlation_id}"
            )
            return RecordOutcome.SKIPPED
        record_mint_submitted(SettlementMode.LIVE.value, self.correlation_id)

        try:
            self.ledger.send(prepared)
        except SubmissionRejectedError:
            # A retried POST may have reached the node, so the intent stays
            # until reconciliation sees the reference expire
            logger.warning(
                f"[BRG-SETTLE] Submission rejected - intent kept | "
                f"burn_signature={record.signature} | "
                f"mint_signature={prepared.transaction_id} | "
                f"correlation_id={self.correlation_id}"
            )
            raise

        logger.info(
            f"[BRG-SETTLE] Transaction sent | "
            f"instructions={self.ledger.describe(instructions)} | "
            f"mint_signature={prepared.transaction_id} | "
            f"correlation_id={self.correlation_id}"
        )

        result = self.ledger.confirm(prepared.transaction_id)

        if result.status is ConfirmationStatus.SUCCESS:
            self.store.mark_minted(record.signature, prepared.transaction_id, self._now())
            record_mint_confirmed(record.amount, self.correlation_id)
            logger.info(
                f"[BRG-SETTLE] Mint confirmed | burner={record.burner} | "
                f"amount={format_amount(record.amount)} | "
                f"mint_signature={prepared.transaction_id} | "
                f"explorer={self._explorer_link(prepared.transaction_id)} | "
                f"correlation_id={self.correlation_id}"
            )
            return RecordOutcome.MINTED

        if result.status is ConfirmationStatus.FAILURE:
            self.store.clear_submission(record.signature)
            logger.error(
                f"[BRG-LED-002] Mint transaction failed on ledger | "
                f"burn_signature={record.signature} | "
                f"amount={format_amount(record.amount)} | error={result.error} | "
                f"correlation_id={self.correlation_id}"
            )
            record_mint_failed("failure", self.correlation_id)
            return RecordOutcome.FAILED

        # Intent is kept and reconciled on the next run
        raise ConfirmationTimeoutError(
            f"BRG-LED-003: {prepared.transaction_id} not confirmed: {result.error}"
        )

    # -------------------------------------------------------------------------
    # Simulation
    # -------------------------------------------------------------------------

    def _simulate(self, record: SettlementRecord) -> str:
        placeholder = simulation_signature(record.signature, record.burner, record.amount)
        record_mint_submitted(SettlementMode.SIMULATION.value, self.correlation_id)
        logger.info(
            f"[BRG-SIM] Simulated mint | burner={record.burner} | "
            f"amount={format_amount(record.amount)} | placeholder={placeholder} | "
            f"correlation_id={self.correlation_id}"
        )
        if self.simulation_delay_seconds > 0:
            self._sleep(self.simulation_delay_seconds)
        return placeholder

    def _explorer_link(self, transaction_id: str) -> str:
        if not self.explorer_url:
            return transaction_id
        return f"{self.explorer_url}{transaction_id}"

"""
Unit Tests for the Settlement Engine

Reliability Level: L6 Critical

Tests:
- Live minting: receiving account creation, MINTED transition
- Failure / rejection / timeout keep the record PENDING
- Rejected or timed-out submissions keep their intent
- Submission intent reconciliation on the next run
- MINTED records are never resubmitted, even from a stale snapshot
- Simulation mode: no ledger calls, no store mutation
- Submission pacing
"""

import os
import sys
from datetime import datetime, timezone

import pytest
from solders.keypair import Keypair

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from app.database.session import create_destination_engine
from app.ledger.authority_signer import MintAuthority
from app.ledger.ledger_client import (
    ConfirmationStatus,
    CreateReceivingAccount,
    LedgerUnavailableError,
    MintTo,
    SignatureStatus,
)
from app.ledger.rate_limiter import SubmissionPacer
from services.settlement_engine import (
    RecordOutcome,
    SettlementEngine,
    SettlementMode,
    simulation_signature,
)
from services.settlement_store import RecordStatus, SettlementStore
from tests.bridge_fixtures import MIN_AMOUNT, FakeLedgerClient, make_event

EXPLORER = "https://explorer.test/tx/"
FIXED_NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def store(tmp_path):
    engine = create_destination_engine(f"sqlite:///{tmp_path / 'bridge.db'}")
    store = SettlementStore(engine, MIN_AMOUNT, correlation_id="test-cid")
    store.ensure_schema()
    yield store
    engine.dispose()


@pytest.fixture
def authority():
    return MintAuthority(Keypair())


def make_engine(store, ledger, authority, sleeps=None, **kwargs):
    sleeps = sleeps if sleeps is not None else []
    return SettlementEngine(
        store,
        ledger,
        authority,
        pacer=SubmissionPacer(0.01, sleep=sleeps.append),
        simulation_delay_seconds=kwargs.pop("simulation_delay_seconds", 0),
        explorer_url=EXPLORER,
        correlation_id="test-cid",
        sleep=sleeps.append,
        now=lambda: FIXED_NOW,
        **kwargs
    )


class TestLiveMinting:

    def test_mints_and_creates_receiving_account(self, store, authority, caplog):
        store.insert_pending(make_event("sigA", burner="w1", amount=500_000_000))
        ledger = FakeLedgerClient()

        with caplog.at_level("INFO"):
            summary = make_engine(store, ledger, authority).process_pending()

        assert summary.mode == SettlementMode.LIVE.value
        assert summary.minted == 1
        assert summary.pending_after == 0
        assert ledger.preflight_calls == 1

        sent = ledger.sent[0]
        assert sent.payload == [
            CreateReceivingAccount(owner="w1"),
            MintTo(receiving_account="ata-w1", amount=500_000_000),
        ]

        record = store.get("sigA")
        assert record.status is RecordStatus.MINTED
        assert record.mint_signature == sent.transaction_id
        assert record.minted_at == FIXED_NOW
        assert f"{EXPLORER}{sent.transaction_id}" in caplog.text

    def test_existing_account_not_recreated(self, store, authority):
        store.insert_pending(make_event("sigA", burner="w1"))
        ledger = FakeLedgerClient(existing_accounts=["ata-w1"])

        make_engine(store, ledger, authority).process_pending()

        assert ledger.sent[0].payload == [MintTo("ata-w1", 500_000_000)]

    def test_intent_recorded_before_send(self, store, authority):
        store.insert_pending(make_event("sigA"))
        ledger = FakeLedgerClient(confirm_status=ConfirmationStatus.TIMEOUT)

        make_engine(store, ledger, authority).process_pending()

        names = [name for name, _ in ledger.calls]
        assert names.index("prepare") < names.index("send")
        record = store.get("sigA")
        assert record.submission_signature == ledger.sent[0].transaction_id
        assert record.submission_reference == ledger.sent[0].reference


class TestFailuresStayPending:

    def test_failure_clears_intent(self, store, authority):
        store.insert_pending(make_event("sigA"))
        ledger = FakeLedgerClient(confirm_status=ConfirmationStatus.FAILURE)

        summary = make_engine(store, ledger, authority).process_pending()

        assert summary.failed == 1
        record = store.get("sigA")
        assert record.status is RecordStatus.PENDING
        assert not record.has_submission

    def test_timeout_keeps_intent(self, store, authority, caplog):
        store.insert_pending(make_event("sigA"))
        ledger = FakeLedgerClient(confirm_status=ConfirmationStatus.TIMEOUT)

        with caplog.at_level("ERROR"):
            summary = make_engine(store, ledger, authority).process_pending()

        assert summary.failed == 1
        record = store.get("sigA")
        assert record.status is RecordStatus.PENDING
        assert record.has_submission
        assert "BRG-LED-003" in caplog.text

    def test_rejection_keeps_intent(self, store, authority):
        store.insert_pending(make_event("sigA"))
        ledger = FakeLedgerClient(reject=True)

        summary = make_engine(store, ledger, authority).process_pending()

        assert summary.failed == 1
        record = store.get("sigA")
        assert record.status is RecordStatus.PENDING
        assert record.submission_signature == ledger.method_calls("send")[0]

    def test_rejected_intent_waits_for_reference_expiry(self, store, authority):
        store.insert_pending(make_event("sigA"))
        make_engine(store, FakeLedgerClient(reject=True), authority).process_pending()
        ledger = FakeLedgerClient(reference_valid=True)

        summary = make_engine(store, ledger, authority).process_pending()

        assert summary.deferred == 1
        assert ledger.sent == []

    def test_already_minted_record_not_sent(self, store, authority, caplog):
        store.insert_pending(make_event("sigA"))
        stale = store.get("sigA")
        store.mark_minted("sigA", "mint-1", FIXED_NOW)
        ledger = FakeLedgerClient()

        with caplog.at_level("WARNING"):
            outcome = make_engine(store, ledger, authority).settle_record(stale)

        assert outcome is RecordOutcome.SKIPPED
        assert ledger.method_calls("send") == []
        assert store.get("sigA").mint_signature == "mint-1"
        assert "already minted" in caplog.text

    def test_invalid_burner_address_contained(self, store, authority):
        store.insert_pending(make_event("bad", burner="not a wallet",
                                        observed_at=datetime(2024, 1, 1, tzinfo=timezone.utc)))
        store.insert_pending(make_event("good", burner="w2",
                                        observed_at=datetime(2024, 1, 2, tzinfo=timezone.utc)))
        ledger = FakeLedgerClient()

        summary = make_engine(store, ledger, authority).process_pending()

        assert summary.failed == 1
        assert summary.minted == 1
        assert store.get("bad").status is RecordStatus.PENDING
        assert store.get("good").status is RecordStatus.MINTED

    def test_per_record_ledger_outage_contained(self, store, authority):
        class FlakyLedger(FakeLedgerClient):
            def account_exists(self, address):
                if address == "ata-w1":
                    raise LedgerUnavailableError("BRG-LED-001: node dropped")
                return super().account_exists(address)

        store.insert_pending(make_event("sigA", burner="w1",
                                        observed_at=datetime(2024, 1, 1, tzinfo=timezone.utc)))
        store.insert_pending(make_event("sigB", burner="w2",
                                        observed_at=datetime(2024, 1, 2, tzinfo=timezone.utc)))

        summary = make_engine(store, FlakyLedger(), authority).process_pending()

        assert summary.failed == 1
        assert summary.minted == 1
        assert store.get("sigA").status is RecordStatus.PENDING

    def test_unavailable_at_start_propagates(self, store, authority):
        store.insert_pending(make_event("sigA"))
        ledger = FakeLedgerClient(unavailable=True)

        with pytest.raises(LedgerUnavailableError):
            make_engine(store, ledger, authority).process_pending()

        assert ledger.sent == []
        assert store.get("sigA").status is RecordStatus.PENDING


class TestIntentReconciliation:

    @pytest.fixture
    def pending_with_intent(self, store):
        store.insert_pending(make_event("sigA"))
        store.record_submission("sigA", "tx-old", "ref-old")
        return store

    def test_confirmed_intent_recovered(self, pending_with_intent, authority):
        ledger = FakeLedgerClient(signature_statuses={"tx-old": SignatureStatus.CONFIRMED})

        summary = make_engine(pending_with_intent, ledger, authority).process_pending()

        assert summary.recovered == 1
        assert ledger.sent == []
        record = pending_with_intent.get("sigA")
        assert record.status is RecordStatus.MINTED
        assert record.mint_signature == "tx-old"

    def test_failed_intent_resubmitted(self, pending_with_intent, authority):
        ledger = FakeLedgerClient(signature_statuses={"tx-old": SignatureStatus.FAILED})

        summary = make_engine(pending_with_intent, ledger, authority).process_pending()

        assert summary.minted == 1
        assert len(ledger.sent) == 1
        assert pending_with_intent.get("sigA").mint_signature != "tx-old"

    def test_unknown_intent_in_flight_deferred(self, pending_with_intent, authority):
        ledger = FakeLedgerClient(reference_valid=True)

        summary = make_engine(pending_with_intent, ledger, authority).process_pending()

        assert summary.deferred == 1
        assert ledger.sent == []
        record = pending_with_intent.get("sigA")
        assert record.status is RecordStatus.PENDING
        assert record.submission_signature == "tx-old"

    def test_unknown_intent_expired_resubmitted(self, pending_with_intent, authority):
        ledger = FakeLedgerClient(reference_valid=False)

        summary = make_engine(pending_with_intent, ledger, authority).process_pending()

        assert summary.minted == 1
        assert ledger.method_calls("is_reference_valid") == ["ref-old"]
        assert len(ledger.sent) == 1

    def test_in_flight_intent_deferred_after_reference_expiry(
        self, pending_with_intent, authority
    ):
        ledger = FakeLedgerClient(
            reference_valid=False,
            signature_statuses={"tx-old": SignatureStatus.IN_FLIGHT},
        )

        summary = make_engine(pending_with_intent, ledger, authority).process_pending()

        assert summary.deferred == 1
        assert ledger.sent == []
        assert pending_with_intent.get("sigA").submission_signature == "tx-old"

    def test_landing_while_reference_expires_recovered(self, pending_with_intent, authority):
        class LandsDuringCheck(FakeLedgerClient):
            def is_reference_valid(self, reference):
                self.landed.add("tx-old")
                super().is_reference_valid(reference)
                return False

        ledger = LandsDuringCheck()

        summary = make_engine(pending_with_intent, ledger, authority).process_pending()

        assert summary.recovered == 1
        assert ledger.sent == []
        assert pending_with_intent.get("sigA").mint_signature == "tx-old"
        names = [name for name, _ in ledger.calls]
        assert names.index("is_reference_valid") < names.index("signature_status")


class TestTerminality:

    def test_minted_never_resubmitted(self, store, authority):
        store.insert_pending(make_event("sigA"))
        store.mark_minted("sigA", "mint-1")
        ledger = FakeLedgerClient()

        summary = make_engine(store, ledger, authority).process_pending()

        assert summary.attempted == 0
        assert ledger.sent == []
        assert store.get("sigA").mint_signature == "mint-1"

    def test_second_run_after_success_is_noop(self, store, authority):
        store.insert_pending(make_event("sigA"))
        ledger = FakeLedgerClient()
        engine = make_engine(store, ledger, authority)

        engine.process_pending()
        summary = engine.process_pending()

        assert summary.attempted == 0
        assert len(ledger.sent) == 1


class TestSimulation:

    def test_no_ledger_calls_and_no_mutation(self, store):
        store.insert_pending(make_event("sigA", burner="w1", amount=500_000_000))
        before = store.get("sigA")
        sleeps = []

        summary = make_engine(
            store, None, None, sleeps=sleeps, simulation_delay_seconds=0.5
        ).process_pending()

        assert summary.mode == SettlementMode.SIMULATION.value
        assert summary.simulated == 1
        assert summary.placeholder_ids == [simulation_signature("sigA", "w1", 500_000_000)]
        assert sleeps == [0.5]
        assert store.get("sigA") == before

    def test_authority_without_ledger_is_simulation(self, store, authority):
        engine = make_engine(store, None, authority)
        assert engine.mode is SettlementMode.SIMULATION

    def test_placeholder_is_deterministic(self):
        first = simulation_signature("sigA", "w1", 1)
        assert first == simulation_signature("sigA", "w1", 1)
        assert first != simulation_signature("sigA", "w1", 2)
        assert 43 <= len(first) <= 44


class TestPacing:

    def test_submissions_are_paced(self, store, authority):
        for day in (1, 2, 3):
            store.insert_pending(make_event(
                f"sig{day}", burner=f"w{day}",
                observed_at=datetime(2024, 1, day, tzinfo=timezone.utc)
            ))
        sleeps = []
        pacer = SubmissionPacer(2.0, clock=lambda: 0.0, sleep=sleeps.append)
        engine = SettlementEngine(
            store, FakeLedgerClient(), authority, pacer=pacer,
            correlation_id="test-cid", sleep=sleeps.append,
        )

        summary = engine.process_pending()

        assert summary.minted == 3
        assert sleeps == [2.0, 2.0]
        assert pacer.total_waited == 4.0

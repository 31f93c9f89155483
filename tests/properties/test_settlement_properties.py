"""
Property-Based Tests for the Burn -> Mint Settlement Pipeline

Reliability Level: L6 Critical

Tests the migration and settlement invariants using Hypothesis.

- Property 1: Migration is idempotent
- Property 2: Only burns at or above the minimum reach the destination
- Property 3: Single-burner mode inserts the newest new qualifying burn
- Property 4: MINTED is terminal
- Property 5: Simulation never mutates the store
- Property 6: Raw <-> display conversion is lossless
"""

import os
import sys
from uuid import uuid4

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from app.database.session import create_destination_engine
from app.ledger.decimal_gateway import MAX_RAW_AMOUNT, to_display, to_raw
from services.burn_source import BurnSourceReader
from services.migration_engine import MigrationEngine
from services.settlement_engine import SettlementEngine
from services.settlement_store import RecordStatus, SettlementStore
from tests.bridge_fixtures import MIN_AMOUNT, make_event, make_source_db


DB_SETTINGS = settings(
    max_examples=25,
    suppress_health_check=[HealthCheck.function_scoped_fixture],
    deadline=None,
)

amount_strategy = st.integers(min_value=0, max_value=MIN_AMOUNT * 3)

signature_strategy = st.text(
    alphabet="123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz",
    min_size=1,
    max_size=88,
)

burn_rows_strategy = st.lists(
    st.tuples(
        st.sampled_from(["w1", "w2", "w3"]),
        amount_strategy,
    ),
    min_size=0,
    max_size=15,
)


def fresh_store(tmp_path):
    engine = create_destination_engine(f"sqlite:///{tmp_path / f'dest_{uuid4()}.db'}")
    return SettlementStore(engine, MIN_AMOUNT)


def source_from(tmp_path, rows):
    """Rows get unique signatures and strictly decreasing recency."""
    return make_source_db(tmp_path / f"burns_{uuid4()}.db", [
        {
            "signature": f"sig{index}",
            "burner": burner,
            "amount": amount,
            "timestamp": 1_700_000_000 - index,
        }
        for index, (burner, amount) in enumerate(rows)
    ])


def migrate(source, store, burner=None):
    reader = BurnSourceReader(source)
    try:
        return MigrationEngine(reader, store).migrate(burner)
    finally:
        reader.close()


# =============================================================================
# Property 1 & 2: Bulk migration
# =============================================================================

class TestBulkMigrationProperties:

    @DB_SETTINGS
    @given(rows=burn_rows_strategy)
    def test_migration_is_idempotent(self, tmp_path, rows):
        """Running migration twice never adds records on the second pass."""
        source = source_from(tmp_path, rows)
        store = fresh_store(tmp_path)

        first = migrate(source, store)
        second = migrate(source, store)

        qualifying = sum(1 for _, amount in rows if amount >= MIN_AMOUNT)
        assert first.migrated == qualifying
        assert second.migrated == 0
        assert second.skipped_duplicate == qualifying
        assert store.statistics().total_records == qualifying
        store.engine.dispose()

    @DB_SETTINGS
    @given(rows=burn_rows_strategy)
    def test_threshold_enforced(self, tmp_path, rows):
        """Every destination record carries an amount >= the minimum."""
        source = source_from(tmp_path, rows)
        store = fresh_store(tmp_path)

        summary = migrate(source, store)

        assert all(record.amount >= MIN_AMOUNT for record in store.list_all())
        assert summary.migrated + summary.skipped_below_minimum == len(rows)
        store.engine.dispose()


# =============================================================================
# Property 3: Single-burner mode
# =============================================================================

class TestSingleBurnerProperties:

    @DB_SETTINGS
    @given(amounts=st.lists(amount_strategy, min_size=1, max_size=10))
    def test_inserts_newest_new_qualifying_burn(self, tmp_path, amounts):
        """Each run inserts the newest qualifying burn not yet present."""
        source = source_from(tmp_path, [("w1", amount) for amount in amounts])
        store = fresh_store(tmp_path)

        # Row order is newest first
        expected = [f"sig{i}" for i, amount in enumerate(amounts) if amount >= MIN_AMOUNT]

        for signature in expected:
            summary = migrate(source, store, burner="w1")
            assert summary.migrated == 1
            assert store.exists(signature)
            assert store.statistics().total_records == expected.index(signature) + 1

        assert migrate(source, store, burner="w1").migrated == 0
        store.engine.dispose()


# =============================================================================
# Property 4 & 5: Settlement
# =============================================================================

class TestSettlementProperties:

    @DB_SETTINGS
    @given(mint_signatures=st.lists(signature_strategy, min_size=1, max_size=5))
    def test_minted_is_terminal(self, tmp_path, mint_signatures):
        """The first mark_minted wins; later calls change nothing."""
        store = fresh_store(tmp_path)
        store.ensure_schema()
        store.insert_pending(make_event("sigA"))

        results = [store.mark_minted("sigA", sig) for sig in mint_signatures]

        assert results[0] is True
        assert not any(results[1:])
        record = store.get("sigA")
        assert record.status is RecordStatus.MINTED
        assert record.mint_signature == mint_signatures[0]
        assert store.list_pending() == []
        store.engine.dispose()

    @DB_SETTINGS
    @given(amounts=st.lists(
        st.integers(min_value=MIN_AMOUNT, max_value=MIN_AMOUNT * 100), max_size=8
    ))
    def test_simulation_does_not_mutate(self, tmp_path, amounts):
        """Simulation leaves every record exactly as it was."""
        store = fresh_store(tmp_path)
        store.ensure_schema()
        for index, amount in enumerate(amounts):
            store.insert_pending(make_event(f"sig{index}", amount=amount))
        before = store.list_all()

        summary = SettlementEngine(
            store, None, None, simulation_delay_seconds=0
        ).process_pending()

        assert summary.simulated == len(amounts)
        assert len(set(summary.placeholder_ids)) == len(amounts)
        assert store.list_all() == before
        store.engine.dispose()


# =============================================================================
# Property 6: Amount conversion
# =============================================================================

class TestAmountProperties:

    @settings(max_examples=100)
    @given(raw=st.integers(min_value=0, max_value=MAX_RAW_AMOUNT))
    def test_raw_display_round_trip(self, raw):
        """Display conversion loses no raw units."""
        assert to_raw(to_display(raw)) == raw

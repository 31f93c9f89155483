"""
Unit Tests for the Settlement Report

Tests:
- Document layout and explorer links
- Amounts rendered as strings
"""

import json
import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from app.database.session import create_destination_engine
from services.settlement_report import REPORT_TITLE, SettlementReport
from services.settlement_store import SettlementStore
from tests.bridge_fixtures import MIN_AMOUNT, make_event


@pytest.fixture
def store(tmp_path):
    engine = create_destination_engine(f"sqlite:///{tmp_path / 'bridge.db'}")
    store = SettlementStore(engine, MIN_AMOUNT)
    store.ensure_schema()
    yield store
    engine.dispose()


def test_report_document(store):
    store.insert_pending(make_event("sigA", burner="w1", amount=500_000_000))
    store.insert_pending(make_event("sigB", burner="w2", amount=420_690_000))
    store.mark_minted("sigA", "mint-1")

    document = SettlementReport(store, explorer_url="https://x/tx/", correlation_id="cid").build()

    assert document["title"] == REPORT_TITLE
    assert document["statistics"]["total_records"] == 2
    assert document["statistics"]["total_minted_amount"] == "500.000000"

    records = {r["signature"]: r for r in document["records"]}
    assert records["sigA"]["explorer_url"] == "https://x/tx/mint-1"
    assert "explorer_url" not in records["sigB"]
    assert records["sigB"]["amount_display"] == "420.690000"


def test_write_creates_directories(store, tmp_path):
    path = SettlementReport(store).write(tmp_path / "nested" / "report.json")

    document = json.loads(path.read_text(encoding="utf-8"))
    assert document["records"] == []
    assert document["statistics"]["total_records"] == 0


def test_write_replaces_existing_report(store, tmp_path):
    target = tmp_path / "report.json"
    target.write_text('{"stale": true}', encoding="utf-8")
    store.insert_pending(make_event("sigA"))

    SettlementReport(store).write(target)

    document = json.loads(target.read_text(encoding="utf-8"))
    assert "stale" not in document
    assert document["statistics"]["total_records"] == 1
    assert list(tmp_path.glob("*.tmp")) == []


def test_failed_write_keeps_previous_report(store, tmp_path, monkeypatch):
    target = tmp_path / "report.json"
    target.write_text('{"previous": true}', encoding="utf-8")
    report = SettlementReport(store)
    monkeypatch.setattr(report, "build", lambda: {"records": [object()], "wallets": []})

    with pytest.raises(TypeError):
        report.write(target)

    assert json.loads(target.read_text(encoding="utf-8")) == {"previous": True}
    assert list(tmp_path.glob("*.tmp")) == []

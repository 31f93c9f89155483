"""
Unit Tests for the Decimal Gateway (raw token amounts)

Reliability Level: SOVEREIGN TIER

Tests:
- Display conversion with 6 implied decimals
- Raw conversion and precision rejection
- Source amount normalization across encodings
"""

import os
import sys
from decimal import Decimal

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from app.ledger.decimal_gateway import (
    DecimalGateway,
    MAX_RAW_AMOUNT,
    format_amount,
    parse_raw_amount,
    to_display,
    to_raw,
)


class TestDisplayConversion:
    """Raw <-> display conversion."""

    def test_minimum_burn_round_trip(self):
        display = to_display(420000000)
        assert display == Decimal("420.000000")
        assert str(display) == "420.000000"
        assert to_raw(display) == 420000000

    def test_fractional_display(self):
        assert to_display(420690000) == Decimal("420.690000")
        assert to_display(1) == Decimal("0.000001")

    def test_to_raw_accepts_strings_and_ints(self):
        assert to_raw("0.5") == 500000
        assert to_raw(3) == 3000000

    def test_to_raw_rejects_excess_precision(self):
        with pytest.raises(ValueError, match="BRG-DEC-001"):
            to_raw("1.0000001")

    def test_to_raw_rejects_garbage(self):
        with pytest.raises(ValueError, match="BRG-DEC-001"):
            to_raw("not-a-number")

    def test_format_amount(self):
        assert format_amount(420690000) == "420.690000 solXEN"


class TestParseRawAmount:
    """Normalization of heterogeneous source encodings."""

    @pytest.mark.parametrize("value,expected", [
        (420000000, 420000000),
        ("420000000", 420000000),
        (" 420690000 ", 420690000),
        (420000000.0, 420000000),
        ("420000000.9", 420000000),
        (1.5, 1),
        ("1e9", 1000000000),
    ])
    def test_supported_encodings(self, value, expected):
        assert parse_raw_amount(value) == expected

    @pytest.mark.parametrize("value", [
        None, "", "abc", "NaN", "inf", float("nan"), True, -1, "-5",
    ])
    def test_unusable_values_normalize_to_zero(self, value):
        assert parse_raw_amount(value) == 0

    def test_out_of_range_normalizes_to_zero(self):
        assert parse_raw_amount(MAX_RAW_AMOUNT) == MAX_RAW_AMOUNT
        assert parse_raw_amount(MAX_RAW_AMOUNT + 1) == 0

    def test_failure_is_logged(self, caplog):
        with caplog.at_level("WARNING"):
            parse_raw_amount("garbage", correlation_id="cid-1")
        assert "BRG-DEC-001" in caplog.text
        assert "cid-1" in caplog.text


class TestThreshold:

    def test_meets_minimum_is_inclusive(self):
        gateway = DecimalGateway()
        assert gateway.meets_minimum(420000000, 420000000)
        assert not gateway.meets_minimum(419999999, 420000000)

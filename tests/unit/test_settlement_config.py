"""
Unit Tests for Settlement Configuration Parsing

Reliability Level: SOVEREIGN TIER

Tests:
- Default values
- Custom values from environment variables
- Invalid values fail with BRG-CFG-001
"""

import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from services.settlement_config import (
    DEFAULT_DATABASE_URL,
    DEFAULT_KEYPAIR_PATH,
    DEFAULT_MIN_BURN_AMOUNT,
    DEFAULT_PACING_SECONDS,
    SettlementConfig,
    SettlementConfigErrorCode,
    SettlementConfigurationError,
)

ENV_VARS = [
    "BRIDGE_DATABASE_URL",
    "BRIDGE_SOURCE_DB_PATH",
    "BRIDGE_RPC_URL",
    "BRIDGE_TOKEN_MINT",
    "BRIDGE_KEYPAIR_PATH",
    "BRIDGE_MIN_BURN_AMOUNT",
    "BRIDGE_PACING_SECONDS",
    "BRIDGE_SIMULATION_DELAY_SECONDS",
    "BRIDGE_CONFIRM_TIMEOUT_SECONDS",
    "BRIDGE_REPORT_PATH",
    "BRIDGE_EXPLORER_URL",
]


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Isolate every test from the caller's environment."""
    for var in ENV_VARS:
        monkeypatch.delenv(var, raising=False)


class TestDefaults:

    def test_default_values(self):
        config = SettlementConfig.from_env()
        assert config.database_url == DEFAULT_DATABASE_URL
        assert config.keypair_path == DEFAULT_KEYPAIR_PATH
        assert config.min_burn_amount == DEFAULT_MIN_BURN_AMOUNT == 420_000_000
        assert config.pacing_seconds == DEFAULT_PACING_SECONDS == 2.0
        assert config.rpc_url == "https://rpc-testnet.x1.wiki"


class TestEnvironment:

    def test_custom_values(self, monkeypatch):
        monkeypatch.setenv("BRIDGE_MIN_BURN_AMOUNT", "1000")
        monkeypatch.setenv("BRIDGE_PACING_SECONDS", "0.25")
        monkeypatch.setenv("BRIDGE_SOURCE_DB_PATH", " /data/burns.db ")
        config = SettlementConfig.from_env()
        assert config.min_burn_amount == 1000
        assert config.pacing_seconds == 0.25
        assert config.source_db_path == "/data/burns.db"

    def test_empty_keypair_selects_simulation(self, monkeypatch):
        monkeypatch.setenv("BRIDGE_KEYPAIR_PATH", "  ")
        assert SettlementConfig.from_env().keypair_path is None

    def test_unparseable_number_falls_back(self, monkeypatch, caplog):
        monkeypatch.setenv("BRIDGE_MIN_BURN_AMOUNT", "lots")
        with caplog.at_level("WARNING"):
            config = SettlementConfig.from_env()
        assert config.min_burn_amount == DEFAULT_MIN_BURN_AMOUNT
        assert "BRIDGE_MIN_BURN_AMOUNT" in caplog.text

    def test_to_dict_hides_keypair_path(self):
        data = SettlementConfig.from_env().to_dict()
        assert data["keypair_configured"] is True
        assert "keypair_path" not in data


class TestValidation:

    @pytest.mark.parametrize("var,value", [
        ("BRIDGE_MIN_BURN_AMOUNT", "-1"),
        ("BRIDGE_PACING_SECONDS", "0"),
        ("BRIDGE_RPC_URL", "   "),
        ("BRIDGE_CONFIRM_TIMEOUT_SECONDS", "-5"),
    ])
    def test_invalid_values_fail_closed(self, monkeypatch, var, value):
        monkeypatch.setenv(var, value)
        with pytest.raises(SettlementConfigurationError) as exc_info:
            SettlementConfig.from_env()
        assert exc_info.value.error_code == SettlementConfigErrorCode.CONFIG_INVALID
        assert "BRG-CFG-001" in str(exc_info.value)

    def test_validation_can_be_deferred(self, monkeypatch):
        monkeypatch.setenv("BRIDGE_PACING_SECONDS", "0")
        config = SettlementConfig.from_env(validate=False)
        with pytest.raises(SettlementConfigurationError):
            config.validate()

"""
============================================================================
Burn Bridge - Settlement Configuration
============================================================================

Reliability Level: L6 Critical (Sovereign Tier)
Traceability: All operations include correlation_id for audit

This module provides configuration management for the settlement pipeline:
- Environment variable parsing with type safety
- Default values matching the X1 testnet deployment
- Fail-closed validation on invalid config (BRG-CFG-001)

ENVIRONMENT VARIABLES:
    - BRIDGE_DATABASE_URL: Destination store URL
    - BRIDGE_SOURCE_DB_PATH: Source burn store (read-only SQLite file)
    - BRIDGE_RPC_URL: Destination ledger JSON-RPC endpoint
    - BRIDGE_TOKEN_MINT: Token-2022 mint address
    - BRIDGE_KEYPAIR_PATH: Mint authority keypair (empty = simulation)
    - BRIDGE_MIN_BURN_AMOUNT: Minimum raw amount eligible for minting
    - BRIDGE_PACING_SECONDS: Minimum delay between mint submissions
    - BRIDGE_SIMULATION_DELAY_SECONDS: Simulated submission latency
    - BRIDGE_CONFIRM_TIMEOUT_SECONDS: Max wait for confirmation
    - BRIDGE_REPORT_PATH: JSON report output path
    - BRIDGE_EXPLORER_URL: Transaction explorer prefix

ERROR CODES:
    - BRG-CFG-001: Invalid configuration

============================================================================
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional
import logging
import os

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Error Codes
# =============================================================================

class SettlementConfigErrorCode:
    """Configuration-specific error codes for audit logging."""
    CONFIG_INVALID = "BRG-CFG-001"


# =============================================================================
# Default Values
# =============================================================================

DEFAULT_DATABASE_URL = "sqlite:///database/sol_burn_x1_mint.db"
DEFAULT_SOURCE_DB_PATH = "burn-data/burns.db"
DEFAULT_RPC_URL = "https://rpc-testnet.x1.wiki"
DEFAULT_TOKEN_MINT = "2oaSsGnq1eNjMavSxh1g2XFqtV7SVYwaRJZaBznMyYJT"
DEFAULT_KEYPAIR_PATH = "~/.config/solana/id.json"

# 420 solXEN in raw units (6 decimals)
DEFAULT_MIN_BURN_AMOUNT = 420_000_000

DEFAULT_PACING_SECONDS = 2.0
DEFAULT_SIMULATION_DELAY_SECONDS = 0.5
DEFAULT_CONFIRM_TIMEOUT_SECONDS = 60.0
DEFAULT_REPORT_PATH = "reports/settlement_report.json"
DEFAULT_EXPLORER_URL = "https://explorer.x1-testnet.xen.network/tx/"


# =============================================================================
# Configuration Validation Exception
# =============================================================================

class SettlementConfigurationError(Exception):
    """
    Exception raised when settlement configuration is invalid.

    Raised at startup, before any store or ledger is touched.

    Reliability Level: SOVEREIGN TIER
    """

    def __init__(self, message: str, error_code: str = SettlementConfigErrorCode.CONFIG_INVALID):
        self.error_code = error_code
        self.message = message
        super().__init__(f"[{error_code}] {message}")


# =============================================================================
# SettlementConfig Class
# =============================================================================

@dataclass
class SettlementConfig:
    """
    Settlement pipeline configuration.

    Reliability Level: L6 Critical (Sovereign Tier)
    Input Constraints: min_burn_amount >= 0, pacing_seconds > 0
    Side Effects: Logs configuration on load
    """

    database_url: str = DEFAULT_DATABASE_URL
    source_db_path: str = DEFAULT_SOURCE_DB_PATH
    rpc_url: str = DEFAULT_RPC_URL
    token_mint: str = DEFAULT_TOKEN_MINT

    # None selects simulation mode
    keypair_path: Optional[str] = DEFAULT_KEYPAIR_PATH

    min_burn_amount: int = DEFAULT_MIN_BURN_AMOUNT
    pacing_seconds: float = DEFAULT_PACING_SECONDS
    simulation_delay_seconds: float = DEFAULT_SIMULATION_DELAY_SECONDS
    confirm_timeout_seconds: float = DEFAULT_CONFIRM_TIMEOUT_SECONDS
    report_path: str = DEFAULT_REPORT_PATH
    explorer_url: str = DEFAULT_EXPLORER_URL

    def validate(self) -> None:
        """
        Validate configuration values.

        Raises:
            SettlementConfigurationError: If any value is invalid (BRG-CFG-001)
        """
        errors: List[str] = []

        if self.min_burn_amount < 0:
            errors.append(
                f"BRIDGE_MIN_BURN_AMOUNT must be non-negative, got: {self.min_burn_amount}"
            )

        if self.pacing_seconds <= 0:
            errors.append(
                f"BRIDGE_PACING_SECONDS must be positive, got: {self.pacing_seconds}"
            )

        if self.simulation_delay_seconds < 0:
            errors.append(
                f"BRIDGE_SIMULATION_DELAY_SECONDS must be non-negative, "
                f"got: {self.simulation_delay_seconds}"
            )

        if self.confirm_timeout_seconds <= 0:
            errors.append(
                f"BRIDGE_CONFIRM_TIMEOUT_SECONDS must be positive, "
                f"got: {self.confirm_timeout_seconds}"
            )

        if not self.rpc_url or not self.rpc_url.strip():
            errors.append("BRIDGE_RPC_URL must be set")

        if not self.database_url or not self.database_url.strip():
            errors.append("BRIDGE_DATABASE_URL must be set")

        if not self.token_mint or not self.token_mint.strip():
            errors.append("BRIDGE_TOKEN_MINT must be set")

        if errors:
            error_msg = "Settlement configuration validation failed: " + "; ".join(errors)
            logger.error(f"[{SettlementConfigErrorCode.CONFIG_INVALID}] {error_msg}")
            raise SettlementConfigurationError(error_msg)

        logger.info(
            f"[BRG-CONFIG] Configuration validated | "
            f"min_burn_amount={self.min_burn_amount} | "
            f"pacing_seconds={self.pacing_seconds} | "
            f"simulation={self.keypair_path is None}"
        )

    @classmethod
    def from_env(cls, validate: bool = True) -> "SettlementConfig":
        """
        Load configuration from environment variables.

        Numeric values that fail to parse fall back to their defaults with
        a warning. An empty BRIDGE_KEYPAIR_PATH disables signing.

        Args:
            validate: Whether to validate configuration after loading

        Returns:
            SettlementConfig instance

        Raises:
            SettlementConfigurationError: If validation fails (BRG-CFG-001)
        """
        keypair_path: Optional[str] = os.environ.get("BRIDGE_KEYPAIR_PATH", DEFAULT_KEYPAIR_PATH)
        if keypair_path is not None and not keypair_path.strip():
            keypair_path = None

        config = cls(
            database_url=os.environ.get("BRIDGE_DATABASE_URL", DEFAULT_DATABASE_URL).strip(),
            source_db_path=os.environ.get("BRIDGE_SOURCE_DB_PATH", DEFAULT_SOURCE_DB_PATH).strip(),
            rpc_url=os.environ.get("BRIDGE_RPC_URL", DEFAULT_RPC_URL).strip(),
            token_mint=os.environ.get("BRIDGE_TOKEN_MINT", DEFAULT_TOKEN_MINT).strip(),
            keypair_path=keypair_path.strip() if keypair_path else None,
            min_burn_amount=_env_number(
                "BRIDGE_MIN_BURN_AMOUNT", DEFAULT_MIN_BURN_AMOUNT, int
            ),
            pacing_seconds=_env_number(
                "BRIDGE_PACING_SECONDS", DEFAULT_PACING_SECONDS, float
            ),
            simulation_delay_seconds=_env_number(
                "BRIDGE_SIMULATION_DELAY_SECONDS", DEFAULT_SIMULATION_DELAY_SECONDS, float
            ),
            confirm_timeout_seconds=_env_number(
                "BRIDGE_CONFIRM_TIMEOUT_SECONDS", DEFAULT_CONFIRM_TIMEOUT_SECONDS, float
            ),
            report_path=os.environ.get("BRIDGE_REPORT_PATH", DEFAULT_REPORT_PATH).strip(),
            explorer_url=os.environ.get("BRIDGE_EXPLORER_URL", DEFAULT_EXPLORER_URL).strip(),
        )

        logger.info(
            f"[BRG-CONFIG] Loading configuration from environment | "
            f"BRIDGE_DATABASE_URL={config.database_url} | "
            f"BRIDGE_SOURCE_DB_PATH={config.source_db_path} | "
            f"BRIDGE_RPC_URL={config.rpc_url} | "
            f"BRIDGE_MIN_BURN_AMOUNT={config.min_burn_amount}"
        )

        if validate:
            config.validate()

        return config

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert configuration to dictionary for serialization/logging.

        The keypair path is reported as configured/absent only.
        """
        return {
            "database_url": self.database_url,
            "source_db_path": self.source_db_path,
            "rpc_url": self.rpc_url,
            "token_mint": self.token_mint,
            "keypair_configured": self.keypair_path is not None,
            "min_burn_amount": self.min_burn_amount,
            "pacing_seconds": self.pacing_seconds,
            "simulation_delay_seconds": self.simulation_delay_seconds,
            "confirm_timeout_seconds": self.confirm_timeout_seconds,
            "report_path": self.report_path,
            "explorer_url": self.explorer_url,
        }


def _env_number(name: str, default, cast):
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return cast(raw.strip())
    except ValueError:
        logger.warning(
            f"[BRG-CONFIG] Invalid {name} value: {raw}, using default: {default}"
        )
        return default

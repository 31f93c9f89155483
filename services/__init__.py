"""
============================================================================
Burn Bridge - Services Layer
============================================================================

Settlement pipeline services: source reading, destination persistence,
migration, settlement and reporting.

Reliability Level: L6 Critical
============================================================================
"""

from services.settlement_config import (
    SettlementConfig,
    SettlementConfigurationError,
)

from services.burn_source import (
    BurnSourceReader,
    SourceBurnEvent,
    SourceUnavailableError,
    RowDecodeError,
)

from services.settlement_store import (
    SettlementStore,
    SettlementRecord,
    RecordStatus,
    InsertOutcome,
    WalletSummary,
    Statistics,
    RecordNotFoundError,
    BelowThresholdError,
)

from services.migration_engine import (
    MigrationEngine,
    MigrationSummary,
)

from services.settlement_engine import (
    SettlementEngine,
    SettlementSummary,
    SettlementMode,
    RecordOutcome,
    simulation_signature,
)

from services.settlement_report import SettlementReport

__all__ = [
    # Configuration
    "SettlementConfig",
    "SettlementConfigurationError",
    # Source
    "BurnSourceReader",
    "SourceBurnEvent",
    "SourceUnavailableError",
    "RowDecodeError",
    # Destination
    "SettlementStore",
    "SettlementRecord",
    "RecordStatus",
    "InsertOutcome",
    "WalletSummary",
    "Statistics",
    "RecordNotFoundError",
    "BelowThresholdError",
    # Engines
    "MigrationEngine",
    "MigrationSummary",
    "SettlementEngine",
    "SettlementSummary",
    "SettlementMode",
    "RecordOutcome",
    "simulation_signature",
    # Report
    "SettlementReport",
]

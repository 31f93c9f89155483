"""
============================================================================
Burn Bridge v1.0.0
Pipeline Orchestrator - Burn -> Mint Settlement
============================================================================

Reliability Level: L6 Critical (Mission-Critical)
Input Constraints: SettlementConfig (validated)
Side Effects: Source reads, destination writes, ledger submissions,
              report file writes

PIPELINE CHAIN:
Migrate -> Mint -> Report

ERROR HANDLING:
A failed migration halts the pipeline. A failed settlement or report
is logged and the remaining steps still run.

TRACEABILITY:
A single correlation_id is propagated through every component of a run.

USAGE:
    python main.py                          # full pipeline
    python main.py migrate [--burner ADDR]
    python main.py mint
    python main.py report [--output PATH]
    python main.py run [--burner ADDR]

============================================================================
"""

import argparse
import json
import logging
import os
import sys
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from dotenv import load_dotenv
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from app.database.session import create_destination_engine
from app.ledger.authority_signer import AuthoritySignerError, MintAuthority, load_authority
from app.ledger.ledger_client import LedgerClient, LedgerClientError
from app.ledger.rate_limiter import SubmissionPacer
from app.ledger.solana_rpc_client import SolanaRpcLedgerClient
from services.burn_source import BurnSourceReader, SourceUnavailableError
from services.migration_engine import MigrationEngine, MigrationSummary
from services.settlement_config import SettlementConfig, SettlementConfigurationError
from services.settlement_engine import SettlementEngine, SettlementSummary
from services.settlement_report import SettlementReport
from services.settlement_store import SettlementStore

# Configure module logger
logger = logging.getLogger(__name__)

# =============================================================================
# Constants
# =============================================================================

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

EXIT_OK = 0
EXIT_FAILURE = 1


class PipelineStep(str, Enum):
    """Pipeline step identifiers."""
    MIGRATE = "migrate"
    MINT = "mint"
    REPORT = "report"


@dataclass
class PipelineResult:
    """Outcome of a full pipeline run."""
    correlation_id: str
    migration: Optional[MigrationSummary] = None
    settlement: Optional[SettlementSummary] = None
    report_path: Optional[str] = None
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def aborted(self) -> bool:
        return PipelineStep.MIGRATE.value in self.errors

    @property
    def success(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "correlation_id": self.correlation_id,
            "migration": self.migration.to_dict() if self.migration else None,
            "settlement": self.settlement.to_dict() if self.settlement else None,
            "report_path": self.report_path,
            "errors": dict(self.errors),
        }


LedgerFactory = Callable[[SettlementConfig, str], LedgerClient]
AuthorityLoader = Callable[[Optional[str], Optional[str]], Optional[MintAuthority]]


def default_ledger_factory(config: SettlementConfig, correlation_id: str) -> LedgerClient:
    return SolanaRpcLedgerClient(
        rpc_url=config.rpc_url,
        token_mint=config.token_mint,
        confirm_timeout_seconds=config.confirm_timeout_seconds,
        correlation_id=correlation_id,
    )


# =============================================================================
# Settlement Pipeline
# =============================================================================

class SettlementPipeline:
    """
    Wires configuration into the migration, settlement and report steps.

    Reliability Level: L6 Critical

    Example Usage:
        pipeline = SettlementPipeline(SettlementConfig.from_env())
        result = pipeline.run()
    """

    def __init__(
        self,
        config: SettlementConfig,
        correlation_id: Optional[str] = None,
        ledger_factory: LedgerFactory = default_ledger_factory,
        authority_loader: AuthorityLoader = load_authority,
        destination_engine: Optional[Engine] = None,
        sleep: Callable[[float], None] = time.sleep
    ) -> None:
        self.config = config
        self.correlation_id = correlation_id or str(uuid.uuid4())
        self._ledger_factory = ledger_factory
        self._authority_loader = authority_loader
        self._destination_engine = destination_engine
        self._sleep = sleep

    # -------------------------------------------------------------------------
    # Components
    # -------------------------------------------------------------------------

    def _store(self) -> SettlementStore:
        if self._destination_engine is None:
            self._destination_engine = create_destination_engine(self.config.database_url)
        return SettlementStore(
            self._destination_engine,
            minimum_burn_amount=self.config.min_burn_amount,
            correlation_id=self.correlation_id,
        )

    # -------------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------------

    def run_migration(self, burner: Optional[str] = None) -> MigrationSummary:
        """
        Raises:
            SourceUnavailableError: Source missing; nothing written
        """
        reader = BurnSourceReader(self.config.source_db_path, correlation_id=self.correlation_id)
        try:
            engine = MigrationEngine(reader, self._store(), correlation_id=self.correlation_id)
            return engine.migrate(burner)
        finally:
            reader.close()

    def run_settlement(self) -> SettlementSummary:
        """
        Raises:
            LedgerUnavailableError: Ledger unreachable at start
            InvalidAuthorityError: Keypair file present but unreadable
        """
        store = self._store()
        store.ensure_schema()

        authority = self._authority_loader(self.config.keypair_path, self.correlation_id)
        ledger = None
        if authority is not None:
            ledger = self._ledger_factory(self.config, self.correlation_id)

        engine = SettlementEngine(
            store,
            ledger,
            authority,
            pacer=SubmissionPacer(self.config.pacing_seconds, sleep=self._sleep),
            simulation_delay_seconds=self.config.simulation_delay_seconds,
            explorer_url=self.config.explorer_url,
            correlation_id=self.correlation_id,
            sleep=self._sleep,
        )
        try:
            return engine.process_pending()
        finally:
            close = getattr(ledger, "close", None)
            if close is not None:
                close()

    def run_report(self, output: Optional[str] = None) -> Path:
        store = self._store()
        store.ensure_schema()
        report = SettlementReport(
            store, explorer_url=self.config.explorer_url, correlation_id=self.correlation_id
        )
        return report.write(output or self.config.report_path)

    def run(self, burner: Optional[str] = None) -> PipelineResult:
        """
        Migrate -> Mint -> Report.

        Migration failure aborts the run. Settlement and report failures
        are recorded in `errors` and the run continues.
        """
        result = PipelineResult(correlation_id=self.correlation_id)

        logger.info(
            f"[BRG-PIPELINE] Step 1: Migrating burn records | "
            f"correlation_id={self.correlation_id}"
        )
        try:
            result.migration = self.run_migration(burner)
        except (SourceUnavailableError, SQLAlchemyError) as e:
            logger.error(
                f"[BRG-PIPELINE] Migration failed - aborting | error={e} | "
                f"correlation_id={self.correlation_id}"
            )
            result.errors[PipelineStep.MIGRATE.value] = str(e)
            return result

        logger.info(
            f"[BRG-PIPELINE] Step 2: Processing mints | "
            f"correlation_id={self.correlation_id}"
        )
        try:
            result.settlement = self.run_settlement()
        except (LedgerClientError, AuthoritySignerError, SQLAlchemyError) as e:
            logger.error(
                f"[BRG-PIPELINE] Minting failed | error={e} | "
                f"correlation_id={self.correlation_id}"
            )
            result.errors[PipelineStep.MINT.value] = str(e)

        logger.info(
            f"[BRG-PIPELINE] Step 3: Generating report | "
            f"correlation_id={self.correlation_id}"
        )
        try:
            result.report_path = str(self.run_report())
        except (OSError, SQLAlchemyError) as e:
            logger.error(
                f"[BRG-PIPELINE] Report generation failed | error={e} | "
                f"correlation_id={self.correlation_id}"
            )
            result.errors[PipelineStep.REPORT.value] = str(e)

        return result


# =============================================================================
# CLI Entry Point
# =============================================================================

def configure_logging(level: Optional[str] = None) -> None:
    logging.basicConfig(
        level=(level or os.getenv("LOG_LEVEL", "INFO")).upper(),
        format=LOG_FORMAT,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Migrate source burns and mint the matching tokens on X1"
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging"
    )
    subparsers = parser.add_subparsers(dest="command")

    migrate = subparsers.add_parser(
        "migrate", help="Migrate data from the source burn store"
    )
    migrate.add_argument(
        "--burner",
        type=str,
        default=None,
        help="Only migrate the latest qualifying record for this burner"
    )

    subparsers.add_parser("mint", help="Process pending mints")

    report = subparsers.add_parser(
        "report", aliases=["generate"], help="Generate the settlement report"
    )
    report.add_argument(
        "--output",
        type=str,
        default=None,
        help="Report output path (default: BRIDGE_REPORT_PATH)"
    )

    run = subparsers.add_parser(
        "run", help="Run full pipeline (migrate -> mint -> report)"
    )
    run.add_argument(
        "--burner",
        type=str,
        default=None,
        help="Only migrate the latest qualifying record for this burner"
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point. Returns the process exit status."""
    load_dotenv()
    args = build_parser().parse_args(argv)
    configure_logging("DEBUG" if args.verbose else None)

    command = args.command or "run"
    if command == "generate":
        command = "report"

    try:
        config = SettlementConfig.from_env()
    except SettlementConfigurationError as e:
        logger.error(f"[{e.error_code}] Startup aborted | error={e.message}")
        return EXIT_FAILURE

    pipeline = SettlementPipeline(config)
    cid = pipeline.correlation_id

    try:
        if command == "migrate":
            summary = pipeline.run_migration(args.burner)
            print(json.dumps(summary.to_dict(), indent=2))
        elif command == "mint":
            summary = pipeline.run_settlement()
            print(json.dumps(summary.to_dict(), indent=2))
        elif command == "report":
            path = pipeline.run_report(args.output)
            print(str(path))
        else:
            logger.info(f"[BRG-PIPELINE] Running full pipeline | correlation_id={cid}")
            result = pipeline.run(getattr(args, "burner", None))
            print(json.dumps(result.to_dict(), indent=2))
            if result.aborted:
                return EXIT_FAILURE

    except (SourceUnavailableError, LedgerClientError, AuthoritySignerError) as e:
        logger.error(
            f"[{e.error_code}] {command} failed | "
            f"error={e} | correlation_id={cid}"
        )
        return EXIT_FAILURE
    except (SQLAlchemyError, OSError) as e:
        logger.error(
            f"[BRG-PIPELINE] {command} failed | error_type={type(e).__name__} | "
            f"error={e} | correlation_id={cid}"
        )
        return EXIT_FAILURE

    logger.info(f"[BRG-PIPELINE] Process completed successfully | correlation_id={cid}")
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())

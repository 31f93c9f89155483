"""
============================================================================
Burn Bridge - Settlement Report
============================================================================

Reliability Level: STANDARD
Input Constraints: Destination store (read-only access)
Side Effects: Writes a JSON document to disk

Builds the operator-facing snapshot of the destination store: store-wide
statistics, per-wallet summaries and every record. Amounts are rendered as
strings so no float ever reaches the document.

============================================================================
"""

import json
import os
import tempfile
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Union

from services.settlement_store import SettlementStore

# Configure module logger
logger = logging.getLogger(__name__)


REPORT_TITLE = "solXEN Burn -> X1 Mint Settlement"


class SettlementReport:
    """
    Read-only report over the destination store.

    Example Usage:
        report = SettlementReport(store, explorer_url=config.explorer_url)
        path = report.write("reports/settlement_report.json")
    """

    def __init__(
        self,
        store: SettlementStore,
        explorer_url: Optional[str] = None,
        correlation_id: Optional[str] = None
    ) -> None:
        self.store = store
        self.explorer_url = explorer_url
        self.correlation_id = correlation_id

    def build(self) -> Dict[str, Any]:
        """Assemble the report document."""
        statistics = self.store.statistics()
        wallets = self.store.wallet_summaries()
        records = []
        for record in self.store.list_all():
            entry = record.to_dict()
            if record.mint_signature and self.explorer_url:
                entry["explorer_url"] = f"{self.explorer_url}{record.mint_signature}"
            records.append(entry)

        return {
            "title": REPORT_TITLE,
            "generated_at": datetime.now(timezone.utc).isoformat(),
            "correlation_id": self.correlation_id,
            "statistics": statistics.to_dict(),
            "wallets": [wallet.to_dict() for wallet in wallets],
            "records": records,
        }

    def write(self, path: Union[str, Path]) -> Path:
        """
        Build the report and write it as JSON.

        Returns:
            Path of the written report
        """
        output = Path(path).expanduser()
        output.parent.mkdir(parents=True, exist_ok=True)

        document = self.build()
        # Readers only ever see a complete report
        with tempfile.NamedTemporaryFile(
            "w", encoding="utf-8", dir=output.parent,
            prefix=f".{output.name}.", suffix=".tmp", delete=False
        ) as handle:
            try:
                json.dump(document, handle, indent=2)
            except (TypeError, ValueError):
                handle.close()
                os.unlink(handle.name)
                raise
        os.replace(handle.name, output)

        logger.info(
            f"[BRG-REPORT] Report generated | path={output} | "
            f"records={len(document['records'])} | "
            f"wallets={len(document['wallets'])} | "
            f"correlation_id={self.correlation_id}"
        )
        return output

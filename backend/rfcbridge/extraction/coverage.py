"""
Coverage Tracker - per-extractor, per-table record of what was actually read
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
from enum import Enum
import structlog
from pydantic import BaseModel, Field

logger = structlog.get_logger(__name__)


class CoverageStatus(str, Enum):
    """Coverage status of a table, ordered failed < skipped < partial < extracted"""
    FAILED = "failed"
    SKIPPED = "skipped"
    PARTIAL = "partial"
    EXTRACTED = "extracted"


class ExpectedTable(BaseModel):
    """A table an extractor declares it will read"""
    table: str
    description: str = ""
    critical: bool = False


class CoverageEntry(BaseModel):
    """Latest coverage record for one (extractor, table)"""
    status: CoverageStatus
    row_count: Optional[int] = None
    reason: Optional[str] = None
    error: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class CoverageTracker:
    """
    Ledger of table coverage for a run.

    Writes never await, so each one is atomic with respect to other tasks on
    the event loop; the last write for a key wins.
    """

    def __init__(self):
        self._entries: Dict[Tuple[str, str], CoverageEntry] = {}

    def track(
        self,
        extractor_id: str,
        table: str,
        status: CoverageStatus,
        details: Optional[Dict[str, Any]] = None
    ) -> CoverageEntry:
        """
        Record the coverage status of a table

        Args:
            extractor_id: Extractor performing the read
            table: Table name
            status: New status
            details: Optional row_count, reason and error

        Returns:
            The stored entry
        """
        details = details or {}
        entry = CoverageEntry(
            status=CoverageStatus(status),
            row_count=details.get("row_count"),
            reason=details.get("reason"),
            error=details.get("error"),
        )
        self._entries[(extractor_id, table)] = entry

        logger.debug("Coverage tracked",
                     extractor_id=extractor_id,
                     table=table,
                     status=entry.status.value,
                     row_count=entry.row_count)
        return entry

    def get(self, extractor_id: str, table: str) -> Optional[CoverageEntry]:
        return self._entries.get((extractor_id, table))

    def extractor_ids(self) -> List[str]:
        return sorted({extractor_id for extractor_id, _ in self._entries})

    def get_report(
        self,
        extractor_id: str,
        expected: Optional[List[ExpectedTable]] = None
    ) -> Dict[str, Any]:
        """
        Coverage report for one extractor

        Returns:
            {extractor_id, expected, by_table, totals, extracted, partial,
             skipped, failed} where the per-status keys list table names
        """
        by_table = {
            table: entry.model_dump(mode="json", exclude_none=True)
            for (ext_id, table), entry in self._entries.items()
            if ext_id == extractor_id
        }

        buckets: Dict[str, List[str]] = {status.value: [] for status in CoverageStatus}
        for table, entry in by_table.items():
            buckets[entry["status"]].append(table)

        return {
            "extractor_id": extractor_id,
            "expected": [table.model_dump() for table in expected or []],
            "by_table": by_table,
            "totals": {status: len(tables) for status, tables in buckets.items()},
            **buckets,
        }

    def get_summary(self) -> Dict[str, Any]:
        """Totals across every extractor seen in this run"""
        totals = {status.value: 0 for status in CoverageStatus}
        rows = 0
        for entry in self._entries.values():
            totals[entry.status.value] += 1
            rows += entry.row_count or 0

        return {
            "extractors": len(self.extractor_ids()),
            "tables": len(self._entries),
            "rows": rows,
            "totals": totals,
        }

    def reset(self):
        self._entries.clear()

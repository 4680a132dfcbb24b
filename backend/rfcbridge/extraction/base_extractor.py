"""
Base Extractor - lifecycle and helpers shared by every extractor
"""

import time
from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Any, AsyncGenerator, Dict, List, Optional, Sequence
import structlog

from rfcbridge.core.exceptions import ExtractionError, ODataError
from rfcbridge.extraction.checkpoint import COMPLETE_KEY
from rfcbridge.extraction.context import ExtractionContext
from rfcbridge.extraction.coverage import CoverageEntry, CoverageStatus, ExpectedTable
from rfcbridge.rfc.function_caller import FunctionCaller
from rfcbridge.rfc.table_reader import TableChunk, TableReader, TableReadOptions, TableReadResult

logger = structlog.get_logger(__name__)

NO_RFC_REASON = "No RFC connection"


class ExtractorCategory(str, Enum):
    """Functional category of an extractor"""
    CONFIG = "config"
    METADATA = "metadata"
    CODE = "code"
    MASTER_DATA = "master_data"


class BaseExtractor(ABC):
    """
    Base class for extractors.

    Subclasses set the identity attributes and implement _extract_live and
    _extract_mock; extract() dispatches on the context mode. Every table read
    goes through _read_table or _stream_table so the coverage ledger stays the
    single record of what was actually read.
    """

    extractor_id: str = ""
    name: str = ""
    module: str = ""
    category: ExtractorCategory = ExtractorCategory.CONFIG
    critical: bool = False

    def __init__(self, context: ExtractionContext):
        self.context = context
        self._table_reader: Optional[TableReader] = None
        self._function_caller: Optional[FunctionCaller] = None
        self.logger = logger.bind(extractor_id=self.extractor_id)

    def expected_tables(self) -> List[ExpectedTable]:
        """Tables this extractor intends to read"""
        return []

    @property
    def is_critical(self) -> bool:
        """Critical extractors abort a fail-fast run when they fail"""
        return self.critical or any(table.critical for table in self.expected_tables())

    async def extract(self) -> Dict[str, Any]:
        """
        Run the extractor in the context's mode

        Writes the _complete checkpoint on success. Failures are logged and
        re-raised without writing it.

        Returns:
            Result tree keyed by section name
        """
        start_time = time.monotonic()
        self.logger.info("Extraction started", name=self.name, mode=self.context.mode)

        try:
            if self.context.is_live:
                result = await self._extract_live()
            else:
                result = await self._extract_mock()
            if not isinstance(result, dict):
                raise ExtractionError(
                    f"Extractor {self.extractor_id} returned {type(result).__name__}, expected dict",
                    details={"extractor_id": self.extractor_id}
                )
        except Exception as e:
            self.logger.error("Extraction failed",
                              error=str(e),
                              duration_seconds=round(time.monotonic() - start_time, 3),
                              exc_info=True)
            raise

        await self._save_checkpoint(COMPLETE_KEY, {
            "status": "completed",
            "timestamp": datetime.utcnow().isoformat(),
            "result_keys": list(result.keys()),
        })

        self.logger.info("Extraction completed",
                         result_keys=len(result),
                         duration_seconds=round(time.monotonic() - start_time, 3))
        return result

    @abstractmethod
    async def _extract_live(self) -> Dict[str, Any]:
        pass

    @abstractmethod
    async def _extract_mock(self) -> Dict[str, Any]:
        pass

    # RFC helpers

    @property
    def table_reader(self) -> Optional[TableReader]:
        if self._table_reader is None and self.context.rfc is not None:
            self._table_reader = TableReader(self.context.rfc)
        return self._table_reader

    @property
    def function_caller(self) -> Optional[FunctionCaller]:
        if self._function_caller is None and self.context.rfc is not None:
            self._function_caller = FunctionCaller(self.context.rfc)
        return self._function_caller

    def _has_rfc(self, table: str) -> bool:
        """Whether the table can be read over RFC in this run"""
        return self.context.rfc is not None

    async def _read_table(
        self,
        table: str,
        options: Optional[TableReadOptions] = None,
        **kwargs: Any
    ) -> TableReadResult:
        """
        Read a table and record its coverage

        Returns an empty result marked skipped when no RFC connection is
        available. Read errors are marked failed and re-raised.
        """
        if not self._has_rfc(table):
            self._track_coverage(table, CoverageStatus.SKIPPED, {"reason": NO_RFC_REASON})
            return TableReadResult()

        try:
            result = await self.table_reader.read_table(table, options, **kwargs)
        except Exception as e:
            self._track_coverage(table, CoverageStatus.FAILED, {"error": str(e)})
            raise

        self._track_coverage(table, CoverageStatus.EXTRACTED, {"row_count": len(result.rows)})
        return result

    async def _stream_table(
        self,
        table: str,
        options: Optional[TableReadOptions] = None,
        **kwargs: Any
    ) -> AsyncGenerator[TableChunk, None]:
        """
        Stream a table in chunks and record its coverage

        A failure after some rows were yielded is marked partial with the row
        count reached; a failure before any row is marked failed.
        """
        if not self._has_rfc(table):
            self._track_coverage(table, CoverageStatus.SKIPPED, {"reason": NO_RFC_REASON})
            return

        rows = 0
        try:
            async for chunk in self.table_reader.stream_table(table, options, **kwargs):
                rows += len(chunk.rows)
                yield chunk
        except Exception as e:
            status = CoverageStatus.PARTIAL if rows else CoverageStatus.FAILED
            self._track_coverage(table, status, {"row_count": rows, "error": str(e)})
            raise

        self._track_coverage(table, CoverageStatus.EXTRACTED, {"row_count": rows})

    async def _read_declared_tables(
        self,
        tables: Optional[Sequence[str]] = None,
        options: Optional[Dict[str, TableReadOptions]] = None
    ) -> Dict[str, List[Dict[str, str]]]:
        """
        Read the expected tables, tolerating non-critical failures

        Args:
            tables: Subset of expected table names (default: all of them)
            options: Per-table read options

        Returns:
            {table: rows}; failed non-critical tables map to []
        """
        options = options or {}
        results: Dict[str, List[Dict[str, str]]] = {}

        for expected in self.expected_tables():
            if tables is not None and expected.table not in tables:
                continue
            try:
                result = await self._read_table(expected.table, options.get(expected.table))
            except Exception as e:
                if expected.critical:
                    raise
                self.logger.warning("Non-critical table read failed",
                                    table=expected.table,
                                    error=str(e))
                results[expected.table] = []
                continue
            results[expected.table] = result.rows

        return results

    async def _call_fm(
        self,
        fm_name: str,
        imports: Optional[Dict[str, Any]] = None,
        tables: Optional[Dict[str, Any]] = None
    ) -> Optional[Dict[str, Any]]:
        """Call a function module; None when no RFC connection is available"""
        if self.function_caller is None:
            self.logger.warning("Skipping function call, no RFC connection", function_module=fm_name)
            return None
        return await self.function_caller.call(fm_name, imports, tables)

    async def _call_with_commit(
        self,
        fm_name: str,
        imports: Optional[Dict[str, Any]] = None
    ) -> Optional[Dict[str, Any]]:
        """Call a BAPI and commit it on the same connection"""
        if self.function_caller is None:
            self.logger.warning("Skipping BAPI call, no RFC connection", function_module=fm_name)
            return None
        return await self.function_caller.call_with_commit(fm_name, imports)

    # OData helper

    async def _read_odata(
        self,
        service: str,
        entity: str,
        params: Optional[Dict[str, Any]] = None
    ) -> List[Dict[str, Any]]:
        """All entities of an OData entity set, or [] when OData is unavailable"""
        if self.context.odata is None:
            self.logger.warning("OData not configured", service=service, entity=entity)
            return []
        try:
            return await self.context.odata.get_all(f"{service.strip('/')}/{entity}", params)
        except ODataError as e:
            self.logger.warning("OData read failed", service=service, entity=entity, error=str(e))
            return []

    # Coverage and checkpoints

    def _track_coverage(
        self,
        table: str,
        status: CoverageStatus,
        details: Optional[Dict[str, Any]] = None
    ) -> CoverageEntry:
        return self.context.coverage.track(self.extractor_id, table, status, details)

    async def _save_checkpoint(self, key: str, value: Any):
        await self.context.checkpoint.save(self.extractor_id, key, value)

    async def _load_checkpoint(self, key: str) -> Optional[Any]:
        return await self.context.checkpoint.load(self.extractor_id, key)

    async def _clear_checkpoints(self):
        await self.context.checkpoint.clear(self.extractor_id)

    def get_coverage_report(self) -> Dict[str, Any]:
        return self.context.coverage.get_report(self.extractor_id, self.expected_tables())

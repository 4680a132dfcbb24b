"""
Universal Table Reader - RFC_READ_TABLE family with discovery, chunking and streaming
"""

from typing import Any, AsyncGenerator, Dict, List, Optional, Sequence
import structlog
from pydantic import BaseModel, Field

from rfcbridge.core.config import settings
from rfcbridge.core.exceptions import (
    RemoteError,
    RfcBridgeException,
    TableReadError,
)
from rfcbridge.rfc.client import RfcClient
from rfcbridge.rfc.pool import RfcPool

logger = structlog.get_logger(__name__)

DEFAULT_TABLE_READ_FMS = (
    "/SAPDS/RFC_READ_TABLE",
    "BBP_RFC_READ_TABLE",
    "RFC_READ_TABLE",
)
PROBE_TABLE = "T000"
DELIMITER = "|"
MAX_OPTION_LINE = 72
_SANITIZE_CHARS = str.maketrans("", "", "';\\")


class TableReadOptions(BaseModel):
    """Options for a table read"""
    fields: Optional[List[str]] = None  # None = all fields
    where: Optional[str] = None
    max_rows: int = 0  # 0 = all
    row_skip: int = 0
    chunk_size: Optional[int] = None  # streaming only
    sanitize: bool = True


class FieldInfo(BaseModel):
    """Field descriptor returned by the read function"""
    name: str
    offset: int = 0
    length: int = 0
    type: str = ""


class TableReadResult(BaseModel):
    """Rows and field descriptors of a table read"""
    rows: List[Dict[str, str]] = Field(default_factory=list)
    fields: List[str] = Field(default_factory=list)
    field_info: List[FieldInfo] = Field(default_factory=list)
    total_rows: int = 0


class TableChunk(BaseModel):
    """One page of a streamed table"""
    rows: List[Dict[str, str]] = Field(default_factory=list)
    chunk_index: int = 0
    offset: int = 0
    fields: List[str] = Field(default_factory=list)
    has_more: bool = False


def sanitize_where(value: str) -> str:
    """Strip quotes, semicolons and backslashes from filter text"""
    return value.translate(_SANITIZE_CHARS)


def split_where_clause(where: str, max_len: int = MAX_OPTION_LINE) -> List[str]:
    """
    Split a WHERE clause into OPTIONS lines of at most max_len characters

    Splits at the last whitespace at or before max_len; hard-splits at max_len
    when a line has no whitespace.
    """
    if len(where) <= max_len:
        return [where]

    lines = []
    remaining = where
    while remaining:
        if len(remaining) <= max_len:
            lines.append(remaining)
            break
        split_at = next(
            (i for i in range(max_len, 0, -1) if remaining[i].isspace()),
            max_len
        )
        lines.append(remaining[:split_at])
        remaining = remaining[split_at:].lstrip()
    return lines


class TableReader:
    """Reads SAP tables through the pool, one client per request"""

    def __init__(
        self,
        pool: RfcPool,
        chunk_size: Optional[int] = None,
        preferred_fm: Optional[str] = None,
        candidate_fms: Optional[Sequence[str]] = None,
    ):
        self.pool = pool
        self.chunk_size = chunk_size or settings.TABLE_READ_CHUNK_SIZE
        self.preferred_fm = preferred_fm or settings.TABLE_READ_PREFERRED_FUNCTION
        self.candidate_fms = list(candidate_fms or settings.TABLE_READ_FUNCTIONS or DEFAULT_TABLE_READ_FMS)
        self._resolved_fm: Optional[str] = None

    @property
    def resolved_fm(self) -> Optional[str]:
        return self._resolved_fm

    async def read_table(
        self,
        table_name: str,
        options: Optional[TableReadOptions] = None,
        **kwargs: Any
    ) -> TableReadResult:
        """
        Read up to options.max_rows rows of a table

        Args:
            table_name: SAP table name (e.g. 'T000')
            options: Read options; keyword arguments build one when omitted

        Returns:
            TableReadResult with trimmed row values

        Raises:
            TableReadError: Transport or remote failure, annotated with the table
        """
        options = options or TableReadOptions(**kwargs)
        params = self.build_params(table_name, options)

        try:
            client = await self.pool.acquire()
        except RfcBridgeException as e:
            raise self._wrap(table_name, e) from e

        try:
            fm = await self._resolve_fm(client)
            result = await client.call(fm, params)
        except Exception as e:
            raise self._wrap(table_name, e) from e
        finally:
            await self.pool.release(client)

        return self.parse_result(result)

    async def stream_table(
        self,
        table_name: str,
        options: Optional[TableReadOptions] = None,
        **kwargs: Any
    ) -> AsyncGenerator[TableChunk, None]:
        """
        Stream a table in chunks

        The client is released between chunks, so abandoning the iteration
        never leaks a connection.

        Yields:
            TableChunk objects in table order
        """
        options = options or TableReadOptions(**kwargs)
        chunk_size = options.chunk_size or self.chunk_size
        offset = options.row_skip
        chunk_index = 0

        while True:
            page_options = options.model_copy(update={"max_rows": chunk_size, "row_skip": offset})
            try:
                result = await self.read_table(table_name, page_options)
            except TableReadError as e:
                e.details["offset"] = offset
                e.details["chunk_index"] = chunk_index
                raise

            received = len(result.rows)
            has_more = received == chunk_size
            if received > 0:
                yield TableChunk(
                    rows=result.rows,
                    chunk_index=chunk_index,
                    offset=offset,
                    fields=result.fields,
                    has_more=has_more,
                )
                offset += received
                chunk_index += 1

            if not has_more:
                logger.debug("Table stream complete", table=table_name, chunks=chunk_index, rows=offset)
                return

    async def get_row_count(self, table_name: str, where: Optional[str] = None, sanitize: bool = True) -> int:
        """
        Row count using NO_DATA so no payload is transferred
        """
        params = self.build_params(table_name, TableReadOptions(where=where, sanitize=sanitize))
        params["NO_DATA"] = "X"

        try:
            client = await self.pool.acquire()
        except RfcBridgeException as e:
            raise self._wrap(table_name, e) from e

        try:
            fm = await self._resolve_fm(client)
            result = await client.call(fm, params)
        except Exception as e:
            raise self._wrap(table_name, e) from e
        finally:
            await self.pool.release(client)

        for key in ("ROWCOUNT", "NUMBER_OF_ROWS"):
            if result.get(key) not in (None, ""):
                try:
                    return int(result[key])
                except (TypeError, ValueError):
                    break
        return len(result.get("DATA") or [])

    async def get_table_metadata(self, table_name: str) -> Dict[str, Any]:
        """
        Field list of a table from the data dictionary (DD03L)
        """
        name = sanitize_where(table_name).strip().upper()
        result = await self.read_table(
            "DD03L",
            TableReadOptions(
                fields=["FIELDNAME", "POSITION", "KEYFLAG", "DATATYPE", "LENG", "DECIMALS", "ROLLNAME"],
                where=f"TABNAME = '{name}'",
                sanitize=False,
            ),
        )

        fields = []
        for row in result.rows:
            field_name = row.get("FIELDNAME", "")
            # Dot-prefixed rows are include/append markers, not fields
            if not field_name or field_name.startswith("."):
                continue
            fields.append({
                "name": field_name,
                "position": _to_int(row.get("POSITION")),
                "key": row.get("KEYFLAG") == "X",
                "type": row.get("DATATYPE", ""),
                "length": _to_int(row.get("LENG")),
                "decimals": _to_int(row.get("DECIMALS")),
                "rollname": row.get("ROLLNAME", ""),
            })
        fields.sort(key=lambda f: f["position"])

        return {"table": table_name, "fields": fields}

    def build_params(self, table_name: str, options: TableReadOptions) -> Dict[str, Any]:
        """RFC parameters for a read-table call"""
        params: Dict[str, Any] = {
            "QUERY_TABLE": table_name,
            "DELIMITER": DELIMITER,
            "ROWCOUNT": options.max_rows or 0,
            "ROWSKIPS": options.row_skip or 0,
            "OPTIONS": [],
        }

        if options.fields:
            params["FIELDS"] = [{"FIELDNAME": name} for name in options.fields]

        if options.where:
            where = sanitize_where(options.where) if options.sanitize else options.where
            params["OPTIONS"] = [{"TEXT": line} for line in split_where_clause(where)]

        return params

    @staticmethod
    def parse_result(result: Dict[str, Any]) -> TableReadResult:
        """Parse FIELDS descriptors and fixed-width DATA rows"""
        field_info = [
            FieldInfo(
                name=(field.get("FIELDNAME") or "").strip(),
                offset=_to_int(field.get("OFFSET")),
                length=_to_int(field.get("LENGTH")),
                type=(field.get("TYPE") or "").strip(),
            )
            for field in result.get("FIELDS") or []
        ]

        rows = []
        for data_row in result.get("DATA") or []:
            wa = data_row.get("WA") or ""
            rows.append({
                info.name: wa[info.offset:info.offset + info.length].strip()
                for info in field_info
            })

        return TableReadResult(
            rows=rows,
            fields=[info.name for info in field_info],
            field_info=field_info,
            total_rows=len(rows),
        )

    async def _resolve_fm(self, client: RfcClient) -> str:
        if self.preferred_fm:
            return self.preferred_fm
        if self._resolved_fm:
            return self._resolved_fm

        # Only a remote error rules a candidate out
        for fm in self.candidate_fms:
            try:
                await client.call(fm, {
                    "QUERY_TABLE": PROBE_TABLE,
                    "DELIMITER": DELIMITER,
                    "ROWCOUNT": 1,
                    "OPTIONS": [],
                })
            except RemoteError as e:
                logger.debug("Table read FM not usable", fm=fm, error=str(e))
                continue
            self._resolved_fm = fm
            logger.info("Using table read FM", fm=fm)
            return fm

        self._resolved_fm = self.candidate_fms[-1]
        logger.warning("No table read FM verified, using fallback", fm=self._resolved_fm)
        return self._resolved_fm

    @staticmethod
    def _wrap(table_name: str, error: BaseException) -> TableReadError:
        if isinstance(error, TableReadError):
            return error
        message = getattr(error, "message", None) or str(error)
        details = dict(getattr(error, "details", {}) or {})
        return TableReadError(
            f"Failed to read table {table_name}: {message}",
            table=table_name,
            details=details,
            cause=error,
        )


def _to_int(value: Any) -> int:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return 0

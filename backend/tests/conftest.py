import asyncio
import re
from collections import defaultdict, deque
from typing import Any, Callable, Dict, List, Optional

import pytest

from rfcbridge.core.exceptions import RemoteError, RfcConnectionError, UnknownFunctionError
from rfcbridge.extraction.checkpoint import MemoryCheckpointStore
from rfcbridge.extraction.context import ExtractionContext
from rfcbridge.rfc.client import RfcClient
from rfcbridge.rfc.pool import RfcPool
from rfcbridge.rfc.table_reader import DEFAULT_TABLE_READ_FMS

_CONDITION = re.compile(r"^\s*(\w+)\s*=\s*'?([^']*?)'?\s*$")


class FakeClock:
    """Manually advanced monotonic clock"""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeAdapter:
    """In-memory RFC session bound to a FakeSapServer"""

    def __init__(self, server: "FakeSapServer", params: Any):
        self.server = server
        self.params = params
        self.alive = False

    async def open(self) -> None:
        self.server.opens += 1
        if self.server.open_delay:
            await asyncio.sleep(self.server.open_delay)
        if self.server.open_failures > 0:
            self.server.open_failures -= 1
            raise RfcConnectionError("Connection reset", details={"host": self.params.host})
        if self.server.fail_open:
            raise RfcConnectionError("Connection refused", details={"host": self.params.host})
        self.alive = True

    async def close(self) -> None:
        if self.alive:
            self.server.closes += 1
        self.alive = False

    async def call(self, function_name: str, params: Dict[str, Any]) -> Dict[str, Any]:
        if not self.alive:
            raise RfcConnectionError("Connection is closed")
        self.server.calls.append((function_name, params))
        return await self.server.handle(function_name, params)


class FakeSapServer:
    """
    Stand-in for a remote system.

    Implements the read-table function family over in-memory tables
    (fixed-width WA rows, FIELDS descriptors, ROWCOUNT/ROWSKIPS, simple
    equality filters and NO_DATA), plus registrable function handlers and
    queued per-function failures.
    """

    def __init__(self):
        self.tables: Dict[str, List[Dict[str, str]]] = {}
        self.table_errors: Dict[str, Exception] = {}
        self.fail_at_skip: Dict[str, int] = {}
        self.read_fms = set(DEFAULT_TABLE_READ_FMS)
        self.handlers: Dict[str, Callable[[Dict[str, Any]], Dict[str, Any]]] = {}
        self.failures: Dict[str, deque] = defaultdict(deque)
        self.call_delay = 0.0
        self.fail_open = False
        self.open_failures = 0
        self.open_delay = 0.0
        self.opens = 0
        self.closes = 0
        self.calls: List[tuple] = []

    def adapter_factory(self, params: Any) -> FakeAdapter:
        return FakeAdapter(self, params)

    def add_table(self, name: str, rows: List[Dict[str, str]]):
        self.tables[name] = rows

    def fail_next(self, function_name: str, error: Exception, times: int = 1):
        for _ in range(times):
            self.failures[function_name].append(error)

    def calls_to(self, function_name: str) -> List[Dict[str, Any]]:
        return [params for name, params in self.calls if name == function_name]

    async def handle(self, function_name: str, params: Dict[str, Any]) -> Dict[str, Any]:
        if self.call_delay:
            await asyncio.sleep(self.call_delay)
        if self.failures[function_name]:
            raise self.failures[function_name].popleft()
        if function_name in self.read_fms:
            return self._read_table(params)
        if function_name in self.handlers:
            return self.handlers[function_name](params)
        if function_name in ("RFC_PING", "BAPI_TRANSACTION_COMMIT", "BAPI_TRANSACTION_ROLLBACK"):
            return {}
        raise UnknownFunctionError(f"Function module {function_name} not found",
                                   details={"function_module": function_name})

    def _read_table(self, params: Dict[str, Any]) -> Dict[str, Any]:
        table = params["QUERY_TABLE"]
        if table in self.table_errors:
            raise self.table_errors[table]
        if table not in self.tables:
            raise RemoteError(f"TABLE_NOT_AVAILABLE: {table}", details={"table": table})

        skip = int(params.get("ROWSKIPS") or 0)
        if table in self.fail_at_skip and skip >= self.fail_at_skip[table]:
            raise RemoteError(f"Read of {table} aborted at row {skip}", details={"table": table})

        rows = self.tables[table]
        all_fields = list(rows[0].keys()) if rows else []
        fields = [f["FIELDNAME"] for f in params.get("FIELDS") or []] or all_fields

        where = " ".join(line["TEXT"] for line in params.get("OPTIONS") or [])
        matching = [row for row in rows if _matches(row, where)]

        lengths = {
            name: max([len(name)] + [len(row.get(name, "")) for row in rows])
            for name in fields
        }
        descriptors = []
        offset = 0
        for name in fields:
            descriptors.append({
                "FIELDNAME": name,
                "OFFSET": f"{offset:06d}",
                "LENGTH": f"{lengths[name]:06d}",
                "TYPE": "C",
            })
            offset += lengths[name] + 1

        if params.get("NO_DATA") == "X":
            return {"FIELDS": descriptors, "DATA": [], "NUMBER_OF_ROWS": len(matching)}

        count = int(params.get("ROWCOUNT") or 0)
        selected = matching[skip:skip + count] if count else matching[skip:]
        data = [
            {"WA": "|".join(row.get(name, "").ljust(lengths[name]) for name in fields)}
            for row in selected
        ]
        return {"FIELDS": descriptors, "DATA": data}


def _matches(row: Dict[str, str], where: str) -> bool:
    if not where.strip():
        return True
    for condition in re.split(r"\s+AND\s+", where.strip(), flags=re.IGNORECASE):
        match = _CONDITION.match(condition)
        if not match:
            raise RemoteError(f"Unsupported filter: {condition}")
        field, value = match.groups()
        if row.get(field, "") != value:
            return False
    return True


T000_ROWS = [
    {"MANDT": "000", "MTEXT": "SAP"},
    {"MANDT": "100", "MTEXT": "Customer"},
    {"MANDT": "200", "MTEXT": "Test"},
]


@pytest.fixture
def connection_params():
    """Direct connection parameters for tests."""
    return {
        "ashost": "sap.example.com",
        "sysnr": "0",
        "client": "100",
        "user": "RFC_USER",
        "passwd": "secret",
        "lang": "EN",
    }


@pytest.fixture
def sap_server():
    """Fake remote system with the client table loaded."""
    server = FakeSapServer()
    server.add_table("T000", [dict(row) for row in T000_ROWS])
    return server


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def make_client(connection_params, sap_server):
    """Factory for clients wired to the fake server with no retry back-off."""
    def _make(**kwargs) -> RfcClient:
        options = {
            "adapter_factory": sap_server.adapter_factory,
            "retry_base_delay": 0,
            "timeout": 1.0,
        }
        options.update(kwargs)
        return RfcClient(connection_params, **options)
    return _make


@pytest.fixture
async def make_pool(connection_params, sap_server):
    """Factory for pools wired to the fake server; drained on teardown."""
    pools = []

    def _make(pool_size: int = 2, acquire_timeout: float = 1.0, **kwargs) -> RfcPool:
        pool = RfcPool(
            connection_params,
            pool_size=pool_size,
            acquire_timeout=acquire_timeout,
            call_timeout=kwargs.pop("call_timeout", 1.0),
            retries=kwargs.pop("retries", 0),
            adapter_factory=sap_server.adapter_factory,
            client_options={"retry_base_delay": 0},
        )
        pools.append(pool)
        return pool

    yield _make

    for pool in pools:
        if not pool.drained:
            await pool.drain()


@pytest.fixture
async def pool(make_pool):
    return make_pool()


@pytest.fixture
def live_context(pool):
    """Live-mode context backed by the fake server."""
    return ExtractionContext(mode="live", rfc_pool=pool, checkpoint=MemoryCheckpointStore())


@pytest.fixture
def offline_context():
    """Live-mode context without an RFC connection."""
    return ExtractionContext(mode="live", checkpoint=MemoryCheckpointStore())


@pytest.fixture
def mock_context():
    return ExtractionContext(mode="mock", checkpoint=MemoryCheckpointStore())

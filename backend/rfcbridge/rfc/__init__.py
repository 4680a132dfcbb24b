"""
RFC Transport Package

Pooled, resilient access to SAP function modules over the native RFC
transport: connection parameters, the adapter boundary, the client with
timeouts, retries and circuit breaker, the connection pool, the universal
table reader and the BAPI function caller.
"""

from .connection import ConnectionParams, ConnectionType
from .adapter import RfcAdapter, PyRfcAdapter, map_native_error
from .circuit_breaker import CircuitBreaker, CircuitBreakerConfig, CircuitBreakerState
from .client import RfcClient, ClientState
from .pool import RfcPool
from .table_reader import (
    TableReader,
    TableReadOptions,
    TableReadResult,
    TableChunk,
    FieldInfo,
    sanitize_where,
    split_where_clause
)
from .function_caller import FunctionCaller, collect_return_errors

__all__ = [
    "ConnectionParams",
    "ConnectionType",
    "RfcAdapter",
    "PyRfcAdapter",
    "map_native_error",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerState",
    "RfcClient",
    "ClientState",
    "RfcPool",
    "TableReader",
    "TableReadOptions",
    "TableReadResult",
    "TableChunk",
    "FieldInfo",
    "sanitize_where",
    "split_where_clause",
    "FunctionCaller",
    "collect_return_errors"
]

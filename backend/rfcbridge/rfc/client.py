"""
RFC Client - one native session with timeouts, retries and a circuit breaker
"""

import asyncio
from contextlib import asynccontextmanager
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Set, TypeVar, Union
import structlog

from rfcbridge.core.config import settings
from rfcbridge.core.exceptions import (
    CircuitOpenError,
    ConfigError,
    RemoteError,
    RfcBridgeException,
    RfcConnectionError,
    RfcError,
    RfcTimeoutError,
)
from rfcbridge.rfc.adapter import AdapterFactory, RfcAdapter, pyrfc_adapter_factory
from rfcbridge.rfc.circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from rfcbridge.rfc.connection import ConnectionParams, ConnectionType

logger = structlog.get_logger(__name__)

T = TypeVar("T")

FM_PING = "RFC_PING"
FM_FUNCTION_SEARCH = "RFC_FUNCTION_SEARCH"
FM_FUNCTION_INTERFACE = "RFC_GET_FUNCTION_INTERFACE"
FM_COMMIT = "BAPI_TRANSACTION_COMMIT"
FM_ROLLBACK = "BAPI_TRANSACTION_ROLLBACK"

_TRANSIENT_MARKERS = ("connection", "timeout", "timed out", "reset", "broken pipe")


class ClientState(str, Enum):
    """Lifecycle states of an RFC client"""
    CLOSED = "closed"
    OPENING = "opening"
    OPEN = "open"
    STATEFUL = "stateful"  # Open and inside a multi-call transaction
    BROKEN = "broken"


def _trim(value: Any) -> str:
    return (value or "").strip() if isinstance(value, str) else ("" if value is None else str(value))


class RfcClient:
    """
    Wraps a single native RFC session.

    A client must never be used by two tasks at once; acquire clients from an
    RfcPool for parallelism.
    """

    def __init__(
        self,
        connection_params: Union[ConnectionParams, Dict[str, Any]],
        timeout: Optional[float] = None,
        retries: Optional[int] = None,
        circuit_breaker_threshold: Optional[int] = None,
        circuit_breaker_reset_seconds: Optional[float] = None,
        adapter_factory: Optional[AdapterFactory] = None,
        clock: Optional[Callable[[], float]] = None,
        retry_base_delay: float = 0.5,
    ):
        if isinstance(connection_params, dict):
            connection_params = ConnectionParams.from_dict(connection_params)
        self.connection_params = connection_params
        self.timeout = timeout if timeout is not None else settings.RFC_CALL_TIMEOUT
        self.retries = retries if retries is not None else settings.RFC_RETRIES
        self.retry_base_delay = retry_base_delay
        self._adapter_factory = adapter_factory or pyrfc_adapter_factory

        breaker_config = CircuitBreakerConfig(
            failure_threshold=(
                circuit_breaker_threshold
                if circuit_breaker_threshold is not None
                else settings.RFC_CIRCUIT_BREAKER_THRESHOLD
            ),
            reset_timeout_seconds=(
                circuit_breaker_reset_seconds
                if circuit_breaker_reset_seconds is not None
                else settings.RFC_CIRCUIT_BREAKER_RESET_SECONDS
            ),
        )
        breaker_kwargs = {"clock": clock} if clock is not None else {}
        self.circuit_breaker = CircuitBreaker(
            f"rfc:{connection_params.host}", breaker_config, **breaker_kwargs
        )

        self.state = ClientState.CLOSED
        self._adapter: Optional[RfcAdapter] = None
        self._orphaned: Set["asyncio.Task[Any]"] = set()
        self.log = logger.bind(**connection_params.log_fields())

    # Properties

    @property
    def connection_type(self) -> ConnectionType:
        return self.connection_params.connection_type

    @property
    def is_connected(self) -> bool:
        return self.state in (ClientState.OPEN, ClientState.STATEFUL)

    @property
    def is_stateful(self) -> bool:
        return self.state == ClientState.STATEFUL

    def circuit_breaker_stats(self) -> Dict[str, Any]:
        return self.circuit_breaker.stats()

    # Lifecycle

    async def open(self):
        """Open the native session. No-op when already open."""
        if self.is_connected:
            return

        self.state = ClientState.OPENING
        adapter = self._adapter_factory(self.connection_params)
        try:
            await adapter.open()
        except ConfigError:
            self.state = ClientState.BROKEN
            raise
        except Exception as e:
            self.state = ClientState.BROKEN
            self._adapter = None
            raise RfcConnectionError(
                f"Failed to open RFC connection: {getattr(e, 'message', str(e))}",
                details={"host": self.connection_params.host, "original": str(e)}
            ) from e

        self._adapter = adapter
        self.state = ClientState.OPEN
        self.log.info("RFC connection opened")

    async def close(self):
        """Close the native session. Safe to call repeatedly."""
        adapter, self._adapter = self._adapter, None
        if adapter is not None:
            try:
                await adapter.close()
            except Exception as e:
                self.log.warning("Error closing RFC connection", error=str(e))
        if self.state != ClientState.CLOSED:
            self.log.debug("RFC connection closed")
        self.state = ClientState.CLOSED

    async def _mark_broken(self):
        adapter, self._adapter = self._adapter, None
        self.state = ClientState.BROKEN
        if adapter is not None:
            try:
                await adapter.close()
            except Exception as e:
                self.log.debug("Error discarding broken RFC session", error=str(e))

    # Calls

    async def call(self, function_module: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Call a function module with retry logic

        Args:
            function_module: FM name (e.g. 'RFC_READ_TABLE')
            params: Import/table parameters

        Returns:
            FM result as a dict

        Raises:
            CircuitOpenError: Breaker denied the call (never retried)
            RemoteError: Remote function failed semantically (never retried)
            RfcConnectionError / RfcTimeoutError: Transient failure after all retries
        """
        params = params or {}
        last_error: Optional[BaseException] = None

        for attempt in range(self.retries + 1):
            try:
                if not self.is_connected:
                    await self.open()
                return await self.circuit_breaker.execute(
                    lambda: self._call_with_timeout(function_module, params)
                )
            except (CircuitOpenError, RemoteError, ConfigError):
                raise
            except Exception as e:
                last_error = e
                transient = self._is_transient(e)
                # A retry on a fresh session would lose the open transaction
                if transient and attempt < self.retries and not self.is_stateful:
                    delay = self.retry_base_delay * (2 ** attempt)
                    self.log.warning("RFC call failed, retrying",
                                     fm=function_module,
                                     attempt=attempt + 1,
                                     max_attempts=self.retries + 1,
                                     delay_seconds=delay,
                                     error=str(e))
                    await self._mark_broken()
                    await asyncio.sleep(delay)
                    continue
                if transient:
                    await self._mark_broken()
                raise self._as_rfc_error(e, function_module, attempt + 1) from e

        raise RfcError(
            f"RFC call to {function_module} failed after {self.retries + 1} attempts",
            details={"function_module": function_module, "original": str(last_error)}
        )

    async def _call_with_timeout(self, function_module: str, params: Dict[str, Any]) -> Dict[str, Any]:
        adapter = self._adapter
        if adapter is None:
            raise RfcConnectionError(
                "RFC connection is not open",
                details={"function_module": function_module, "host": self.connection_params.host}
            )

        # The native call keeps running after the deadline; it is not cancelled
        task = asyncio.ensure_future(adapter.call(function_module, params))
        done, _ = await asyncio.wait({task}, timeout=self.timeout)
        if task in done:
            return task.result()

        self._orphan(task, adapter)
        raise RfcTimeoutError(
            f"RFC call to {function_module} timed out after {self.timeout}s",
            details={"function_module": function_module, "timeout": self.timeout}
        )

    def _orphan(self, task: "asyncio.Task[Any]", adapter: RfcAdapter):
        """Close a session whose call outlived its deadline once the native side returns"""
        if self._adapter is adapter:
            self._adapter = None
            self.state = ClientState.BROKEN

        async def _close_when_done():
            await asyncio.wait({task})
            if not task.cancelled():
                task.exception()
            try:
                await adapter.close()
            except Exception as e:
                self.log.debug("Error closing timed-out RFC session", error=str(e))

        cleanup = asyncio.ensure_future(_close_when_done())
        self._orphaned.add(cleanup)
        cleanup.add_done_callback(self._orphaned.discard)

    def _is_transient(self, error: BaseException) -> bool:
        if isinstance(error, (RfcConnectionError, RfcTimeoutError, asyncio.TimeoutError)):
            return True
        msg = str(error).lower()
        return any(marker in msg for marker in _TRANSIENT_MARKERS)

    def _as_rfc_error(self, error: BaseException, function_module: str, attempt: int) -> RfcBridgeException:
        if isinstance(error, RfcBridgeException):
            error.details.setdefault("function_module", function_module)
            error.details.setdefault("attempt", attempt)
            return error
        error_cls = RfcConnectionError if self._is_transient(error) else RfcError
        return error_cls(
            f"RFC call to {function_module} failed: {error}",
            details={"function_module": function_module, "attempt": attempt, "original": str(error)}
        )

    async def ping(self) -> bool:
        """Liveness probe. Never raises."""
        try:
            await self.call(FM_PING)
            return True
        except Exception as e:
            self.log.debug("RFC ping failed", error=str(e))
            return False

    # Stateful sessions

    async def begin_stateful_session(self):
        """Keep the session for a sequence of calls sharing one transaction"""
        if not self.is_connected:
            await self.open()
        self.state = ClientState.STATEFUL
        self.log.debug("Stateful RFC session started")

    async def end_stateful_session(self, commit: bool = False):
        """
        End a stateful session

        Args:
            commit: COMMIT (synchronously) before ending; otherwise ROLLBACK
        """
        if not self.is_stateful:
            return
        try:
            if commit:
                await self.circuit_breaker.execute(
                    lambda: self._call_with_timeout(FM_COMMIT, {"WAIT": "X"})
                )
            else:
                try:
                    await self._call_with_timeout(FM_ROLLBACK, {})
                except Exception as e:
                    self.log.warning("Rollback failed", error=str(e))
        finally:
            if self.state == ClientState.STATEFUL:
                self.state = ClientState.OPEN
            self.log.debug("Stateful RFC session ended", commit=commit)

    async def with_stateful_session(self, body: Callable[["RfcClient"], Awaitable[T]]) -> T:
        """
        Run body inside a stateful session: commit on success, rollback on failure

        Args:
            body: Coroutine function receiving this client

        Returns:
            Result of body
        """
        await self.begin_stateful_session()
        try:
            result = await body(self)
        except BaseException:
            await self.end_stateful_session(commit=False)
            raise
        await self.end_stateful_session(commit=True)
        return result

    @asynccontextmanager
    async def stateful_session(self) -> AsyncIterator["RfcClient"]:
        """Context-manager form of with_stateful_session"""
        await self.begin_stateful_session()
        try:
            yield self
        except BaseException:
            await self.end_stateful_session(commit=False)
            raise
        await self.end_stateful_session(commit=True)

    # Introspection

    async def search_function_modules(self, pattern: str) -> List[Dict[str, str]]:
        """
        Search function modules by pattern (e.g. 'BAPI_MATERIAL*')
        """
        result = await self.call(FM_FUNCTION_SEARCH, {"FUNCNAME": pattern})
        return [
            {
                "name": _trim(row.get("FUNCNAME")),
                "group": _trim(row.get("GROUPNAME")),
                "application": _trim(row.get("APPL")),
            }
            for row in result.get("FUNCNAME_LIST") or []
        ]

    async def get_function_interface(self, function_module: str) -> Dict[str, Any]:
        """
        Full interface definition of a function module

        Returns:
            Dict with name, imports, exports, changing, tables and exceptions
        """
        result = await self.call(FM_FUNCTION_INTERFACE, {"FUNCNAME": function_module})

        def _params(rows: Optional[List[Dict[str, Any]]], with_field: bool = True) -> List[Dict[str, Any]]:
            parsed = []
            for row in rows or []:
                entry = {
                    "name": _trim(row.get("PARAMETER")),
                    "type": _trim(row.get("TABNAME")),
                }
                if with_field:
                    entry["field"] = _trim(row.get("FIELDNAME"))
                parsed.append(entry)
            return parsed

        imports = _params(result.get("PARAMS_IMPORT"))
        for entry, row in zip(imports, result.get("PARAMS_IMPORT") or []):
            entry["optional"] = row.get("OPTIONAL") == "X"
            entry["default"] = _trim(row.get("DEFAULT"))

        return {
            "name": function_module,
            "imports": imports,
            "exports": _params(result.get("PARAMS_EXPORT")),
            "changing": _params(result.get("PARAMS_CHANGING")),
            "tables": _params(result.get("PARAMS_TABLES"), with_field=False),
            "exceptions": [
                {"name": _trim(row.get("EXCEPTION")), "text": _trim(row.get("TEXT"))}
                for row in result.get("EXCEPTION_LIST") or []
            ],
        }

"""
Native RFC adapter - the narrow boundary between the toolkit and the RFC runtime
"""

import asyncio
from typing import Any, Callable, Dict, Optional, Protocol, runtime_checkable
import structlog

from rfcbridge.core.exceptions import (
    ConfigError,
    RemoteError,
    RfcBridgeException,
    RfcConnectionError,
    RfcTimeoutError,
    UnknownFunctionError,
)
from rfcbridge.rfc.connection import ConnectionParams

logger = structlog.get_logger(__name__)


@runtime_checkable
class RfcAdapter(Protocol):
    """
    Capability set the RFC client depends on.

    Implementations own wire encoding and character-set conversion and must
    raise only RfcConnectionError, RfcTimeoutError, RemoteError or
    UnknownFunctionError.
    """

    async def open(self) -> None: ...

    async def close(self) -> None: ...

    async def call(self, function_name: str, params: Dict[str, Any]) -> Dict[str, Any]: ...


AdapterFactory = Callable[[ConnectionParams], RfcAdapter]


_UNKNOWN_FUNCTION_KEYS = ("FU_NOT_FOUND", "FUNCTION_NOT_FOUND")
_TIMEOUT_HINTS = ("timeout", "timed out", "time out")


def _error_text(error: BaseException) -> str:
    parts = [str(getattr(error, attr, "") or "") for attr in ("key", "message")]
    text = " ".join(p for p in parts if p).strip()
    return text or str(error)


def map_native_error(error: BaseException, function_name: Optional[str] = None) -> RfcBridgeException:
    """
    Translate a PyRFC exception into the toolkit error taxonomy

    Args:
        error: Exception raised by the native library
        function_name: Function module being called, if any

    Returns:
        The matching RfcBridgeException instance (not raised)
    """
    text = _error_text(error)
    details = {
        "function_module": function_name,
        "native_error": type(error).__name__,
        "original": text,
    }
    lowered = text.lower()
    upper = text.upper()

    if any(key in upper for key in _UNKNOWN_FUNCTION_KEYS):
        return UnknownFunctionError(f"Function module {function_name} not found", details=details)

    if any(hint in lowered for hint in _TIMEOUT_HINTS):
        return RfcTimeoutError(f"RFC call timed out: {text}", details=details)

    native_type = type(error).__name__
    if native_type in ("CommunicationError", "LogonError"):
        return RfcConnectionError(f"RFC connection error: {text}", details=details)

    if native_type in ("ABAPApplicationError", "ABAPRuntimeError", "ExternalRuntimeError"):
        return RemoteError(f"Remote error in {function_name}: {text}", details=details)

    if isinstance(error, (ConnectionError, OSError)):
        return RfcConnectionError(f"RFC connection error: {text}", details=details)

    return RemoteError(f"RFC error in {function_name}: {text}", details=details)


class PyRfcAdapter:
    """
    Adapter over SAP PyRFC (requires the SAP NW RFC SDK).

    PyRFC calls block, so each one runs in a worker thread. Native calls are
    not cancellable; callers enforce deadlines on top of this adapter.
    """

    def __init__(self, params: ConnectionParams):
        self.params = params
        self._connection: Any = None

    @staticmethod
    def _load_pyrfc() -> Any:
        try:
            import pyrfc
        except ImportError as e:
            raise ConfigError(
                "pyrfc is not installed. Install it with: pip install pyrfc "
                "(requires the SAP NW RFC SDK)",
                details={"hint": "https://github.com/SAP/PyRFC"}
            ) from e
        return pyrfc

    @property
    def alive(self) -> bool:
        return bool(self._connection is not None and getattr(self._connection, "alive", True))

    async def open(self) -> None:
        pyrfc = self._load_pyrfc()
        native_params = self.params.to_native()
        try:
            self._connection = await asyncio.to_thread(pyrfc.Connection, **native_params)
        except Exception as e:
            self._connection = None
            raise map_native_error(e) from e

    async def close(self) -> None:
        connection, self._connection = self._connection, None
        if connection is None:
            return
        try:
            await asyncio.to_thread(connection.close)
        except Exception as e:
            logger.warning("Error closing native RFC connection", host=self.params.host, error=str(e))

    async def call(self, function_name: str, params: Dict[str, Any]) -> Dict[str, Any]:
        if self._connection is None:
            raise RfcConnectionError(
                "RFC connection is not open",
                details={"function_module": function_name, "host": self.params.host}
            )
        try:
            return await asyncio.to_thread(self._connection.call, function_name, **params)
        except Exception as e:
            raise map_native_error(e, function_name) from e


def pyrfc_adapter_factory(params: ConnectionParams) -> RfcAdapter:
    """Default adapter factory"""
    return PyRfcAdapter(params)

from typing import Any, Dict, Optional


class RfcBridgeException(Exception):
    """Base exception for the rfcbridge toolkit."""

    default_code = "RFCBRIDGE_ERROR"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.error_code = error_code or self.default_code
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        """Structured error payload for reports and logs."""
        return {
            "message": self.message,
            "error_code": self.error_code,
            "details": self.details,
        }


class ConfigError(RfcBridgeException):
    """Malformed connection parameters, unknown template or missing field."""
    default_code = "CONFIG_ERROR"


class RfcError(RfcBridgeException):
    """Base for errors raised by the RFC transport layer."""
    default_code = "RFC_ERROR"


class RfcConnectionError(RfcError):
    """Open failure or dead session. Retried by the client."""
    default_code = "RFC_CONNECTION"


class RfcTimeoutError(RfcError):
    """Per-call deadline exceeded. Retried by the client."""
    default_code = "RFC_TIMEOUT"


class RemoteError(RfcError):
    """The remote function reported a semantic failure. Never retried."""
    default_code = "RFC_REMOTE"


class UnknownFunctionError(RemoteError):
    """The remote function does not exist on the target system."""
    default_code = "RFC_UNKNOWN_FUNCTION"


class CircuitOpenError(RfcError):
    """The circuit breaker denied the call."""
    default_code = "CIRCUIT_OPEN"


class PoolError(RfcError):
    """Misuse of the connection pool."""
    default_code = "POOL_ERROR"


class PoolDrainedError(PoolError):
    """The pool has been drained and rejects all acquires."""
    default_code = "POOL_DRAINED"


class PoolAcquireTimeout(PoolError):
    """No client became available within the acquire timeout."""
    default_code = "POOL_ACQUIRE_TIMEOUT"


class TableReadError(RfcError):
    """Transport error while reading a table, annotated with the table name."""
    default_code = "ERR_TABLE_READ"

    def __init__(
        self,
        message: str,
        table: str,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None
    ):
        details = dict(details or {})
        details["table"] = table
        if cause is not None:
            details.setdefault("cause", type(cause).__name__)
            if isinstance(cause, RfcBridgeException):
                details.setdefault("cause_code", cause.error_code)
        super().__init__(message, details=details)
        self.table = table
        self.cause = cause

    @property
    def offset(self) -> Optional[int]:
        """Row offset reached before a streaming failure, if any."""
        return self.details.get("offset")


class FunctionCallError(RfcError):
    """A function module call failed outside the transport taxonomy."""
    default_code = "ERR_FUNCTION_CALL"


class ExtractionError(RfcBridgeException):
    """Extractor contract violation or extraction failure."""
    default_code = "EXTRACTION_ERROR"


class CheckpointError(RfcBridgeException):
    """Checkpoint persistence failure."""
    default_code = "CHECKPOINT_ERROR"


class ODataError(RfcBridgeException):
    """HTTP/OData transport failure."""
    default_code = "ODATA_ERROR"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        details = dict(details or {})
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(message, details=details)
        self.status_code = status_code

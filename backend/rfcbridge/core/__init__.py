from .config import Settings, settings
from .exceptions import (
    RfcBridgeException,
    ConfigError,
    RfcError,
    RfcConnectionError,
    RfcTimeoutError,
    RemoteError,
    UnknownFunctionError,
    CircuitOpenError,
    PoolError,
    PoolDrainedError,
    PoolAcquireTimeout,
    TableReadError,
    FunctionCallError,
    ExtractionError,
    CheckpointError,
    ODataError
)

__all__ = [
    "Settings",
    "settings",
    "RfcBridgeException",
    "ConfigError",
    "RfcError",
    "RfcConnectionError",
    "RfcTimeoutError",
    "RemoteError",
    "UnknownFunctionError",
    "CircuitOpenError",
    "PoolError",
    "PoolDrainedError",
    "PoolAcquireTimeout",
    "TableReadError",
    "FunctionCallError",
    "ExtractionError",
    "CheckpointError",
    "ODataError"
]

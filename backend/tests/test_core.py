import structlog

from rfcbridge.core.config import Settings
from rfcbridge.core.exceptions import (
    CircuitOpenError,
    ConfigError,
    ODataError,
    PoolAcquireTimeout,
    PoolDrainedError,
    PoolError,
    RemoteError,
    RfcError,
    TableReadError,
    UnknownFunctionError,
)
from rfcbridge.core.logging import _redact_secrets, setup_logging
from rfcbridge.rfc.connection import ConnectionType


def test_exception_string_carries_code():
    error = ConfigError("Missing ashost")
    assert str(error) == "[CONFIG_ERROR] Missing ashost"
    assert error.to_dict() == {"message": "Missing ashost", "error_code": "CONFIG_ERROR", "details": {}}


def test_exception_hierarchy():
    assert issubclass(UnknownFunctionError, RemoteError)
    assert issubclass(PoolDrainedError, PoolError)
    assert issubclass(PoolAcquireTimeout, PoolError)
    assert issubclass(CircuitOpenError, RfcError)
    assert PoolDrainedError("x").error_code == "POOL_DRAINED"
    assert PoolAcquireTimeout("x").error_code == "POOL_ACQUIRE_TIMEOUT"


def test_table_read_error_annotates_cause():
    cause = RemoteError("TABLE_NOT_AVAILABLE")
    error = TableReadError("Failed to read table ZX", table="ZX", details={"offset": 20}, cause=cause)
    assert error.error_code == "ERR_TABLE_READ"
    assert error.details["table"] == "ZX"
    assert error.details["cause_code"] == "RFC_REMOTE"
    assert error.offset == 20


def test_odata_error_status_code():
    error = ODataError("Not found", status_code=404)
    assert error.status_code == 404
    assert error.details["status_code"] == 404


def test_settings_defaults(monkeypatch):
    """Defaults apply when no environment overrides are present."""
    for name in ("SAP_RFC_ASHOST", "SAP_RFC_MSHOST", "RFC_RETRIES", "EXTRACTION_MODE"):
        monkeypatch.delenv(name, raising=False)
    config = Settings(_env_file=None)
    assert config.EXTRACTION_MODE == "mock"
    assert config.RFC_RETRIES == 2
    assert config.RFC_CIRCUIT_BREAKER_THRESHOLD == 5
    assert config.TABLE_READ_FUNCTIONS[0] == "/SAPDS/RFC_READ_TABLE"
    assert config.has_rfc_connection is False
    assert config.rfc_connection_params() is None
    assert "ENVIRONMENT" not in Settings.model_fields


def test_settings_build_connection_params(monkeypatch):
    monkeypatch.setenv("SAP_RFC_ASHOST", "sap.example.com")
    monkeypatch.setenv("SAP_RFC_SYSNR", "1")
    monkeypatch.setenv("SAP_RFC_CLIENT", "10")
    config = Settings(_env_file=None)
    params = config.rfc_connection_params()
    assert params.sysnr == "01"
    assert params.client == "010"
    assert params.connection_type == ConnectionType.DIRECT


def test_redact_secrets():
    event = _redact_secrets(None, "info", {"event": "logon", "passwd": "pw", "user": "U"})
    assert event["passwd"] == "***"
    assert event["user"] == "U"


def test_setup_logging_configures_structlog():
    setup_logging("DEBUG")
    try:
        assert structlog.is_configured()
    finally:
        structlog.reset_defaults()

import pytest

from rfcbridge.core.exceptions import ConfigError
from rfcbridge.rfc.connection import ConnectionParams, ConnectionType


def test_direct_connection_is_padded():
    """System number and client are zero-padded."""
    params = ConnectionParams(ashost="sap.example.com", sysnr="0", client="1")
    assert params.sysnr == "00"
    assert params.client == "001"
    assert params.connection_type == ConnectionType.DIRECT
    assert params.host == "sap.example.com"


def test_numeric_values_are_coerced():
    params = ConnectionParams(ashost="sap.example.com", sysnr=0, client=100)
    assert params.sysnr == "00"
    assert params.client == "100"


def test_load_balanced_connection_drops_app_server_fields():
    """Message-server parameters win over application-server ones."""
    params = ConnectionParams(
        mshost="ms.example.com", msserv="3600", group="PUBLIC", r3name="PRD",
        ashost="app.example.com", sysnr="01", client="100"
    )
    assert params.connection_type == ConnectionType.LOAD_BALANCED
    assert params.ashost is None
    assert params.sysnr is None
    assert params.host == "ms.example.com"


def test_router_connection():
    params = ConnectionParams(ashost="10.0.0.1", sysnr="00", saprouter="/H/router.example.com/S/3299")
    assert params.connection_type == ConnectionType.ROUTER


def test_missing_host_raises_config_error():
    with pytest.raises(ConfigError) as exc_info:
        ConnectionParams(sysnr="00", client="100")
    assert exc_info.value.error_code == "CONFIG_ERROR"


def test_snc_fields_pass_through():
    params = ConnectionParams(
        ashost="sap.example.com", sysnr="00",
        snc_qop="9", snc_partnername="p:CN=SAP", snc_lib="/usr/lib/libsapcrypto.so"
    )
    native = params.to_native()
    assert params.has_snc is True
    assert native["snc_qop"] == "9"
    assert native["snc_partnername"] == "p:CN=SAP"


def test_to_native_drops_unset_fields():
    params = ConnectionParams(ashost="sap.example.com", sysnr="00", client="100", user="U", passwd="pw")
    assert params.to_native() == {
        "ashost": "sap.example.com", "sysnr": "00", "client": "100", "user": "U", "passwd": "pw"
    }


def test_password_is_not_exposed():
    """Password never appears in repr or log fields."""
    params = ConnectionParams(ashost="sap.example.com", sysnr="00", passwd="topsecret")
    assert "topsecret" not in repr(params)
    assert "topsecret" not in str(params.log_fields())


def test_from_dict_ignores_unknown_keys():
    params = ConnectionParams.from_dict({"ashost": "sap.example.com", "sysnr": "2", "pool_size": 4})
    assert params.sysnr == "02"

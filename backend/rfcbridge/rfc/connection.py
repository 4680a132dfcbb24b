"""
RFC connection parameters - direct, load-balanced and SAP Router variants
"""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from rfcbridge.core.exceptions import ConfigError


class ConnectionType(str, Enum):
    """Shape of the connection parameters"""
    DIRECT = "direct"
    LOAD_BALANCED = "load-balanced"
    ROUTER = "router"


_SNC_FIELDS = ("snc_qop", "snc_myname", "snc_partnername", "snc_lib")


class ConnectionParams(BaseModel):
    """
    Normalized RFC logon parameters.

    Direct:        ashost + sysnr
    Load-balanced: mshost + (msserv) + group + r3name
    SAP Router:    ashost + sysnr + saprouter
    """
    # Direct / router
    ashost: Optional[str] = None
    sysnr: Optional[str] = None
    saprouter: Optional[str] = None

    # Load-balanced (message server)
    mshost: Optional[str] = None
    msserv: Optional[str] = None
    group: Optional[str] = None
    r3name: Optional[str] = None

    # Logon
    client: Optional[str] = None
    user: Optional[str] = None
    passwd: Optional[str] = Field(default=None, repr=False)
    lang: Optional[str] = None

    # SNC
    snc_qop: Optional[str] = None
    snc_myname: Optional[str] = None
    snc_partnername: Optional[str] = None
    snc_lib: Optional[str] = None

    @field_validator("sysnr", "client", mode="before")
    @classmethod
    def _coerce_str(cls, value: Any) -> Any:
        if value is None or value == "":
            return None
        return str(value).strip()

    @model_validator(mode="after")
    def _normalize(self) -> "ConnectionParams":
        if not self.mshost and not self.ashost:
            raise ConfigError(
                "RFC connection requires either ashost (direct) or mshost (load-balanced)",
                details={"fields": ["ashost", "mshost"]}
            )

        if self.mshost:
            # Load-balanced wins: application-server fields are not used
            self.ashost = None
            self.sysnr = None
        elif self.sysnr is not None:
            self.sysnr = self.sysnr.zfill(2)

        if self.client is not None:
            self.client = self.client.zfill(3)

        return self

    @classmethod
    def from_dict(cls, params: Dict[str, Any]) -> "ConnectionParams":
        """Build from a plain mapping, ignoring unknown keys"""
        known = {k: v for k, v in params.items() if k in cls.model_fields}
        return cls(**known)

    @property
    def connection_type(self) -> ConnectionType:
        if self.mshost:
            return ConnectionType.LOAD_BALANCED
        if self.saprouter:
            return ConnectionType.ROUTER
        return ConnectionType.DIRECT

    @property
    def host(self) -> Optional[str]:
        """Host used in logs and error details"""
        return self.mshost or self.ashost

    @property
    def has_snc(self) -> bool:
        return any(getattr(self, name) for name in _SNC_FIELDS)

    def to_native(self) -> Dict[str, str]:
        """Flat parameter dict for the native RFC library (unset fields dropped)"""
        return {
            key: value
            for key, value in self.model_dump().items()
            if value is not None
        }

    def log_fields(self) -> Dict[str, Any]:
        """Non-secret fields suitable for structured log events"""
        return {
            "host": self.host,
            "connection_type": self.connection_type.value,
            "client": self.client,
            "user": self.user,
            "snc": self.has_snc,
        }

"""
Application configuration
"""

from typing import List, Optional, TYPE_CHECKING
from pydantic_settings import BaseSettings
from pathlib import Path

if TYPE_CHECKING:
    from rfcbridge.rfc.connection import ConnectionParams


class Settings(BaseSettings):
    """Application settings"""

    # Logging Settings
    LOG_LEVEL: str = "INFO"

    # Extraction Settings
    EXTRACTION_MODE: str = "mock"  # live or mock
    EXTRACTION_CONCURRENCY: int = 5

    # SAP RFC Connection (direct)
    SAP_RFC_ASHOST: Optional[str] = None
    SAP_RFC_SYSNR: Optional[str] = None
    SAP_RFC_SAPROUTER: Optional[str] = None

    # SAP RFC Connection (load-balanced)
    SAP_RFC_MSHOST: Optional[str] = None
    SAP_RFC_MSSERV: Optional[str] = None
    SAP_RFC_GROUP: Optional[str] = None
    SAP_RFC_R3NAME: Optional[str] = None

    # SAP RFC Logon
    SAP_RFC_CLIENT: Optional[str] = None
    SAP_RFC_USER: Optional[str] = None
    SAP_RFC_PASSWD: Optional[str] = None
    SAP_RFC_LANG: str = "EN"

    # SNC (Secure Network Communications)
    SAP_RFC_SNC_QOP: Optional[str] = None
    SAP_RFC_SNC_MYNAME: Optional[str] = None
    SAP_RFC_SNC_PARTNERNAME: Optional[str] = None
    SAP_RFC_SNC_LIB: Optional[str] = None

    # RFC Client Settings
    RFC_CALL_TIMEOUT: float = 30.0  # seconds
    RFC_RETRIES: int = 2
    RFC_CIRCUIT_BREAKER_THRESHOLD: int = 5
    RFC_CIRCUIT_BREAKER_RESET_SECONDS: float = 30.0

    # RFC Pool Settings
    RFC_POOL_SIZE: int = 5
    RFC_POOL_ACQUIRE_TIMEOUT: float = 10.0  # seconds

    # Table Reader Settings
    TABLE_READ_CHUNK_SIZE: int = 10000
    TABLE_READ_FUNCTIONS: List[str] = [
        "/SAPDS/RFC_READ_TABLE",
        "BBP_RFC_READ_TABLE",
        "RFC_READ_TABLE",
    ]
    TABLE_READ_PREFERRED_FUNCTION: Optional[str] = None

    # Checkpoint Settings
    CHECKPOINT_BACKEND: str = "file"  # file, redis or memory
    CHECKPOINT_DIR: str = "./data/checkpoints"
    CHECKPOINT_REDIS_URL: str = ""

    # OData Settings (secondary transport)
    SAP_ODATA_BASE_URL: Optional[str] = None
    SAP_ODATA_USERNAME: Optional[str] = None
    SAP_ODATA_PASSWORD: Optional[str] = None
    SAP_ODATA_TIMEOUT: float = 30.0
    SAP_ODATA_RETRIES: int = 3

    class Config:
        env_file = ".env"
        case_sensitive = True

    @property
    def has_rfc_connection(self) -> bool:
        """True when enough RFC settings are present to open a connection"""
        return bool(self.SAP_RFC_ASHOST or self.SAP_RFC_MSHOST)

    def rfc_connection_params(self) -> Optional["ConnectionParams"]:
        """
        Build RFC connection parameters from the environment

        Returns:
            ConnectionParams, or None when no RFC host is configured
        """
        if not self.has_rfc_connection:
            return None

        from rfcbridge.rfc.connection import ConnectionParams

        return ConnectionParams(
            ashost=self.SAP_RFC_ASHOST,
            sysnr=self.SAP_RFC_SYSNR,
            saprouter=self.SAP_RFC_SAPROUTER,
            mshost=self.SAP_RFC_MSHOST,
            msserv=self.SAP_RFC_MSSERV,
            group=self.SAP_RFC_GROUP,
            r3name=self.SAP_RFC_R3NAME,
            client=self.SAP_RFC_CLIENT,
            user=self.SAP_RFC_USER,
            passwd=self.SAP_RFC_PASSWD,
            lang=self.SAP_RFC_LANG,
            snc_qop=self.SAP_RFC_SNC_QOP,
            snc_myname=self.SAP_RFC_SNC_MYNAME,
            snc_partnername=self.SAP_RFC_SNC_PARTNERNAME,
            snc_lib=self.SAP_RFC_SNC_LIB,
        )


# Create global settings instance
settings = Settings()


# Helper function to get absolute path
def get_absolute_path(relative_path: str) -> Path:
    """Convert relative path to absolute path"""
    path = Path(relative_path)
    if path.is_absolute():
        return path
    return Path.cwd() / path

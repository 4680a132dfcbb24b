"""
Extraction Context - per-run state shared by every extractor
"""

from typing import Any, Dict, Optional
import structlog

from rfcbridge.core.config import Settings, settings as default_settings
from rfcbridge.core.exceptions import ConfigError
from rfcbridge.extraction.checkpoint import CheckpointStore, MemoryCheckpointStore, create_checkpoint_store
from rfcbridge.extraction.coverage import CoverageTracker
from rfcbridge.odata.client import ODataClient
from rfcbridge.rfc.pool import RfcPool

logger = structlog.get_logger(__name__)

MODES = ("live", "mock")
DEFAULT_SYSTEM_INFO = {"type": "ECC", "release": "600", "client": "100"}


class ExtractionContext:
    """
    Everything an extractor may touch during a run.

    Extractors hold a reference to the context, never to pool-owned clients.
    Each context gets its own coverage tracker; the checkpoint store is
    in-memory unless one is supplied.
    """

    def __init__(
        self,
        mode: str = "mock",
        rfc_pool: Optional[RfcPool] = None,
        odata_client: Optional[ODataClient] = None,
        checkpoint: Optional[CheckpointStore] = None,
        system_info: Optional[Dict[str, Any]] = None,
        data_dictionary: Optional[Dict[str, Any]] = None,
    ):
        if mode not in MODES:
            raise ConfigError(f"Unknown extraction mode: {mode}", details={"mode": mode, "allowed": list(MODES)})

        self.mode = mode
        self._rfc_pool = rfc_pool
        self._odata_client = odata_client
        self._coverage = CoverageTracker()
        self._checkpoint = checkpoint or MemoryCheckpointStore()
        self._system = {**DEFAULT_SYSTEM_INFO, **(system_info or {})}
        self.data_dictionary = data_dictionary

    @classmethod
    def from_settings(cls, config: Optional[Settings] = None, **overrides: Any) -> "ExtractionContext":
        """
        Build a context from settings

        Live mode gets a pool when SAP_RFC_* is configured and an OData client
        when SAP_ODATA_BASE_URL is set. Keyword overrides win over settings.
        """
        config = config or default_settings
        mode = overrides.pop("mode", config.EXTRACTION_MODE)

        if mode == "live" and "rfc_pool" not in overrides:
            params = config.rfc_connection_params()
            if params is not None:
                overrides["rfc_pool"] = RfcPool(
                    params,
                    pool_size=config.RFC_POOL_SIZE,
                    acquire_timeout=config.RFC_POOL_ACQUIRE_TIMEOUT,
                    call_timeout=config.RFC_CALL_TIMEOUT,
                    retries=config.RFC_RETRIES,
                )
            else:
                logger.warning("Live mode without RFC connection settings; table reads will be skipped")

        if mode == "live" and "odata_client" not in overrides and config.SAP_ODATA_BASE_URL:
            overrides["odata_client"] = ODataClient(
                config.SAP_ODATA_BASE_URL,
                username=config.SAP_ODATA_USERNAME,
                password=config.SAP_ODATA_PASSWORD,
                timeout=config.SAP_ODATA_TIMEOUT,
                retries=config.SAP_ODATA_RETRIES,
            )

        if "checkpoint" not in overrides:
            overrides["checkpoint"] = create_checkpoint_store(
                config.CHECKPOINT_BACKEND,
                storage_dir=config.CHECKPOINT_DIR,
                redis_url=config.CHECKPOINT_REDIS_URL,
            )

        return cls(mode=mode, **overrides)

    @property
    def is_live(self) -> bool:
        return self.mode == "live"

    @property
    def rfc(self) -> Optional[RfcPool]:
        return self._rfc_pool

    @property
    def odata(self) -> Optional[ODataClient]:
        return self._odata_client

    @property
    def coverage(self) -> CoverageTracker:
        return self._coverage

    @property
    def checkpoint(self) -> CheckpointStore:
        return self._checkpoint

    @property
    def system(self) -> Dict[str, Any]:
        return self._system

    @system.setter
    def system(self, value: Dict[str, Any]):
        self._system = dict(value)

    async def close(self):
        """Drain the pool and close the secondary transports"""
        if self._rfc_pool is not None and not self._rfc_pool.drained:
            await self._rfc_pool.drain()
        if self._odata_client is not None:
            await self._odata_client.close()
        await self._checkpoint.close()
        logger.info("Extraction context closed", mode=self.mode)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

"""
Checkpoint Store - durable key/value records for resuming extractions
"""

import asyncio
import json
import os
import re
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional
import structlog

from rfcbridge.core.config import get_absolute_path, settings
from rfcbridge.core.exceptions import CheckpointError, ConfigError

logger = structlog.get_logger(__name__)

COMPLETE_KEY = "_complete"


class CheckpointStore(ABC):
    """
    Key-addressed durable map scoped by extractor id.

    save() returns only once the value is persisted; load() returns the most
    recent save() for the key.
    """

    @abstractmethod
    async def save(self, extractor_id: str, key: str, value: Any) -> None:
        pass

    @abstractmethod
    async def load(self, extractor_id: str, key: str) -> Optional[Any]:
        pass

    @abstractmethod
    async def clear(self, extractor_id: str) -> None:
        pass

    @abstractmethod
    async def keys(self, extractor_id: str) -> List[str]:
        pass

    @abstractmethod
    async def extractor_ids(self) -> List[str]:
        pass

    async def get_progress(self) -> Dict[str, Dict[str, Any]]:
        """
        Checkpoint keys per extractor and whether it finished

        Returns:
            {extractor_id: {"keys": [...], "complete": bool}}
        """
        progress = {}
        for extractor_id in await self.extractor_ids():
            keys = await self.keys(extractor_id)
            progress[extractor_id] = {"keys": keys, "complete": COMPLETE_KEY in keys}
        return progress

    async def is_complete(self, extractor_id: str) -> bool:
        return await self.load(extractor_id, COMPLETE_KEY) is not None

    async def close(self) -> None:
        pass


def _serialize(extractor_id: str, key: str, value: Any) -> str:
    try:
        return json.dumps(value, default=str)
    except (TypeError, ValueError) as e:
        raise CheckpointError(
            f"Checkpoint value for {extractor_id}/{key} is not serializable",
            details={"extractor_id": extractor_id, "key": key, "error": str(e)}
        ) from e


class MemoryCheckpointStore(CheckpointStore):
    """In-process store; values are round-tripped through JSON like the durable stores"""

    def __init__(self):
        self._data: Dict[str, Dict[str, str]] = {}

    async def save(self, extractor_id: str, key: str, value: Any) -> None:
        self._data.setdefault(extractor_id, {})[key] = _serialize(extractor_id, key, value)

    async def load(self, extractor_id: str, key: str) -> Optional[Any]:
        raw = self._data.get(extractor_id, {}).get(key)
        return json.loads(raw) if raw is not None else None

    async def clear(self, extractor_id: str) -> None:
        self._data.pop(extractor_id, None)

    async def keys(self, extractor_id: str) -> List[str]:
        return sorted(self._data.get(extractor_id, {}))

    async def extractor_ids(self) -> List[str]:
        return sorted(eid for eid, entries in self._data.items() if entries)


class FileCheckpointStore(CheckpointStore):
    """
    One JSON document per extractor under storage_dir.

    Each save rewrites the document to a temp file in the same directory,
    fsyncs it and renames it over the old one, so a crash leaves either the
    previous or the new document.
    """

    def __init__(self, storage_dir: Optional[str] = None):
        self.storage_dir = get_absolute_path(storage_dir or settings.CHECKPOINT_DIR)
        self._locks: Dict[str, asyncio.Lock] = {}

    def _path(self, extractor_id: str) -> Path:
        safe = re.sub(r"[^A-Za-z0-9_.-]", "_", extractor_id)
        return self.storage_dir / f"{safe}.json"

    def _lock(self, extractor_id: str) -> asyncio.Lock:
        if extractor_id not in self._locks:
            self._locks[extractor_id] = asyncio.Lock()
        return self._locks[extractor_id]

    def _read_document(self, extractor_id: str) -> Dict[str, Any]:
        path = self._path(extractor_id)
        if not path.exists():
            return {}
        try:
            with open(path, "r", encoding="utf-8") as f:
                document = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise CheckpointError(
                f"Failed to read checkpoints for {extractor_id}",
                details={"path": str(path), "error": str(e)}
            ) from e
        return document.get("checkpoints", {})

    def _write_document(self, extractor_id: str, checkpoints: Dict[str, Any]):
        path = self._path(extractor_id)
        self.storage_dir.mkdir(parents=True, exist_ok=True)
        document = {"extractor_id": extractor_id, "checkpoints": checkpoints}

        fd, tmp_path = tempfile.mkstemp(dir=self.storage_dir, prefix=f".{path.stem}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(json.dumps(document, default=str, indent=2))
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, path)
        except OSError as e:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise CheckpointError(
                f"Failed to persist checkpoints for {extractor_id}",
                details={"path": str(path), "error": str(e)}
            ) from e

    async def save(self, extractor_id: str, key: str, value: Any) -> None:
        payload = json.loads(_serialize(extractor_id, key, value))
        async with self._lock(extractor_id):
            checkpoints = await asyncio.to_thread(self._read_document, extractor_id)
            checkpoints[key] = payload
            await asyncio.to_thread(self._write_document, extractor_id, checkpoints)
        logger.debug("Checkpoint saved", extractor_id=extractor_id, key=key)

    async def load(self, extractor_id: str, key: str) -> Optional[Any]:
        async with self._lock(extractor_id):
            checkpoints = await asyncio.to_thread(self._read_document, extractor_id)
        return checkpoints.get(key)

    async def clear(self, extractor_id: str) -> None:
        async with self._lock(extractor_id):
            path = self._path(extractor_id)
            try:
                await asyncio.to_thread(path.unlink)
            except FileNotFoundError:
                pass
        logger.info("Checkpoints cleared", extractor_id=extractor_id)

    async def keys(self, extractor_id: str) -> List[str]:
        async with self._lock(extractor_id):
            checkpoints = await asyncio.to_thread(self._read_document, extractor_id)
        return sorted(checkpoints)

    async def extractor_ids(self) -> List[str]:
        return await asyncio.to_thread(self._scan_ids)

    def _scan_ids(self) -> List[str]:
        if not self.storage_dir.exists():
            return []
        ids = []
        for path in sorted(self.storage_dir.glob("*.json")):
            try:
                with open(path, "r", encoding="utf-8") as f:
                    ids.append(json.load(f).get("extractor_id", path.stem))
            except (OSError, json.JSONDecodeError) as e:
                logger.warning("Skipping unreadable checkpoint file", path=str(path), error=str(e))
        return ids


class RedisCheckpointStore(CheckpointStore):
    """One Redis hash per extractor; each save is a MULTI/EXEC transaction"""

    def __init__(self, redis_url: Optional[str] = None, prefix: str = "rfcbridge:checkpoint", client: Any = None):
        if client is None:
            import redis.asyncio as redis

            url = redis_url or settings.CHECKPOINT_REDIS_URL
            if not url:
                raise ConfigError("Redis checkpoint store requires CHECKPOINT_REDIS_URL")
            client = redis.from_url(url, decode_responses=True)
        self.redis = client
        self.prefix = prefix

    def _key(self, extractor_id: str) -> str:
        return f"{self.prefix}:{extractor_id}"

    async def save(self, extractor_id: str, key: str, value: Any) -> None:
        payload = _serialize(extractor_id, key, value)
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.hset(self._key(extractor_id), key, payload)
            await pipe.execute()

    async def load(self, extractor_id: str, key: str) -> Optional[Any]:
        raw = await self.redis.hget(self._key(extractor_id), key)
        return json.loads(raw) if raw is not None else None

    async def clear(self, extractor_id: str) -> None:
        await self.redis.delete(self._key(extractor_id))

    async def keys(self, extractor_id: str) -> List[str]:
        return sorted(await self.redis.hkeys(self._key(extractor_id)))

    async def extractor_ids(self) -> List[str]:
        ids = []
        async for key in self.redis.scan_iter(match=f"{self.prefix}:*"):
            ids.append(key[len(self.prefix) + 1:])
        return sorted(ids)

    async def close(self) -> None:
        await self.redis.aclose()


def create_checkpoint_store(backend: Optional[str] = None, **kwargs: Any) -> CheckpointStore:
    """
    Build the configured checkpoint store

    Args:
        backend: 'file', 'redis' or 'memory' (defaults to CHECKPOINT_BACKEND)
    """
    backend = (backend or settings.CHECKPOINT_BACKEND).lower()
    if backend == "file":
        return FileCheckpointStore(kwargs.get("storage_dir"))
    if backend == "redis":
        return RedisCheckpointStore(kwargs.get("redis_url"))
    if backend == "memory":
        return MemoryCheckpointStore()
    raise ConfigError(f"Unknown checkpoint backend: {backend}", details={"backend": backend})

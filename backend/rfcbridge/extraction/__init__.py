"""
Extraction Framework

Run context, coverage ledger, checkpoint stores, the extractor base class,
the registry and the runner. Reference extractors live in
rfcbridge.extraction.extractors and register themselves on import.
"""

from .coverage import CoverageTracker, CoverageStatus, CoverageEntry, ExpectedTable
from .checkpoint import (
    CheckpointStore,
    FileCheckpointStore,
    RedisCheckpointStore,
    MemoryCheckpointStore,
    create_checkpoint_store,
    COMPLETE_KEY
)
from .context import ExtractionContext
from .base_extractor import BaseExtractor, ExtractorCategory, NO_RFC_REASON
from .registry import ExtractorRegistry, registry
from .runner import ExtractionRunner, RunResult, SYSTEM_INFO_ID

__all__ = [
    "CoverageTracker",
    "CoverageStatus",
    "CoverageEntry",
    "ExpectedTable",
    "CheckpointStore",
    "FileCheckpointStore",
    "RedisCheckpointStore",
    "MemoryCheckpointStore",
    "create_checkpoint_store",
    "COMPLETE_KEY",
    "ExtractionContext",
    "BaseExtractor",
    "ExtractorCategory",
    "NO_RFC_REASON",
    "ExtractorRegistry",
    "registry",
    "ExtractionRunner",
    "RunResult",
    "SYSTEM_INFO_ID"
]

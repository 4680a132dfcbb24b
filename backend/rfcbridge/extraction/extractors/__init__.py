"""
Reference extractors

Importing this package registers them with the default registry.
"""

from .system_info import SystemInfoExtractor
from .fi_config import FIConfigExtractor

__all__ = ["SystemInfoExtractor", "FIConfigExtractor"]

"""
OData Package

Secondary HTTP transport used by extractors that read OData entity sets.
"""

from .client import ODataClient

__all__ = ["ODataClient"]

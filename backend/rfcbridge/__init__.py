"""
rfcbridge - SAP RFC extraction toolkit

Pooled, resilient RFC transport, the universal table reader and the
checkpointed extraction framework built on top of them.
"""

__version__ = "1.0.0"

"""
Update collectors, one per feed source.
"""

from .base import CollectorError, UpdateCollector

__all__ = ["CollectorError", "UpdateCollector"]

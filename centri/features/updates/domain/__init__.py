"""
Domain subpackage for the updates feature.
"""

from .models import RefreshResult, SourceCheck, UpdateCandidate, UpdateItem

__all__ = ["RefreshResult", "SourceCheck", "UpdateCandidate", "UpdateItem"]

"""
Domain subpackage for the integrations feature.
"""

from .models import (
    ClassificationResult,
    Credential,
    EventContext,
    NormalizedEmail,
    NormalizedMeeting,
    NormalizedTask,
    NormalizedTeamMember,
    ProviderSyncResult,
    SyncResult,
    SyncSummary,
)

__all__ = [
    "ClassificationResult",
    "Credential",
    "EventContext",
    "NormalizedEmail",
    "NormalizedMeeting",
    "NormalizedTask",
    "NormalizedTeamMember",
    "ProviderSyncResult",
    "SyncResult",
    "SyncSummary",
]

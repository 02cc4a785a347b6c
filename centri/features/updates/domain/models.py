"""
Domain models for the updates feed.

UpdateCandidate is what collectors produce; UpdateItem is the persisted
row. Both are keyed by (source, external_id) within a tenant.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any

# Severity levels, most to least pressing
URGENT = "urgent"
IMPORTANT = "important"
INFO = "info"
SEVERITY_RANK = {URGENT: 0, IMPORTANT: 1, INFO: 2}

# Source health reported with every refresh
NOT_CONNECTED = "not_connected"
CHECKED_EMPTY = "checked_empty"
CHECKED_OK = "checked_ok"
ERROR = "error"

SOURCE_INTERNAL = "internal"
TYPE_NEWSLETTER = "newsletter"
TYPE_SYSTEM_ALERT = "system_alert"


@dataclass(slots=True)
class UpdateCandidate:
    """Something that happened, before it is merged into the feed."""

    source: str
    type: str
    severity: str
    title: str
    external_id: str
    occurred_at: datetime
    body: str | None = None
    url: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def key(self) -> tuple[str, str]:
        return (self.source, self.external_id)


@dataclass(slots=True)
class UpdateItem:
    """Represents an update_items row."""

    id: str
    user_id: str
    source: str
    type: str
    severity: str
    title: str
    external_id: str
    occurred_at: datetime
    body: str | None = None
    url: str | None = None
    is_read: bool = False
    is_dismissed: bool = False
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def key(self) -> tuple[str, str]:
        return (self.source, self.external_id)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class SourceCheck:
    source: str
    status: str
    count: int = 0
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class IngestResult:
    """Outcome of merging a batch of candidates into the feed."""

    upserted: int = 0
    inserted: int = 0
    notified: int = 0


@dataclass(slots=True)
class RefreshResult:
    items: list[UpdateItem]
    source_checks: list[SourceCheck]
    last_refreshed_at: datetime
    new_high_severity: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "items": [item.to_dict() for item in self.items],
            "source_checks": [check.to_dict() for check in self.source_checks],
            "last_refreshed_at": self.last_refreshed_at.isoformat(),
            "new_high_severity": self.new_high_severity,
        }


@dataclass(slots=True)
class DueTask:
    id: str
    title: str
    due_date: datetime
    status: str | None = None
    url: str | None = None


@dataclass(slots=True)
class DueStakeholder:
    id: str
    name: str
    next_reach_out_at: datetime
    email: str | None = None


@dataclass(slots=True)
class MeetingActionItems:
    """A meeting and the action items its analysis produced."""

    meeting_id: str
    meeting_title: str
    action_items: list[dict[str, Any]] = field(default_factory=list)


@dataclass(slots=True)
class ItemUpsert:
    """What one update_items upsert did: created the row, or replaced `previous_severity`."""

    id: str
    inserted: bool
    previous_severity: str | None = None

    def raised_into(self, severities: list[str], severity: str) -> bool:
        """True when this write is the one that first put the item at one of `severities`."""
        if severity not in severities:
            return False
        if self.inserted:
            return True
        return self.previous_severity not in severities

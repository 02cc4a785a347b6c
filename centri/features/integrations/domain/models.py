"""
Domain models for the integrations feature.

Normalized records produced by provider adapters, the value objects passed
between adapters, the classifier and the sync orchestrator, and the rows
the repositories hand back.
"""

from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

# Classification verdicts
MEETING = "meeting"
TASK = "task"

# Meeting processing status
PROCESSING = "processing"
PROCESSED = "processed"
FAILED = "failed"

# Sync run / per-provider result status
SYNC_RUNNING = "running"
SYNC_SUCCESS = "success"
SYNC_FAILED = "failed"
SYNC_PARTIAL = "partial_success"
SYNC_SKIPPED = "skipped"


def parse_datetime(value: Any) -> datetime | None:
    """
    Parse the datetime shapes providers send.

    Accepts ISO strings (with "Z"), date-only strings, epoch seconds and
    Google-style {"dateTime"| "date"} objects. Naive values are taken as UTC.
    Returns None for anything unparseable.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    if isinstance(value, dict):
        return parse_datetime(value.get("dateTime") or value.get("date"))
    if isinstance(value, int | float):
        # Millisecond epochs (ClickUp, Jira) are far beyond any seconds value
        seconds = value / 1000 if value > 10**11 else value
        try:
            return datetime.fromtimestamp(seconds, tz=UTC)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        text = value.strip()
        if text.isdigit():
            return parse_datetime(int(text))
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
    return None


@dataclass(slots=True)
class Credential:
    """Bearer credential for one provider, as stored (encrypted) on an Integration."""

    access_token: str
    refresh_token: str | None = None
    expires_at: datetime | None = None
    scope: str | None = None
    token_type: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_token_response(cls, data: dict[str, Any], now: datetime | None = None) -> "Credential":
        """Build from an OAuth token endpoint response."""
        now = now or datetime.now(UTC)
        access_token = data.get("access_token")
        if not access_token:
            raise ValueError("Token response has no access_token")

        expires_at = None
        expires_in = data.get("expires_in")
        if expires_in:
            expires_at = now + timedelta(seconds=int(expires_in))

        known = {"access_token", "refresh_token", "expires_in", "scope", "token_type"}
        return cls(
            access_token=access_token,
            refresh_token=data.get("refresh_token"),
            expires_at=expires_at,
            scope=data.get("scope"),
            token_type=data.get("token_type"),
            extra={k: v for k, v in data.items() if k not in known},
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Credential":
        """Build from the decrypted blob; tolerates blobs saved by older token flows."""
        access_token = data.get("access_token")
        if not access_token:
            raise ValueError("Stored credential has no access_token")
        expires_at = parse_datetime(data.get("expires_at"))
        return cls(
            access_token=access_token,
            refresh_token=data.get("refresh_token"),
            expires_at=expires_at,
            scope=data.get("scope"),
            token_type=data.get("token_type"),
            extra=dict(data.get("extra") or {}),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "scope": self.scope,
            "token_type": self.token_type,
            "extra": self.extra,
        }

    def expires_within(self, seconds: int, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        now = now or datetime.now(UTC)
        return self.expires_at <= now + timedelta(seconds=seconds)

    def merged_with(self, refreshed: "Credential") -> "Credential":
        """Overlay a refreshed credential, keeping the old refresh token if none was issued."""
        return Credential(
            access_token=refreshed.access_token,
            refresh_token=refreshed.refresh_token or self.refresh_token,
            expires_at=refreshed.expires_at,
            scope=refreshed.scope or self.scope,
            token_type=refreshed.token_type or self.token_type,
            extra={**self.extra, **refreshed.extra},
        )


@dataclass(slots=True)
class EventContext:
    """Signals the classifier looks at for one calendar-shaped record."""

    title: str
    description: str | None = None
    attendee_count: int = 0
    has_conference_link: bool = False
    is_self_organized: bool = True
    duration_minutes: int = 0


@dataclass(slots=True)
class ClassificationResult:
    type: str
    confidence: float
    reason: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class NormalizedMeeting:
    """A calendar or video event mapped out of a provider payload."""

    calendar_event_id: str
    title: str
    source: str
    start_time: datetime | None = None
    end_time: datetime | None = None
    description: str | None = None
    attendees: list[dict[str, Any]] = field(default_factory=list)
    is_self_organized: bool = True
    has_conference_link: bool = False
    meeting_url: str | None = None
    # Provider revision marker (Google "updated"), changes whenever the event is edited
    version: str | None = None
    transcript: str | None = None
    summary: str | None = None
    decisions: list[str] | None = None
    action_items: list[dict[str, Any]] | None = None

    def duration_minutes(self) -> int:
        if not self.start_time or not self.end_time:
            return 0
        return max(0, int((self.end_time - self.start_time).total_seconds() / 60))

    def context(self) -> EventContext:
        return EventContext(
            title=self.title,
            description=self.description,
            attendee_count=len(self.attendees),
            has_conference_link=self.has_conference_link,
            is_self_organized=self.is_self_organized,
            duration_minutes=self.duration_minutes(),
        )


@dataclass(slots=True)
class NormalizedTask:
    external_id: str
    title: str
    source: str
    status: str | None = None
    assignee: str | None = None
    due_date: datetime | None = None
    priority: str | None = None
    is_blocked: bool = False
    url: str | None = None


@dataclass(slots=True)
class NormalizedTeamMember:
    external_id: str
    name: str
    source: str
    email: str | None = None
    avatar_url: str | None = None
    role: str | None = None


@dataclass(slots=True)
class NormalizedEmail:
    """One mail message with the header signals the feed rules need."""

    message_id: str
    subject: str
    sender: str
    received_at: datetime
    snippet: str = ""
    thread_id: str | None = None
    labels: list[str] = field(default_factory=list)
    has_list_unsubscribe: bool = False

    @property
    def is_unread(self) -> bool:
        return "UNREAD" in self.labels


@dataclass(slots=True)
class SyncResult:
    """Normalized output of one adapter invocation."""

    meetings: list[NormalizedMeeting] = field(default_factory=list)
    tasks: list[NormalizedTask] = field(default_factory=list)
    team_members: list[NormalizedTeamMember] = field(default_factory=list)
    emails: list[NormalizedEmail] = field(default_factory=list)
    custom_data: dict[str, Any] = field(default_factory=dict)
    # Soft failures (rate limits, transient errors) that left the result partial
    errors: list[str] = field(default_factory=list)

    def add_error(self, section: str, error: Exception | str) -> None:
        self.errors.append(f"{section}: {error}")

    def counts(self) -> dict[str, int]:
        return {
            "meetings": len(self.meetings),
            "tasks": len(self.tasks),
            "team_members": len(self.team_members),
            "emails": len(self.emails),
        }


@dataclass(slots=True)
class UpsertOutcome:
    id: str | None
    inserted: bool


@dataclass(slots=True)
class IntegrationRecord:
    """Represents an integrations row."""

    id: str
    user_id: str
    provider: str
    credential_encrypted: bytes
    expires_at: datetime | None = None
    needs_reconnect: bool = False
    last_error: str | None = None
    last_synced_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(slots=True)
class MeetingRecord:
    """The subset of a meetings row the analysis job needs."""

    id: str
    user_id: str
    calendar_event_id: str
    title: str
    transcript: str | None
    processing_status: str
    start_time: datetime | None = None


@dataclass(slots=True)
class MeetingAnalysis:
    summary: str
    decisions: list[str] = field(default_factory=list)
    action_items: list[dict[str, Any]] = field(default_factory=list)


@dataclass(slots=True)
class ProviderSyncResult:
    """Outcome of syncing one provider for one tenant."""

    provider: str
    status: str
    sync_run_id: str | None = None
    counts: dict[str, int] = field(default_factory=dict)
    error: str | None = None
    reason: str | None = None
    reconnect_required: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class SyncSummary:
    tenant_id: str
    results: list[ProviderSyncResult] = field(default_factory=list)

    @property
    def success(self) -> bool:
        """True when no provider ended in a hard failure."""
        return all(r.status != SYNC_FAILED for r in self.results)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "tenant_id": self.tenant_id,
            "results": [r.to_dict() for r in self.results],
        }

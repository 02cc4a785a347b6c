import itertools
from datetime import datetime
from typing import Any

import pytest
from cryptography.fernet import Fernet

from centri.auth.verify import get_tenant_id
from centri.config import settings
from centri.features.integrations.domain.models import (
    ClassificationResult,
    IntegrationRecord,
    MeetingAnalysis,
    MeetingRecord,
    NormalizedMeeting,
    NormalizedTask,
    NormalizedTeamMember,
    SyncResult,
    UpsertOutcome,
)
from centri.features.integrations.providers.base import ProviderAdapter
from centri.features.updates.domain.models import (
    TYPE_NEWSLETTER,
    DueStakeholder,
    DueTask,
    ItemUpsert,
    MeetingActionItems,
    UpdateCandidate,
    UpdateItem,
)

TENANT_ID = "user-123"

_ids = itertools.count(1)


def _next_id() -> str:
    return f"id-{next(_ids)}"


class FakeIntegrationRepository:
    def __init__(self):
        self.rows: dict[tuple[str, str], IntegrationRecord] = {}
        self.synced: list[tuple[str, str]] = []

    async def upsert(self, user_id, provider, encrypted, expires_at):
        existing = self.rows.get((user_id, provider))
        record = IntegrationRecord(
            id=existing.id if existing else _next_id(),
            user_id=user_id,
            provider=provider,
            credential_encrypted=encrypted,
            expires_at=expires_at,
        )
        self.rows[(user_id, provider)] = record
        return record

    async def get(self, user_id, provider):
        return self.rows.get((user_id, provider))

    async def list_for_user(self, user_id):
        return [r for (uid, _), r in self.rows.items() if uid == user_id]

    async def list_tenant_ids(self):
        return sorted({uid for uid, _ in self.rows})

    async def mark_reconnect_required(self, user_id, provider, error):
        record = self.rows.get((user_id, provider))
        if not record:
            return False
        record.needs_reconnect = True
        record.last_error = error
        return True

    async def mark_synced(self, user_id, provider):
        self.synced.append((user_id, provider))

    async def delete(self, user_id, provider):
        return self.rows.pop((user_id, provider), None) is not None


class FakeSyncRepository:
    """In-memory twin of SyncRepository keyed by the same natural keys."""

    def __init__(self):
        self.runs: dict[str, dict[str, Any]] = {}
        self.meetings: dict[tuple[str, str], dict[str, Any]] = {}
        self.tasks: dict[tuple[str, str], NormalizedTask] = {}
        self.team_members: dict[tuple[str, str], dict[str, Any]] = {}
        self.analyses: dict[str, MeetingAnalysis] = {}

    async def start_run(self, user_id, provider):
        run_id = _next_id()
        self.runs[run_id] = {"user_id": user_id, "provider": provider, "status": "running"}
        return run_id

    async def finish_run(self, run_id, status, error=None):
        self.runs[run_id].update(status=status, error=error)

    async def upsert_meeting(
        self,
        user_id: str,
        meeting: NormalizedMeeting,
        classification: ClassificationResult,
        processing_status: str,
    ):
        key = (user_id, meeting.calendar_event_id)
        existing = self.meetings.get(key)
        if existing:
            existing.update(meeting=meeting, classification=classification)
            # transcript and summary are only ever filled in, never cleared
            existing["transcript"] = meeting.transcript or existing["transcript"]
            existing["summary"] = meeting.summary or existing["summary"]
            return UpsertOutcome(id=existing["id"], inserted=False)
        self.meetings[key] = {
            "id": _next_id(),
            "meeting": meeting,
            "classification": classification,
            "processing_status": processing_status,
            "transcript": meeting.transcript,
            "summary": meeting.summary,
        }
        return UpsertOutcome(id=self.meetings[key]["id"], inserted=True)

    async def upsert_task(self, user_id, task: NormalizedTask):
        inserted = (user_id, task.external_id) not in self.tasks
        self.tasks[(user_id, task.external_id)] = task
        return UpsertOutcome(id=task.external_id, inserted=inserted)

    async def upsert_team_member(self, user_id, member: NormalizedTeamMember):
        key = (user_id, member.external_id)
        row = self.team_members.get(key)
        if row:
            row["name"] = member.name
            if member.source not in row["sources"]:
                row["sources"].append(member.source)
            return UpsertOutcome(id=row["id"], inserted=False)
        self.team_members[key] = {"id": _next_id(), "name": member.name, "sources": [member.source]}
        return UpsertOutcome(id=self.team_members[key]["id"], inserted=True)

    def _meeting_by_id(self, meeting_id):
        for (user_id, _), row in self.meetings.items():
            if row["id"] == meeting_id:
                return user_id, row
        return None, None

    async def get_meeting(self, user_id, meeting_id):
        owner, row = self._meeting_by_id(meeting_id)
        if row is None or owner != user_id:
            return None
        meeting = row["meeting"]
        return MeetingRecord(
            id=row["id"],
            user_id=owner,
            calendar_event_id=meeting.calendar_event_id,
            title=meeting.title,
            transcript=row["transcript"],
            processing_status=row["processing_status"],
            start_time=meeting.start_time,
        )

    async def save_meeting_analysis(self, meeting_id, analysis):
        _, row = self._meeting_by_id(meeting_id)
        row["processing_status"] = "processed"
        row["summary"] = analysis.summary
        self.analyses[meeting_id] = analysis

    async def claim_meeting_analysis(self, meeting_id):
        _, row = self._meeting_by_id(meeting_id)
        if row is None or row["processing_status"] == "processing":
            return False
        if not row["transcript"] or row["summary"]:
            return False
        row["processing_status"] = "processing"
        return True

    async def set_meeting_status(self, meeting_id, status):
        _, row = self._meeting_by_id(meeting_id)
        row["processing_status"] = status


class FakeUpdateRepository:
    """Honors the upsert contract: content refreshes, read/dismissed flags never reset."""

    def __init__(self):
        self.items: dict[tuple[str, str, str], UpdateItem] = {}

    async def upsert(self, user_id, candidate: UpdateCandidate):
        key = (user_id, candidate.source, candidate.external_id)
        existing = self.items.get(key)
        item = UpdateItem(
            id=existing.id if existing else _next_id(),
            user_id=user_id,
            source=candidate.source,
            type=candidate.type,
            severity=candidate.severity,
            title=candidate.title,
            external_id=candidate.external_id,
            occurred_at=candidate.occurred_at,
            body=candidate.body,
            url=candidate.url,
            is_read=existing.is_read if existing else False,
            is_dismissed=existing.is_dismissed if existing else False,
            metadata=dict(candidate.metadata),
        )
        self.items[key] = item
        return ItemUpsert(
            id=item.id,
            inserted=existing is None,
            previous_severity=existing.severity if existing else None,
        )

    def for_user(self, user_id):
        return [item for (uid, _, _), item in self.items.items() if uid == user_id]

    async def list_feed(self, user_id, limit):
        items = [
            i for i in self.for_user(user_id) if not i.is_dismissed and i.type != TYPE_NEWSLETTER
        ]
        return sorted(items, key=lambda i: i.occurred_at, reverse=True)[:limit]

    async def list_newsletters(self, user_id, since: datetime):
        return [
            i
            for i in self.for_user(user_id)
            if not i.is_dismissed and i.type == TYPE_NEWSLETTER and i.occurred_at >= since
        ]

    def _find(self, user_id, item_id):
        return next((i for i in self.for_user(user_id) if i.id == item_id), None)

    async def mark_read(self, user_id, item_id):
        item = self._find(user_id, item_id)
        if item:
            item.is_read = True
        return item is not None

    async def dismiss(self, user_id, item_id):
        item = self._find(user_id, item_id)
        if item:
            item.is_dismissed = True
        return item is not None

    async def dismiss_all(self, user_id):
        count = 0
        for item in self.for_user(user_id):
            if not item.is_dismissed:
                item.is_dismissed = True
                count += 1
        return count


class FakeReminderRepository:
    def __init__(
        self,
        tasks: list[DueTask] | None = None,
        stakeholders: list[DueStakeholder] | None = None,
        meetings: list[MeetingActionItems] | None = None,
    ):
        self.tasks = tasks or []
        self.stakeholders = stakeholders or []
        self.meetings = meetings or []

    async def list_tasks_due_by(self, user_id, cutoff):
        return [t for t in self.tasks if t.due_date <= cutoff]

    async def list_stakeholders_due_by(self, user_id, cutoff):
        return [s for s in self.stakeholders if s.next_reach_out_at <= cutoff]

    async def list_meetings_with_action_items(self, user_id, limit=100):
        return self.meetings[:limit]


class FakeLocks:
    """Stands in for FastRedisClient's lock methods."""

    def __init__(self, available: bool = True):
        self.available = available
        self.held: dict[str, str] = {}

    async def acquire_lock(self, key, token, ttl_s):
        if not self.available:
            return None
        if key in self.held:
            return False
        self.held[key] = token
        return True

    async def release_lock(self, key, token):
        if self.held.get(key) == token:
            del self.held[key]
            return True
        return False


class FakeTextGeneration:
    def __init__(self, response: dict | None = None, error: Exception | None = None):
        self.response = response
        self.error = error
        self.calls: list[tuple[str, str]] = []

    @property
    def is_available(self) -> bool:
        return True

    async def generate_json(self, system_message, user_message, temperature=0.2):
        self.calls.append((system_message, user_message))
        if self.error:
            raise self.error
        return self.response


class FakeAdapter(ProviderAdapter):
    """Adapter whose sync_data replays queued results or exceptions."""

    supports_refresh = True

    def __init__(self, name: str, *outcomes, refreshed=None):
        super().__init__()
        self.name = name
        self.outcomes = list(outcomes) or [SyncResult()]
        self.refreshed = refreshed
        self.calls: list[str] = []

    async def sync_data(self, tenant_id, credential):
        self.calls.append(credential.access_token)
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, BaseException):
            raise outcome
        if callable(outcome):
            return await outcome()
        return outcome

    async def refresh_credential(self, refresh_token):
        if isinstance(self.refreshed, BaseException):
            raise self.refreshed
        return self.refreshed


@pytest.fixture
def encryption_key(monkeypatch):
    key = Fernet.generate_key().decode()
    monkeypatch.setattr(settings, "ENCRYPTION_KEY", key)
    return key


@pytest.fixture
def integration_repo():
    return FakeIntegrationRepository()


@pytest.fixture
def sync_repo():
    return FakeSyncRepository()


@pytest.fixture
def update_repo():
    return FakeUpdateRepository()


@pytest.fixture
def fake_locks():
    return FakeLocks()


@pytest.fixture
def auth_override():
    def _override():
        return TENANT_ID

    return _override


@pytest.fixture
def apply_auth_override(auth_override):
    def _apply(app):
        app.dependency_overrides[get_tenant_id] = auth_override

    return _apply

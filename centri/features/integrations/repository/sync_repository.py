"""
Persistence for synced records and the sync-run audit trail.

Every upsert is a single INSERT ... ON CONFLICT on the natural key, so two
overlapping syncs can never double-create a row. `(xmax = 0)` in the
RETURNING clause tells the caller whether the row was created or updated.
"""

from typing import Any

from psycopg import sql
from psycopg.types.json import Jsonb

from centri.db.helpers import StorageConflictError, execute_query, fetch_one
from centri.features.integrations.domain.models import (
    ClassificationResult,
    MeetingAnalysis,
    MeetingRecord,
    NormalizedMeeting,
    NormalizedTask,
    NormalizedTeamMember,
    UpsertOutcome,
)
from centri.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

UPSERT_MEETING_SQL = """
INSERT INTO meetings (
    user_id, calendar_event_id, source, title, description, start_time, end_time,
    attendees, meeting_url, transcript, summary, decisions, action_items,
    classification_type, classification_confidence, classification_reason,
    processing_status
) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
ON CONFLICT (user_id, calendar_event_id) DO UPDATE SET
    source = EXCLUDED.source,
    title = EXCLUDED.title,
    description = EXCLUDED.description,
    start_time = EXCLUDED.start_time,
    end_time = EXCLUDED.end_time,
    attendees = EXCLUDED.attendees,
    meeting_url = EXCLUDED.meeting_url,
    transcript = COALESCE(EXCLUDED.transcript, meetings.transcript),
    summary = COALESCE(EXCLUDED.summary, meetings.summary),
    decisions = COALESCE(EXCLUDED.decisions, meetings.decisions),
    action_items = COALESCE(EXCLUDED.action_items, meetings.action_items),
    classification_type = EXCLUDED.classification_type,
    classification_confidence = EXCLUDED.classification_confidence,
    classification_reason = EXCLUDED.classification_reason,
    updated_at = NOW()
RETURNING id::text AS id, (xmax = 0) AS inserted
"""

UPSERT_TASK_SQL = """
INSERT INTO tasks (
    user_id, external_id, source, title, status, assignee, due_date, priority, is_blocked, url
) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
ON CONFLICT (user_id, external_id) DO UPDATE SET
    source = EXCLUDED.source,
    title = EXCLUDED.title,
    status = EXCLUDED.status,
    assignee = EXCLUDED.assignee,
    due_date = EXCLUDED.due_date,
    priority = EXCLUDED.priority,
    is_blocked = EXCLUDED.is_blocked,
    url = EXCLUDED.url,
    updated_at = NOW()
RETURNING id::text AS id, (xmax = 0) AS inserted
"""

# sources accumulate across providers; they are never overwritten
UPSERT_TEAM_MEMBER_SQL = """
INSERT INTO team_members (user_id, external_id, name, email, avatar_url, role, sources)
VALUES (%s, %s, %s, %s, %s, %s, %s)
ON CONFLICT (user_id, external_id) DO UPDATE SET
    name = EXCLUDED.name,
    email = COALESCE(EXCLUDED.email, team_members.email),
    avatar_url = COALESCE(EXCLUDED.avatar_url, team_members.avatar_url),
    role = COALESCE(EXCLUDED.role, team_members.role),
    sources = ARRAY(
        SELECT DISTINCT s FROM unnest(team_members.sources || EXCLUDED.sources) AS s ORDER BY s
    ),
    updated_at = NOW()
RETURNING id::text AS id, (xmax = 0) AS inserted
"""


def _jsonb(value: Any) -> Jsonb | None:
    return Jsonb(value) if value is not None else None


class SyncRepository:
    # ------------------------------------------------------------------
    # Sync runs
    # ------------------------------------------------------------------

    async def start_run(self, user_id: str, provider: str) -> str:
        row = await fetch_one(
            """
            INSERT INTO sync_runs (user_id, provider, status)
            VALUES (%s, %s, 'running')
            RETURNING id::text AS id
            """,
            (user_id, provider),
        )
        return row["id"]

    async def finish_run(self, run_id: str, status: str, error: dict[str, Any] | None = None) -> None:
        await execute_query(
            "UPDATE sync_runs SET status = %s, finished_at = NOW(), error = %s WHERE id = %s",
            (status, _jsonb(error), run_id),
        )

    # ------------------------------------------------------------------
    # Upserts
    # ------------------------------------------------------------------

    async def upsert_meeting(
        self,
        user_id: str,
        meeting: NormalizedMeeting,
        classification: ClassificationResult,
        processing_status: str,
    ) -> UpsertOutcome | None:
        params = (
            user_id,
            meeting.calendar_event_id,
            meeting.source,
            meeting.title,
            meeting.description,
            meeting.start_time,
            meeting.end_time,
            Jsonb(meeting.attendees),
            meeting.meeting_url,
            meeting.transcript,
            meeting.summary,
            _jsonb(meeting.decisions),
            _jsonb(meeting.action_items),
            classification.type,
            classification.confidence,
            classification.reason,
            processing_status,
        )
        try:
            row = await fetch_one(UPSERT_MEETING_SQL, params)
        except StorageConflictError as e:
            return await self._update_after_conflict(
                "meetings",
                "calendar_event_id",
                user_id,
                meeting.calendar_event_id,
                {
                    "title": meeting.title,
                    "start_time": meeting.start_time,
                    "end_time": meeting.end_time,
                    "attendees": Jsonb(meeting.attendees),
                    "classification_type": classification.type,
                    "classification_confidence": classification.confidence,
                    "classification_reason": classification.reason,
                },
                e,
            )
        return UpsertOutcome(id=row["id"], inserted=bool(row["inserted"]))

    async def upsert_task(self, user_id: str, task: NormalizedTask) -> UpsertOutcome | None:
        fields = {
            "source": task.source,
            "title": task.title,
            "status": task.status,
            "assignee": task.assignee,
            "due_date": task.due_date,
            "priority": task.priority,
            "is_blocked": task.is_blocked,
            "url": task.url,
        }
        try:
            row = await fetch_one(UPSERT_TASK_SQL, (user_id, task.external_id, *fields.values()))
        except StorageConflictError as e:
            return await self._update_after_conflict(
                "tasks", "external_id", user_id, task.external_id, fields, e
            )
        return UpsertOutcome(id=row["id"], inserted=bool(row["inserted"]))

    async def upsert_team_member(
        self, user_id: str, member: NormalizedTeamMember
    ) -> UpsertOutcome | None:
        params = (
            user_id,
            member.external_id,
            member.name,
            member.email,
            member.avatar_url,
            member.role,
            [member.source],
        )
        try:
            row = await fetch_one(UPSERT_TEAM_MEMBER_SQL, params)
        except StorageConflictError as e:
            return await self._update_after_conflict(
                "team_members",
                "external_id",
                user_id,
                member.external_id,
                {"name": member.name},
                e,
            )
        return UpsertOutcome(id=row["id"], inserted=bool(row["inserted"]))

    async def _update_after_conflict(
        self,
        table: str,
        key_column: str,
        user_id: str,
        key_value: str,
        fields: dict[str, Any],
        error: StorageConflictError,
    ) -> UpsertOutcome | None:
        """
        A uniqueness race on some other constraint: treat it as "already
        exists" and update by natural key. Returns None when no row matches,
        in which case the record is dropped from this batch.
        """
        assignments = sql.SQL(", ").join(
            sql.SQL("{} = %s").format(sql.Identifier(column)) for column in fields
        )
        query = sql.SQL(
            "UPDATE {table} SET {assignments}, updated_at = NOW() "
            "WHERE user_id = %s AND {key} = %s RETURNING id::text AS id"
        ).format(table=sql.Identifier(table), assignments=assignments, key=sql.Identifier(key_column))

        row = await fetch_one(query, (*fields.values(), user_id, key_value))
        if not row:
            logger.warning(
                "Dropping record after unresolved storage conflict",
                table=table,
                user_id=user_id,
                key=key_value,
                constraint=error.constraint,
            )
            return None
        return UpsertOutcome(id=row["id"], inserted=False)

    # ------------------------------------------------------------------
    # Meeting analysis
    # ------------------------------------------------------------------

    async def get_meeting(self, user_id: str, meeting_id: str) -> MeetingRecord | None:
        row = await fetch_one(
            """
            SELECT id::text AS id, user_id, calendar_event_id, title, transcript,
                   processing_status, start_time
            FROM meetings WHERE user_id = %s AND id = %s
            """,
            (user_id, meeting_id),
        )
        return MeetingRecord(**row) if row else None

    async def claim_meeting_analysis(self, meeting_id: str) -> bool:
        """
        Flip an existing meeting to `processing` when its transcript still lacks a summary.

        Only one caller can win the flip, so a meeting is never queued twice.
        Meetings left `failed` by an earlier attempt become claimable again.
        """
        row = await fetch_one(
            """
            UPDATE meetings
            SET processing_status = 'processing', updated_at = NOW()
            WHERE id = %s
              AND transcript IS NOT NULL AND transcript <> ''
              AND summary IS NULL
              AND processing_status <> 'processing'
            RETURNING id::text AS id
            """,
            (meeting_id,),
        )
        return row is not None

    async def save_meeting_analysis(self, meeting_id: str, analysis: MeetingAnalysis) -> None:
        await execute_query(
            """
            UPDATE meetings
            SET summary = %s, decisions = %s, action_items = %s,
                processing_status = 'processed', updated_at = NOW()
            WHERE id = %s
            """,
            (analysis.summary, Jsonb(analysis.decisions), Jsonb(analysis.action_items), meeting_id),
        )

    async def set_meeting_status(self, meeting_id: str, status: str) -> None:
        await execute_query(
            "UPDATE meetings SET processing_status = %s, updated_at = NOW() WHERE id = %s",
            (status, meeting_id),
        )

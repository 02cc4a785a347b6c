"""Read-only queries behind the internal reminder collector."""

from datetime import datetime

from centri.db.helpers import fetch_all
from centri.features.updates.domain.models import DueStakeholder, DueTask, MeetingActionItems

DONE_STATUSES = ["done", "completed", "closed", "resolved"]


class ReminderRepository:
    async def list_tasks_due_by(self, user_id: str, cutoff: datetime) -> list[DueTask]:
        """Open tasks with a due date at or before `cutoff`."""
        rows = await fetch_all(
            """
            SELECT id::text AS id, title, due_date, status, url
            FROM tasks
            WHERE user_id = %s
              AND due_date IS NOT NULL
              AND due_date <= %s
              AND (status IS NULL OR lower(status) <> ALL(%s))
            ORDER BY due_date
            """,
            (user_id, cutoff, DONE_STATUSES),
        )
        return [DueTask(**row) for row in rows]

    async def list_stakeholders_due_by(self, user_id: str, cutoff: datetime) -> list[DueStakeholder]:
        rows = await fetch_all(
            """
            SELECT id::text AS id, name, next_reach_out_at, email
            FROM stakeholders
            WHERE user_id = %s AND next_reach_out_at IS NOT NULL AND next_reach_out_at <= %s
            ORDER BY next_reach_out_at
            """,
            (user_id, cutoff),
        )
        return [DueStakeholder(**row) for row in rows]

    async def list_meetings_with_action_items(
        self, user_id: str, limit: int = 100
    ) -> list[MeetingActionItems]:
        rows = await fetch_all(
            """
            SELECT id::text AS meeting_id, title AS meeting_title, action_items
            FROM meetings
            WHERE user_id = %s
              AND action_items IS NOT NULL
              AND jsonb_typeof(action_items) = 'array'
              AND jsonb_array_length(action_items) > 0
            ORDER BY start_time DESC NULLS LAST
            LIMIT %s
            """,
            (user_id, limit),
        )
        return [MeetingActionItems(**row) for row in rows]

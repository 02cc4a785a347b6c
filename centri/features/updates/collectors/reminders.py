"""
Reminders built from local state: due tasks, stakeholder follow-ups and
overdue meeting action items.

External ids embed the day, so a reminder that stays overdue updates the
same row for the rest of the day and shows up as a fresh item tomorrow.
"""

from datetime import UTC, date, datetime, timedelta

from centri.features.integrations.domain.models import Credential, parse_datetime
from centri.features.updates.collectors.base import UpdateCollector
from centri.features.updates.domain.models import (
    IMPORTANT,
    INFO,
    SOURCE_INTERNAL,
    URGENT,
    DueStakeholder,
    DueTask,
    MeetingActionItems,
    UpdateCandidate,
)
from centri.features.updates.repository.reminder_repository import ReminderRepository

STAKEHOLDER_HEADS_UP_DAYS = 2
ACTION_ITEM_ESCALATION_DAYS = 3


def reminder_id(kind: str, entity_id: str, day: date) -> str:
    return f"{kind}:{entity_id}:{day.isoformat()}"


class ReminderCollector(UpdateCollector):
    source = SOURCE_INTERNAL
    provider = None

    def __init__(self, reminders: ReminderRepository | None = None):
        self.reminders = reminders or ReminderRepository()

    async def collect(
        self, tenant_id: str, credential: Credential | None = None, now: datetime | None = None
    ) -> list[UpdateCandidate]:
        now = now or datetime.now(UTC)
        end_of_today = datetime.combine(now.date(), datetime.max.time(), tzinfo=UTC)

        candidates: list[UpdateCandidate] = []
        for task in await self.reminders.list_tasks_due_by(tenant_id, end_of_today):
            candidates.append(task_reminder(task, now))

        heads_up = now + timedelta(days=STAKEHOLDER_HEADS_UP_DAYS)
        for stakeholder in await self.reminders.list_stakeholders_due_by(tenant_id, heads_up):
            candidates.append(stakeholder_reminder(stakeholder, now))

        for meeting in await self.reminders.list_meetings_with_action_items(tenant_id):
            candidates.extend(action_item_reminders(meeting, now))

        return candidates


def task_reminder(task: DueTask, now: datetime) -> UpdateCandidate:
    overdue = task.due_date.date() < now.date()
    return UpdateCandidate(
        source=SOURCE_INTERNAL,
        type="task_reminder",
        severity=URGENT if overdue else IMPORTANT,
        title=f"Overdue: {task.title}" if overdue else f"Due today: {task.title}",
        body=f"Due {task.due_date.date().isoformat()}",
        occurred_at=now,
        external_id=reminder_id("task", task.id, now.date()),
        url=task.url,
        metadata={"task_id": task.id, "status": task.status},
    )


def stakeholder_reminder(stakeholder: DueStakeholder, now: datetime) -> UpdateCandidate:
    elapsed = stakeholder.next_reach_out_at <= now
    return UpdateCandidate(
        source=SOURCE_INTERNAL,
        type="stakeholder_reminder",
        severity=IMPORTANT if elapsed else INFO,
        title=(
            f"Time to reach out to {stakeholder.name}"
            if elapsed
            else f"Reach out to {stakeholder.name} soon"
        ),
        body=f"Planned for {stakeholder.next_reach_out_at.date().isoformat()}",
        occurred_at=now,
        external_id=reminder_id("stakeholder", stakeholder.id, now.date()),
        metadata={"stakeholder_id": stakeholder.id, "email": stakeholder.email},
    )


def action_item_reminders(meeting: MeetingActionItems, now: datetime) -> list[UpdateCandidate]:
    candidates = []
    for index, item in enumerate(meeting.action_items or []):
        if not isinstance(item, dict):
            continue
        due = parse_datetime(item.get("due_date"))
        if due is None or due.date() >= now.date():
            continue
        days_overdue = (now.date() - due.date()).days
        description = item.get("description") or "Action item"
        candidates.append(
            UpdateCandidate(
                source=SOURCE_INTERNAL,
                type="action_item_reminder",
                severity=URGENT if days_overdue >= ACTION_ITEM_ESCALATION_DAYS else IMPORTANT,
                title=f"Overdue action item: {description}",
                body=f"From {meeting.meeting_title}, {days_overdue} day(s) overdue",
                occurred_at=now,
                external_id=reminder_id("action_item", f"{meeting.meeting_id}-{index}", now.date()),
                metadata={
                    "meeting_id": meeting.meeting_id,
                    "owner": item.get("owner"),
                    "days_overdue": days_overdue,
                },
            )
        )
    return candidates

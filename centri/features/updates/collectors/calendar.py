from datetime import UTC, datetime, timedelta

from centri.config import Settings, settings
from centri.features.integrations.domain.models import Credential, NormalizedMeeting
from centri.features.integrations.providers.google_calendar import GoogleCalendarAdapter
from centri.features.updates.collectors.base import UpdateCollector
from centri.features.updates.domain.models import IMPORTANT, INFO, URGENT, UpdateCandidate

URGENT_WITHIN_HOURS = 4
IMPORTANT_WITHIN_HOURS = 24


def calendar_severity(start_time: datetime, now: datetime) -> str:
    hours_until = (start_time - now).total_seconds() / 3600
    if 0 <= hours_until < URGENT_WITHIN_HOURS:
        return URGENT
    if 0 <= hours_until < IMPORTANT_WITHIN_HOURS:
        return IMPORTANT
    return INFO


class CalendarCollector(UpdateCollector):
    """Upcoming events inside the lookahead window."""

    source = "google_calendar"
    provider = "google"

    def __init__(self, adapter: GoogleCalendarAdapter, config: Settings | None = None):
        self.adapter = adapter
        self.config = config or settings

    async def collect(self, tenant_id: str, credential: Credential | None) -> list[UpdateCandidate]:
        now = datetime.now(UTC)
        events = await self.adapter.fetch_events(
            credential, now, now + timedelta(hours=self.config.CALENDAR_LOOKAHEAD_HOURS)
        )
        return [
            self._to_candidate(event, now) for event in events if event.start_time is not None
        ]

    def _to_candidate(self, event: NormalizedMeeting, now: datetime) -> UpdateCandidate:
        start = event.start_time
        return UpdateCandidate(
            source=self.source,
            type="calendar_event",
            severity=calendar_severity(start, now),
            title=event.title or "No Title",
            body=f"{start.strftime('%H:%M')} UTC • {len(event.attendees)} attendees",
            occurred_at=start,
            # the version marker makes a rescheduled event surface again
            external_id=f"{event.calendar_event_id}_{event.version or ''}",
            url=event.meeting_url,
            metadata={"attendee_count": len(event.attendees)},
        )

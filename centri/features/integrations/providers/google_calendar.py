"""
Google Calendar adapter.

Every event in the sync window comes back as a NormalizedMeeting; the
orchestrator decides later whether it is a meeting or a time-blocked task.
"""

from datetime import UTC, datetime, timedelta
from typing import Any

import httpx

from centri.features.integrations.domain.models import (
    Credential,
    NormalizedMeeting,
    SyncResult,
    parse_datetime,
)
from centri.features.integrations.providers.base import skip_malformed
from centri.features.integrations.providers.google_base import GoogleAdapter
from centri.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

CALENDAR_API_BASE_URL = "https://www.googleapis.com/calendar/v3"
CALENDAR_PRIMARY = "primary"
MAX_EVENTS = 250


class GoogleCalendarAdapter(GoogleAdapter):
    name = "google"
    api_base_url = CALENDAR_API_BASE_URL
    scopes = [
        "openid",
        "email",
        "profile",
        "https://www.googleapis.com/auth/calendar.readonly",
    ]

    async def sync_data(self, tenant_id: str, credential: Credential) -> SyncResult:
        result = SyncResult()
        now = datetime.now(UTC)
        time_max = now + timedelta(days=self.config.CALENDAR_SYNC_DAYS_AHEAD)

        async with self._create_client() as client:
            items = await self._list_event_items(client, result, credential, now, time_max)

        result.meetings = self.normalize_events(items)
        logger.info(
            "Calendar events normalized",
            tenant_id=tenant_id,
            event_count=len(items),
            meeting_count=len(result.meetings),
        )
        return result

    async def fetch_events(
        self, credential: Credential, time_min: datetime, time_max: datetime
    ) -> list[NormalizedMeeting]:
        """Events in [time_min, time_max]; used by the update feed's calendar collector."""
        async with self._create_client() as client:
            data = await self._get(
                client,
                f"/calendars/{CALENDAR_PRIMARY}/events",
                credential,
                operation="list_events",
                params=_window_params(time_min, time_max),
            )
        items = data.get("items") if isinstance(data, dict) else None
        return self.normalize_events(items if isinstance(items, list) else [])

    async def _list_event_items(
        self,
        client: httpx.AsyncClient,
        result: SyncResult,
        credential: Credential,
        time_min: datetime,
        time_max: datetime,
    ) -> list[dict[str, Any]]:
        data = await self._safe_get(
            client,
            result,
            f"/calendars/{CALENDAR_PRIMARY}/events",
            credential,
            operation="list_events",
            params=_window_params(time_min, time_max),
        )
        if not isinstance(data, dict):
            return []
        items = data.get("items")
        return items if isinstance(items, list) else []

    def normalize_events(self, items: list[Any]) -> list[NormalizedMeeting]:
        meetings = []
        for item in items:
            try:
                meeting = self._normalize_event(item)
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                skip_malformed(self.name, "event", item, e)
                continue
            if meeting:
                meetings.append(meeting)
        return meetings

    def _normalize_event(self, item: dict[str, Any]) -> NormalizedMeeting | None:
        if item.get("status") == "cancelled":
            return None

        event_id = item["id"]
        organizer = item.get("organizer") or {}
        conference = item.get("conferenceData") or {}
        attendees = [
            {
                "email": a.get("email"),
                "name": a.get("displayName"),
                "response_status": a.get("responseStatus"),
                "is_self": bool(a.get("self")),
            }
            for a in (item.get("attendees") or [])
            if isinstance(a, dict)
        ]

        return NormalizedMeeting(
            calendar_event_id=event_id,
            title=item.get("summary") or "(No title)",
            source=self.name,
            start_time=parse_datetime(item.get("start")),
            end_time=parse_datetime(item.get("end")),
            description=item.get("description"),
            attendees=attendees,
            # Events without an organizer block live on the user's own calendar
            is_self_organized=bool(organizer.get("self")) if organizer else True,
            has_conference_link=bool(conference or item.get("hangoutLink")),
            meeting_url=item.get("hangoutLink") or _video_entry_point(conference),
            version=item.get("updated"),
        )


def _video_entry_point(conference: dict[str, Any]) -> str | None:
    for entry in conference.get("entryPoints") or []:
        if isinstance(entry, dict) and entry.get("entryPointType") == "video":
            return entry.get("uri")
    return None


def _window_params(time_min: datetime, time_max: datetime) -> dict[str, Any]:
    return {
        "timeMin": time_min.isoformat(),
        "timeMax": time_max.isoformat(),
        "singleEvents": "true",
        "orderBy": "startTime",
        "maxResults": MAX_EVENTS,
    }

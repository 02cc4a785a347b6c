from datetime import UTC, datetime, timedelta
from typing import Any

from centri.features.integrations.domain.models import (
    Credential,
    NormalizedMeeting,
    SyncResult,
    parse_datetime,
)
from centri.features.integrations.providers.base import ProviderAdapter, skip_malformed
from centri.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

FATHOM_API_BASE_URL = "https://api.fathom.ai/external/v1"
CALL_LOOKBACK_DAYS = 30


class FathomAdapter(ProviderAdapter):
    """Recorded calls, with Fathom's own transcript, summary and action items."""

    name = "fathom"
    auth_url = "https://fathom.video/external/v1/oauth2/authorize"
    token_url = "https://fathom.video/external/v1/oauth2/token"
    api_base_url = FATHOM_API_BASE_URL
    scopes = ["public_api"]
    client_id_setting = "FATHOM_CLIENT_ID"
    client_secret_setting = "FATHOM_CLIENT_SECRET"
    supports_refresh = True

    async def sync_data(self, tenant_id: str, credential: Credential) -> SyncResult:
        result = SyncResult()
        since = (datetime.now(UTC) - timedelta(days=CALL_LOOKBACK_DAYS)).isoformat()

        async with self._create_client() as client:
            data = await self._safe_get(
                client,
                result,
                "/meetings",
                credential,
                operation="list_meetings",
                params={
                    "created_after": since,
                    "include_transcript": "true",
                    "include_action_items": "true",
                },
            )

        for item in (data or {}).get("items") or []:
            try:
                result.meetings.append(self._normalize_call(item))
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                skip_malformed(self.name, "call", item, e)

        logger.info("Fathom calls normalized", tenant_id=tenant_id, meeting_count=len(result.meetings))
        return result

    def _normalize_call(self, item: dict[str, Any]) -> NormalizedMeeting:
        invitees = [
            {"email": i.get("email"), "name": i.get("name"), "is_self": False}
            for i in item.get("calendar_invitees") or []
            if isinstance(i, dict)
        ]
        summary = (item.get("default_summary") or {}).get("markdown_formatted")
        action_items = [
            {
                "description": a.get("description"),
                "owner": (a.get("assignee") or {}).get("name"),
                "due_date": None,
            }
            for a in item.get("action_items") or []
            if isinstance(a, dict) and a.get("description")
        ]
        return NormalizedMeeting(
            calendar_event_id=f"fathom_{item['recording_id']}",
            title=item.get("meeting_title") or item.get("title") or "Recorded call",
            source=self.name,
            start_time=parse_datetime(item.get("recording_start_time")),
            end_time=parse_datetime(item.get("recording_end_time")),
            attendees=invitees,
            has_conference_link=True,
            meeting_url=item.get("share_url") or item.get("url"),
            transcript=_join_transcript(item.get("transcript")),
            summary=summary,
            action_items=action_items or None,
        )


def _join_transcript(segments: Any) -> str | None:
    if isinstance(segments, str):
        return segments or None
    if not isinstance(segments, list):
        return None
    lines = []
    for segment in segments:
        if not isinstance(segment, dict) or not segment.get("text"):
            continue
        speaker = (segment.get("speaker") or {}).get("display_name") or "Speaker"
        lines.append(f"{speaker}: {segment['text']}")
    return "\n".join(lines) or None

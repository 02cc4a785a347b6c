"""
Zoom adapter.

Scheduled meetings are mapped directly; cloud recordings that carry a
transcript file are downloaded and their WebVTT markup stripped so the
meeting analysis job sees plain "Speaker: text" lines.
"""

import re
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx

from centri.features.integrations.domain.models import (
    Credential,
    NormalizedMeeting,
    SyncResult,
    parse_datetime,
)
from centri.features.integrations.providers.base import (
    ProviderAdapter,
    ProviderAuthError,
    ProviderError,
    ProviderTransientError,
    skip_malformed,
)
from centri.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

ZOOM_API_BASE_URL = "https://api.zoom.us/v2"
RECORDING_LOOKBACK_DAYS = 30
VTT_TIMESTAMP = re.compile(r"^\d{2}:\d{2}:\d{2}\.\d{3}\s+-->\s+\d{2}:\d{2}:\d{2}\.\d{3}")


def clean_vtt(vtt: str) -> str:
    """Strip the WEBVTT header, cue numbers and timestamps from a transcript."""
    lines = []
    for raw in vtt.splitlines():
        line = raw.strip()
        if not line or line == "WEBVTT" or line.isdigit() or VTT_TIMESTAMP.match(line):
            continue
        lines.append(line)
    return "\n".join(lines)


class ZoomAdapter(ProviderAdapter):
    name = "zoom"
    auth_url = "https://zoom.us/oauth/authorize"
    token_url = "https://zoom.us/oauth/token"
    api_base_url = ZOOM_API_BASE_URL
    client_id_setting = "ZOOM_CLIENT_ID"
    client_secret_setting = "ZOOM_CLIENT_SECRET"
    supports_refresh = True

    async def _token_request(self, form: dict[str, str]) -> dict[str, Any]:
        # Zoom authenticates the client with HTTP Basic auth, not form fields
        async with self._create_client() as client:
            try:
                response = await client.post(
                    self.token_url,
                    data=form,
                    auth=httpx.BasicAuth(self.client_id, self.client_secret),
                )
            except httpx.RequestError as e:
                raise ProviderTransientError(f"Token endpoint unreachable: {e}", self.name) from e
        if response.status_code in (400, 401):
            raise ProviderAuthError(
                "Authorization rejected by provider. Please reconnect",
                self.name,
                status_code=response.status_code,
            )
        return self._handle_api_response(response, "token")

    async def sync_data(self, tenant_id: str, credential: Credential) -> SyncResult:
        result = SyncResult()
        since = (datetime.now(UTC) - timedelta(days=RECORDING_LOOKBACK_DAYS)).date().isoformat()

        async with self._create_client() as client:
            scheduled = await self._safe_get(
                client,
                result,
                "/users/me/meetings",
                credential,
                operation="list_meetings",
                params={"type": "scheduled", "page_size": 30},
            )
            for item in (scheduled or {}).get("meetings") or []:
                try:
                    result.meetings.append(self._normalize_scheduled(item))
                except (KeyError, TypeError, ValueError) as e:
                    skip_malformed(self.name, "meeting", item, e)

            recordings = await self._safe_get(
                client,
                result,
                "/users/me/recordings",
                credential,
                operation="list_recordings",
                params={"from": since, "page_size": 30},
            )
            for item in (recordings or {}).get("meetings") or []:
                try:
                    meeting = self._normalize_recording(item)
                except (KeyError, TypeError, ValueError) as e:
                    skip_malformed(self.name, "recording", item, e)
                    continue
                download_url = _transcript_url(item)
                if download_url:
                    meeting.transcript = await self._download_transcript(
                        client, result, download_url, credential
                    )
                result.meetings.append(meeting)

        logger.info("Zoom meetings normalized", tenant_id=tenant_id, meeting_count=len(result.meetings))
        return result

    async def _download_transcript(
        self, client: httpx.AsyncClient, result: SyncResult, url: str, credential: Credential
    ) -> str | None:
        try:
            response = await client.get(url, headers=self._get_auth_headers(credential))
        except httpx.RequestError as e:
            result.add_error("download_transcript", e)
            return None
        if response.status_code in (401, 403):
            raise ProviderAuthError("zoom authorization expired. Please reconnect", self.name)
        if not response.is_success:
            result.add_error("download_transcript", ProviderError(f"status {response.status_code}"))
            return None
        return clean_vtt(response.text) or None

    def _normalize_scheduled(self, item: dict[str, Any]) -> NormalizedMeeting:
        start = parse_datetime(item.get("start_time"))
        duration = int(item.get("duration") or 0)
        return NormalizedMeeting(
            calendar_event_id=f"zoom_{item['id']}",
            title=item.get("topic") or "Zoom meeting",
            source=self.name,
            start_time=start,
            end_time=start + timedelta(minutes=duration) if start else None,
            description=item.get("agenda"),
            has_conference_link=True,
            meeting_url=item.get("join_url"),
        )

    def _normalize_recording(self, item: dict[str, Any]) -> NormalizedMeeting:
        start = parse_datetime(item.get("start_time"))
        duration = int(item.get("duration") or 0)
        return NormalizedMeeting(
            calendar_event_id=f"zoom_recording_{item['uuid']}",
            title=item.get("topic") or "Zoom recording",
            source=self.name,
            start_time=start,
            end_time=start + timedelta(minutes=duration) if start else None,
            has_conference_link=True,
            meeting_url=item.get("share_url"),
        )


def _transcript_url(item: dict[str, Any]) -> str | None:
    for recording_file in item.get("recording_files") or []:
        if isinstance(recording_file, dict) and recording_file.get("file_type") == "TRANSCRIPT":
            return recording_file.get("download_url")
    return None

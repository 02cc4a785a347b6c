from datetime import UTC, datetime, timedelta

from centri.features.integrations.domain.models import Credential, SyncResult
from centri.features.integrations.providers.google_base import GoogleAdapter

DRIVE_API_BASE_URL = "https://www.googleapis.com/drive/v3"
RECENT_DAYS = 30
MAX_FILES = 20


class GoogleDriveAdapter(GoogleAdapter):
    """Recently modified Drive files, surfaced as custom data only."""

    name = "google_drive"
    api_base_url = DRIVE_API_BASE_URL
    scopes = ["https://www.googleapis.com/auth/drive.metadata.readonly"]

    async def sync_data(self, tenant_id: str, credential: Credential) -> SyncResult:
        result = SyncResult()
        since = (datetime.now(UTC) - timedelta(days=RECENT_DAYS)).strftime("%Y-%m-%dT%H:%M:%S")

        async with self._create_client() as client:
            data = await self._safe_get(
                client,
                result,
                "/files",
                credential,
                operation="list_files",
                params={
                    "q": f"modifiedTime > '{since}' and trashed = false",
                    "orderBy": "modifiedTime desc",
                    "pageSize": MAX_FILES,
                    "fields": "files(id,name,mimeType,modifiedTime,webViewLink)",
                },
            )

        files = []
        for item in (data or {}).get("files") or []:
            if isinstance(item, dict) and item.get("id"):
                files.append(
                    {
                        "id": item["id"],
                        "name": item.get("name"),
                        "mime_type": item.get("mimeType"),
                        "modified_time": item.get("modifiedTime"),
                        "url": item.get("webViewLink"),
                    }
                )
        result.custom_data["recent_files"] = files
        return result

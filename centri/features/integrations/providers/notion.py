from typing import Any

import httpx

from centri.features.integrations.domain.models import (
    Credential,
    NormalizedTeamMember,
    SyncResult,
)
from centri.features.integrations.providers.base import (
    ProviderAdapter,
    ProviderAuthError,
    ProviderTransientError,
    skip_malformed,
)

NOTION_API_BASE_URL = "https://api.notion.com/v1"
NOTION_VERSION = "2022-06-28"


class NotionAdapter(ProviderAdapter):
    name = "notion"
    auth_url = f"{NOTION_API_BASE_URL}/oauth/authorize"
    token_url = f"{NOTION_API_BASE_URL}/oauth/token"
    api_base_url = NOTION_API_BASE_URL
    client_id_setting = "NOTION_CLIENT_ID"
    client_secret_setting = "NOTION_CLIENT_SECRET"
    extra_auth_params = {"owner": "user"}

    def _get_auth_headers(self, credential: Credential) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {credential.access_token}",
            "Notion-Version": NOTION_VERSION,
            "Accept": "application/json",
        }

    async def _token_request(self, form: dict[str, str]) -> dict[str, Any]:
        # Notion wants client credentials as HTTP Basic auth and a JSON body
        async with self._create_client() as client:
            try:
                response = await client.post(
                    self.token_url,
                    json=form,
                    auth=httpx.BasicAuth(self.client_id, self.client_secret),
                    headers={"Notion-Version": NOTION_VERSION},
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

        async with self._create_client() as client:
            data = await self._safe_get(
                client, result, "/users", credential, operation="list_users", params={"page_size": 100}
            )

        for user in (data or {}).get("results") or []:
            try:
                if user.get("type") != "person":
                    continue
                result.team_members.append(
                    NormalizedTeamMember(
                        external_id=f"notion_{user['id']}",
                        name=user.get("name") or user["id"],
                        source=self.name,
                        email=(user.get("person") or {}).get("email"),
                        avatar_url=user.get("avatar_url"),
                    )
                )
            except (KeyError, TypeError, AttributeError) as e:
                skip_malformed(self.name, "user", user, e)

        result.custom_data["workspace"] = {
            "id": credential.extra.get("workspace_id"),
            "name": credential.extra.get("workspace_name"),
        }
        return result

from centri.features.integrations.domain.models import (
    Credential,
    NormalizedTeamMember,
    SyncResult,
)
from centri.features.integrations.providers.base import ProviderAdapter

CLICKUP_API_BASE_URL = "https://api.clickup.com/api/v2"


class ClickUpAdapter(ProviderAdapter):
    name = "clickup"
    auth_url = "https://app.clickup.com/api"
    token_url = f"{CLICKUP_API_BASE_URL}/oauth/token"
    api_base_url = CLICKUP_API_BASE_URL
    client_id_setting = "CLICKUP_CLIENT_ID"
    client_secret_setting = "CLICKUP_CLIENT_SECRET"

    def _get_auth_headers(self, credential: Credential) -> dict[str, str]:
        # ClickUp expects the raw token, no Bearer prefix
        return {"Authorization": credential.access_token, "Accept": "application/json"}

    async def sync_data(self, tenant_id: str, credential: Credential) -> SyncResult:
        result = SyncResult()

        async with self._create_client() as client:
            user_data = await self._safe_get(client, result, "/user", credential, operation="get_user")
            teams_data = await self._safe_get(client, result, "/team", credential, operation="list_teams")

        user = (user_data or {}).get("user") or {}
        if user.get("id"):
            result.team_members.append(
                NormalizedTeamMember(
                    external_id=f"clickup_{user['id']}",
                    name=user.get("username") or user.get("email") or str(user["id"]),
                    source=self.name,
                    email=user.get("email"),
                    avatar_url=user.get("profilePicture"),
                )
            )

        result.custom_data["teams"] = [
            {"id": team.get("id"), "name": team.get("name")}
            for team in (teams_data or {}).get("teams") or []
            if isinstance(team, dict)
        ]
        return result

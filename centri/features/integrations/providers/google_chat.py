from centri.features.integrations.domain.models import (
    Credential,
    NormalizedTeamMember,
    SyncResult,
)
from centri.features.integrations.providers.base import skip_malformed
from centri.features.integrations.providers.google_base import GoogleAdapter
from centri.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

CHAT_API_BASE_URL = "https://chat.googleapis.com/v1"
MAX_SPACES = 5


class GoogleChatAdapter(GoogleAdapter):
    """Discovers teammates from the members of the user's first few Chat spaces."""

    name = "google_chat"
    api_base_url = CHAT_API_BASE_URL
    scopes = [
        "https://www.googleapis.com/auth/chat.spaces.readonly",
        "https://www.googleapis.com/auth/chat.memberships.readonly",
    ]

    async def sync_data(self, tenant_id: str, credential: Credential) -> SyncResult:
        result = SyncResult()
        members: dict[str, NormalizedTeamMember] = {}

        async with self._create_client() as client:
            spaces_data = await self._safe_get(
                client,
                result,
                "/spaces",
                credential,
                operation="list_spaces",
                params={"pageSize": MAX_SPACES},
            )
            spaces = (spaces_data or {}).get("spaces") or []
            result.custom_data["space_count"] = len(spaces)

            for space in spaces[:MAX_SPACES]:
                if not isinstance(space, dict) or not space.get("name"):
                    continue
                data = await self._safe_get(
                    client,
                    result,
                    f"/{space['name']}/members",
                    credential,
                    operation="list_members",
                )
                for membership in (data or {}).get("memberships") or []:
                    try:
                        member = membership["member"]
                        if member.get("type") != "HUMAN":
                            continue
                        external_id = member["name"]
                        members[external_id] = NormalizedTeamMember(
                            external_id=external_id,
                            name=member.get("displayName") or external_id,
                            source=self.name,
                        )
                    except (KeyError, TypeError, AttributeError) as e:
                        skip_malformed(self.name, "membership", membership, e)

        result.team_members = list(members.values())
        logger.info(
            "Google Chat members normalized",
            tenant_id=tenant_id,
            member_count=len(result.team_members),
        )
        return result

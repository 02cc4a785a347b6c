from datetime import UTC, datetime, timedelta
from typing import Any

from centri.features.integrations.domain.models import (
    Credential,
    NormalizedTask,
    NormalizedTeamMember,
    SyncResult,
)
from centri.features.integrations.providers.base import ProviderAdapter, skip_malformed
from centri.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

GITHUB_API_BASE_URL = "https://api.github.com"
MERGED_PR_LOOKBACK_DAYS = 7
RECEIVED_EVENTS_PAGE_SIZE = 20


class GitHubAdapter(ProviderAdapter):
    """Code hosting: the user as a team member and recently merged PRs as done tasks."""

    name = "github"
    auth_url = "https://github.com/login/oauth/authorize"
    token_url = "https://github.com/login/oauth/access_token"
    api_base_url = GITHUB_API_BASE_URL
    scopes = ["read:user", "user:email", "repo"]
    client_id_setting = "GITHUB_CLIENT_ID"
    client_secret_setting = "GITHUB_CLIENT_SECRET"
    supports_refresh = True

    def _get_auth_headers(self, credential: Credential) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {credential.access_token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }

    async def sync_data(self, tenant_id: str, credential: Credential) -> SyncResult:
        result = SyncResult()
        since = (datetime.now(UTC) - timedelta(days=MERGED_PR_LOOKBACK_DAYS)).date().isoformat()

        async with self._create_client() as client:
            user = await self._safe_get(client, result, "/user", credential, operation="get_user")
            login = (user or {}).get("login")
            if login:
                result.team_members.append(
                    NormalizedTeamMember(
                        external_id=str(user.get("id") or login),
                        name=user.get("name") or login,
                        source=self.name,
                        email=user.get("email"),
                        avatar_url=user.get("avatar_url"),
                    )
                )
                search = await self._safe_get(
                    client,
                    result,
                    "/search/issues",
                    credential,
                    operation="search_merged_prs",
                    params={
                        "q": f"is:pr is:merged author:{login} merged:>={since}",
                        "per_page": 50,
                    },
                )
                result.tasks = self._normalize_pull_requests((search or {}).get("items") or [], login)

        logger.info(
            "GitHub data normalized",
            tenant_id=tenant_id,
            task_count=len(result.tasks),
        )
        return result

    def _normalize_pull_requests(self, items: list[Any], login: str) -> list[NormalizedTask]:
        tasks = []
        for pr in items:
            try:
                tasks.append(
                    NormalizedTask(
                        external_id=f"github_pr_{pr['id']}",
                        title=pr["title"],
                        source=self.name,
                        status="Done",
                        assignee=login,
                        priority="High",
                        url=pr.get("html_url"),
                    )
                )
            except (KeyError, TypeError) as e:
                skip_malformed(self.name, "pull_request", pr, e)
        return tasks

    async def fetch_received_events(self, credential: Credential) -> list[dict[str, Any]]:
        """Activity feed the user receives (pushes and PRs on watched repos)."""
        async with self._create_client() as client:
            user = await self._get(client, "/user", credential, operation="get_user")
            login = user.get("login")
            if not login:
                return []
            events = await self._get(
                client,
                f"/users/{login}/received_events",
                credential,
                operation="received_events",
                params={"per_page": RECEIVED_EVENTS_PAGE_SIZE},
            )
        return [e for e in events if isinstance(e, dict)] if isinstance(events, list) else []

from typing import Any

from centri.features.integrations.domain.models import (
    Credential,
    NormalizedTask,
    SyncResult,
    parse_datetime,
)
from centri.features.integrations.providers.base import ProviderAdapter, skip_malformed
from centri.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

ATLASSIAN_API_BASE_URL = "https://api.atlassian.com"
ASSIGNED_JQL = "assignee = currentUser() ORDER BY duedate ASC"
ISSUE_FIELDS = "summary,status,assignee,duedate,priority,issuelinks"
MAX_ISSUES = 50


class JiraAdapter(ProviderAdapter):
    """Project tracker: issues assigned to the user become tasks."""

    name = "jira"
    auth_url = "https://auth.atlassian.com/authorize"
    token_url = "https://auth.atlassian.com/oauth/token"
    api_base_url = ATLASSIAN_API_BASE_URL
    scopes = ["read:jira-work", "read:jira-user"]
    client_id_setting = "JIRA_CLIENT_ID"
    client_secret_setting = "JIRA_CLIENT_SECRET"
    extra_auth_params = {"audience": "api.atlassian.com", "prompt": "consent"}

    async def sync_data(self, tenant_id: str, credential: Credential) -> SyncResult:
        result = SyncResult()

        async with self._create_client() as client:
            resources = await self._safe_get(
                client,
                result,
                "/oauth/token/accessible-resources",
                credential,
                operation="accessible_resources",
            )
            sites = [r for r in resources if isinstance(r, dict)] if isinstance(resources, list) else []
            if not sites:
                logger.info("No accessible Jira sites", tenant_id=tenant_id)
                return result

            site = sites[0]
            cloud_id = site.get("id")
            result.custom_data["site"] = {"cloud_id": cloud_id, "url": site.get("url")}

            search = await self._safe_get(
                client,
                result,
                f"/ex/jira/{cloud_id}/rest/api/3/search",
                credential,
                operation="search_issues",
                params={"jql": ASSIGNED_JQL, "fields": ISSUE_FIELDS, "maxResults": MAX_ISSUES},
            )

        issues = search.get("issues") if isinstance(search, dict) else None
        for issue in issues if isinstance(issues, list) else []:
            try:
                result.tasks.append(self._normalize_issue(issue, site.get("url")))
            except (KeyError, TypeError, AttributeError) as e:
                skip_malformed(self.name, "issue", issue, e)

        logger.info("Jira issues normalized", tenant_id=tenant_id, task_count=len(result.tasks))
        return result

    def _normalize_issue(self, issue: dict[str, Any], site_url: str | None) -> NormalizedTask:
        fields = issue["fields"]
        assignee = fields.get("assignee") or {}
        priority = fields.get("priority") or {}
        return NormalizedTask(
            external_id=f"jira_{issue['id']}",
            title=fields["summary"],
            source=self.name,
            status=(fields.get("status") or {}).get("name"),
            assignee=assignee.get("displayName"),
            due_date=parse_datetime(fields.get("duedate")),
            priority=priority.get("name"),
            is_blocked=_is_blocked(fields.get("issuelinks") or []),
            url=f"{site_url}/browse/{issue['key']}" if site_url and issue.get("key") else None,
        )


def _is_blocked(links: list[Any]) -> bool:
    for link in links:
        if not isinstance(link, dict) or "inwardIssue" not in link:
            continue
        if (link.get("type") or {}).get("inward") == "is blocked by":
            return True
    return False

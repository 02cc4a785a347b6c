from typing import Any

from centri.features.integrations.domain.models import Credential, parse_datetime
from centri.features.integrations.providers.base import skip_malformed
from centri.features.integrations.providers.github import GitHubAdapter
from centri.features.updates.collectors.base import UpdateCollector
from centri.features.updates.domain.models import IMPORTANT, INFO, URGENT, UpdateCandidate

DEFAULT_BRANCHES = {"main", "master"}


class CodeHostingCollector(UpdateCollector):
    """Push and pull-request lifecycle events from GitHub."""

    source = "github"
    provider = "github"

    def __init__(self, adapter: GitHubAdapter):
        self.adapter = adapter

    async def collect(self, tenant_id: str, credential: Credential | None) -> list[UpdateCandidate]:
        events = await self.adapter.fetch_received_events(credential)
        candidates = []
        for event in events:
            try:
                candidate = event_to_candidate(event)
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                skip_malformed("github", "event", event, e)
                continue
            if candidate:
                candidates.append(candidate)
        return candidates


def event_to_candidate(event: dict[str, Any]) -> UpdateCandidate | None:
    event_type = event.get("type")
    payload = event.get("payload") or {}
    repo = event["repo"]["name"]
    occurred_at = parse_datetime(event.get("created_at"))
    if occurred_at is None:
        raise ValueError("event has no created_at")

    if event_type == "PushEvent":
        branch = payload["ref"].replace("refs/heads/", "")
        commits = payload.get("commits") or []
        return UpdateCandidate(
            source="github",
            type="github_push",
            severity=URGENT if branch in DEFAULT_BRANCHES else INFO,
            title=f"Push to {branch} in {repo}",
            body=(commits[0].get("message") if commits else None) or "New commits",
            occurred_at=occurred_at,
            external_id=str(event["id"]),
            url=f"https://github.com/{repo}/commits/{branch}",
            metadata={"repo": repo},
        )

    action = payload.get("action")
    if event_type == "PullRequestEvent" and action in ("opened", "closed"):
        pr = payload["pull_request"]
        severity = IMPORTANT if action == "opened" else INFO
        if pr.get("merged") and (pr.get("base") or {}).get("ref") in DEFAULT_BRANCHES:
            severity = URGENT
        return UpdateCandidate(
            source="github",
            type="github_pr",
            severity=severity,
            title=f"PR {action}: {pr.get('title')}",
            body=f"Repo: {repo} by {(event.get('actor') or {}).get('login')}",
            occurred_at=occurred_at,
            external_id=str(event["id"]),
            url=pr.get("html_url"),
            metadata={"repo": repo, "action": action},
        )

    return None

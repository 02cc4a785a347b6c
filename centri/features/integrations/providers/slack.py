"""
Slack adapter.

Slack's Web API answers HTTP 200 with {"ok": false, "error": ...} for most
failures, so the envelope is checked before the usual status handling.
"""

from dataclasses import dataclass, field
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
    ProviderError,
    ProviderTransientError,
    skip_malformed,
)
from centri.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

SLACK_API_BASE_URL = "https://slack.com/api"
SLACK_AUTH_ERRORS = {"invalid_auth", "not_authed", "token_revoked", "token_expired", "account_inactive"}
SLACK_TRANSIENT_ERRORS = {"ratelimited", "internal_error", "fatal_error", "service_unavailable"}


@dataclass(slots=True)
class ChannelMessages:
    """Recent messages across the first few channels, plus why some were unreadable."""

    channels: list[dict[str, Any]] = field(default_factory=list)
    messages: list[dict[str, Any]] = field(default_factory=list)
    not_in_channel_count: int = 0
    errors: list[str] = field(default_factory=list)


class SlackAdapter(ProviderAdapter):
    name = "slack"
    auth_url = "https://slack.com/oauth/v2/authorize"
    token_url = f"{SLACK_API_BASE_URL}/oauth.v2.access"
    api_base_url = SLACK_API_BASE_URL
    scopes = ["channels:read", "channels:history", "users:read", "users:read.email"]
    scope_separator = ","
    client_id_setting = "SLACK_CLIENT_ID"
    client_secret_setting = "SLACK_CLIENT_SECRET"
    supports_refresh = True

    async def sync_data(self, tenant_id: str, credential: Credential) -> SyncResult:
        result = SyncResult()

        async with self._create_client() as client:
            users = await self._safe_get(
                client, result, "/users.list", credential, operation="users.list"
            )
            channels = await self._safe_get(
                client,
                result,
                "/conversations.list",
                credential,
                operation="conversations.list",
                params={"types": "public_channel", "exclude_archived": "true", "limit": 100},
            )

        for member in (users or {}).get("members") or []:
            try:
                if member.get("is_bot") or member.get("deleted") or member["id"] == "USLACKBOT":
                    continue
                profile = member.get("profile") or {}
                result.team_members.append(
                    NormalizedTeamMember(
                        external_id=member["id"],
                        name=member.get("real_name") or profile.get("real_name") or member["name"],
                        source=self.name,
                        email=profile.get("email"),
                        avatar_url=profile.get("image_192") or profile.get("image_72"),
                        role=profile.get("title") or None,
                    )
                )
            except (KeyError, TypeError, AttributeError) as e:
                skip_malformed(self.name, "user", member, e)

        result.custom_data["channels"] = [
            {"id": ch.get("id"), "name": ch.get("name"), "is_member": bool(ch.get("is_member"))}
            for ch in (channels or {}).get("channels") or []
            if isinstance(ch, dict) and ch.get("id")
        ]
        logger.info(
            "Slack directory normalized",
            tenant_id=tenant_id,
            member_count=len(result.team_members),
            channel_count=len(result.custom_data["channels"]),
        )
        return result

    async def fetch_channel_messages(
        self, credential: Credential, channel_limit: int, per_channel: int
    ) -> ChannelMessages:
        """Latest messages from the first channel_limit channels."""
        collected = ChannelMessages()
        async with self._create_client() as client:
            listing = await self._get(
                client,
                "/conversations.list",
                credential,
                operation="conversations.list",
                params={"types": "public_channel", "exclude_archived": "true", "limit": channel_limit},
            )
            collected.channels = [
                ch for ch in (listing.get("channels") or []) if isinstance(ch, dict) and ch.get("id")
            ][:channel_limit]

            for channel in collected.channels:
                try:
                    history = await self._get(
                        client,
                        "/conversations.history",
                        credential,
                        operation="conversations.history",
                        params={"channel": channel["id"], "limit": per_channel},
                    )
                except ProviderAuthError:
                    raise
                except ProviderError as e:
                    if e.response_data.get("error") == "not_in_channel":
                        collected.not_in_channel_count += 1
                    else:
                        collected.errors.append(f"{channel['id']}: {e}")
                    continue
                for message in history.get("messages") or []:
                    if isinstance(message, dict):
                        collected.messages.append({**message, "_channel": channel})
        return collected

    def _handle_api_response(self, response: httpx.Response, operation: str) -> Any:
        data = super()._handle_api_response(response, operation)
        if not isinstance(data, dict) or data.get("ok", True):
            return data

        error = data.get("error", "unknown_error")
        if error in SLACK_AUTH_ERRORS:
            raise ProviderAuthError(f"slack authorization expired ({error}). Please reconnect", self.name)
        if error in SLACK_TRANSIENT_ERRORS:
            raise ProviderTransientError(
                f"slack {operation} temporarily unavailable ({error})",
                self.name,
                status_code=response.status_code,
                response_data=data,
            )
        raise ProviderError(
            f"slack {operation} failed ({error})",
            self.name,
            status_code=response.status_code,
            recoverable=False,
            response_data=data,
        )

    def _credential_from_token_response(self, data: dict[str, Any]) -> Credential:
        # User-token installs nest the token under authed_user
        authed_user = data.get("authed_user") or {}
        if not data.get("access_token") and authed_user.get("access_token"):
            data = {**authed_user, "team": data.get("team")}
        return super()._credential_from_token_response(data)

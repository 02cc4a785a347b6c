"""
Gmail adapter.

Lists recent messages and fetches their metadata headers one by one; the
message bodies are never downloaded.
"""

from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from typing import Any

import httpx

from centri.features.integrations.domain.models import Credential, NormalizedEmail, SyncResult
from centri.features.integrations.providers.base import skip_malformed
from centri.features.integrations.providers.google_base import GoogleAdapter
from centri.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

GMAIL_API_BASE_URL = "https://gmail.googleapis.com/gmail/v1/users/me"
METADATA_HEADERS = ["Subject", "From", "Date", "List-Unsubscribe"]


class GmailAdapter(GoogleAdapter):
    name = "gmail"
    api_base_url = GMAIL_API_BASE_URL
    scopes = [
        "openid",
        "email",
        "https://www.googleapis.com/auth/gmail.readonly",
    ]

    async def sync_data(self, tenant_id: str, credential: Credential) -> SyncResult:
        result = SyncResult()
        query = f"in:inbox newer_than:{self.config.MAIL_LOOKBACK_DAYS}d"
        async with self._create_client() as client:
            result.emails = await self._fetch(
                client, result, credential, query, self.config.MAIL_MAX_MESSAGES
            )
        logger.info("Gmail messages normalized", tenant_id=tenant_id, email_count=len(result.emails))
        return result

    async def fetch_emails(
        self, credential: Credential, lookback_days: int, max_messages: int
    ) -> tuple[list[NormalizedEmail], list[str]]:
        """
        Recent messages for the update feed.

        Returns:
            (emails, errors) where errors lists soft per-section failures
        """
        result = SyncResult()
        async with self._create_client() as client:
            emails = await self._fetch(
                client, result, credential, f"newer_than:{lookback_days}d", max_messages
            )
        return emails, result.errors

    async def _fetch(
        self,
        client: httpx.AsyncClient,
        result: SyncResult,
        credential: Credential,
        query: str,
        max_messages: int,
    ) -> list[NormalizedEmail]:
        listing = await self._safe_get(
            client,
            result,
            "/messages",
            credential,
            operation="list_messages",
            params={"q": query, "maxResults": max_messages},
        )
        if not isinstance(listing, dict):
            return []

        emails = []
        for ref in listing.get("messages") or []:
            if not isinstance(ref, dict) or not ref.get("id"):
                continue
            detail = await self._safe_get(
                client,
                result,
                f"/messages/{ref['id']}",
                credential,
                operation="get_message",
                params={"format": "metadata", "metadataHeaders": METADATA_HEADERS},
            )
            if not isinstance(detail, dict):
                continue
            try:
                emails.append(self._normalize_message(detail))
            except (KeyError, TypeError, ValueError) as e:
                skip_malformed(self.name, "message", detail, e)
        return emails

    def _normalize_message(self, message: dict[str, Any]) -> NormalizedEmail:
        headers = {
            h["name"].lower(): h.get("value", "")
            for h in (message.get("payload") or {}).get("headers") or []
            if isinstance(h, dict) and h.get("name")
        }
        return NormalizedEmail(
            message_id=message["id"],
            thread_id=message.get("threadId"),
            subject=headers.get("subject") or "(No subject)",
            sender=headers.get("from", ""),
            received_at=_received_at(message, headers.get("date")),
            snippet=message.get("snippet") or "",
            labels=list(message.get("labelIds") or []),
            has_list_unsubscribe="list-unsubscribe" in headers,
        )


def _received_at(message: dict[str, Any], date_header: str | None) -> datetime:
    internal = message.get("internalDate")
    if internal:
        return datetime.fromtimestamp(int(internal) / 1000, tz=UTC)
    if date_header:
        try:
            parsed = parsedate_to_datetime(date_header)
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
        except (TypeError, ValueError):
            pass
    return datetime.now(UTC)

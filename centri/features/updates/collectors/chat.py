import re
from datetime import UTC, datetime

from centri.config import Settings, settings
from centri.features.integrations.domain.models import Credential
from centri.features.integrations.providers.slack import SlackAdapter
from centri.features.updates.collectors.base import UpdateCollector
from centri.features.updates.domain.models import (
    IMPORTANT,
    INFO,
    TYPE_SYSTEM_ALERT,
    URGENT,
    UpdateCandidate,
)
from centri.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

URGENT_MESSAGE = re.compile(r"urgent|asap|blocker|p0|@channel|@here|<!channel>|<!here>", re.I)
SETUP_HINT_ID = "slack_setup_hint"


class ChatCollector(UpdateCollector):
    """Latest messages from a bounded set of Slack channels."""

    source = "slack"
    provider = "slack"

    def __init__(self, adapter: SlackAdapter, config: Settings | None = None):
        self.adapter = adapter
        self.config = config or settings

    async def collect(self, tenant_id: str, credential: Credential | None) -> list[UpdateCandidate]:
        collected = await self.adapter.fetch_channel_messages(
            credential,
            channel_limit=self.config.CHAT_CHANNEL_LIMIT,
            per_channel=self.config.CHAT_MESSAGES_PER_CHANNEL,
        )
        if collected.errors:
            logger.warning("Some Slack channels unreadable", tenant_id=tenant_id, errors=collected.errors)

        candidates = []
        for message in collected.messages:
            candidate = _message_to_candidate(message)
            if candidate:
                candidates.append(candidate)

        if not candidates and collected.not_in_channel_count > 0 and collected.channels:
            candidates.append(
                UpdateCandidate(
                    source=self.source,
                    type=TYPE_SYSTEM_ALERT,
                    severity=IMPORTANT,
                    title="Slack Connection: Action Required",
                    body=(
                        "Connected, but not a member of any channel yet. "
                        "Invite the app to your channels to see messages."
                    ),
                    occurred_at=datetime.now(UTC),
                    external_id=SETUP_HINT_ID,
                )
            )
        return candidates


def _message_to_candidate(message: dict) -> UpdateCandidate | None:
    text = message.get("text")
    if not text or message.get("subtype"):
        return None
    channel = message.get("_channel") or {}
    try:
        occurred_at = datetime.fromtimestamp(float(message["ts"]), tz=UTC)
    except (KeyError, TypeError, ValueError):
        return None

    return UpdateCandidate(
        source="slack",
        type="slack_message",
        severity=URGENT if URGENT_MESSAGE.search(text) else INFO,
        title=f"Message in #{channel.get('name', 'channel')}",
        body=text,
        occurred_at=occurred_at,
        external_id=f"{channel.get('id')}_{message['ts']}",
        url=f"https://slack.com/app_redirect?channel={channel.get('id')}",
        metadata={"channel": channel.get("name"), "sender": message.get("user")},
    )

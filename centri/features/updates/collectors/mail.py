from centri.config import Settings, settings
from centri.features.integrations.domain.models import Credential
from centri.features.integrations.providers.gmail import GmailAdapter
from centri.features.updates.collectors.base import CollectorError, UpdateCollector
from centri.features.updates.domain.email_rules import MAIL_SOURCE, email_to_candidate
from centri.features.updates.domain.models import UpdateCandidate
from centri.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class MailCollector(UpdateCollector):
    """Unread, human or urgent mail plus newsletters from the lookback window."""

    source = MAIL_SOURCE
    provider = "gmail"

    def __init__(self, adapter: GmailAdapter, config: Settings | None = None):
        self.adapter = adapter
        self.config = config or settings

    async def collect(self, tenant_id: str, credential: Credential | None) -> list[UpdateCandidate]:
        emails, errors = await self.adapter.fetch_emails(
            credential,
            lookback_days=self.config.MAIL_LOOKBACK_DAYS,
            max_messages=self.config.MAIL_MAX_MESSAGES,
        )
        if errors and not emails:
            raise CollectorError("; ".join(errors), self.source)
        if errors:
            logger.warning("Mail collected partially", tenant_id=tenant_id, errors=errors)

        candidates = []
        for email in emails:
            candidate = email_to_candidate(email)
            if candidate:
                candidates.append(candidate)
        return candidates

"""
Outbound notification for newly surfaced high-severity updates.

Delivery is delegated to an injected sender. The default sender only
writes a structured log line, which is enough for the worker's logs to
show what would have gone out.
"""

from collections.abc import Awaitable, Callable

from centri.features.updates.domain.models import SEVERITY_RANK, UpdateCandidate
from centri.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

DigestSender = Callable[[str, list[UpdateCandidate]], Awaitable[None]]


async def log_digest(tenant_id: str, items: list[UpdateCandidate]) -> None:
    logger.info(
        "Update digest ready",
        tenant_id=tenant_id,
        item_count=len(items),
        titles=[item.title for item in items[:10]],
    )


class NotificationService:
    def __init__(self, sender: DigestSender | None = None):
        self.sender = sender or log_digest

    async def notify_new_high_severity(self, tenant_id: str, items: list[UpdateCandidate]) -> int:
        """
        Send one digest covering `items`.

        Returns:
            Number of items notified; 0 when there was nothing to send or
            the sender failed
        """
        if not items:
            return 0

        ordered = sorted(items, key=lambda item: SEVERITY_RANK.get(item.severity, len(SEVERITY_RANK)))
        try:
            await self.sender(tenant_id, ordered)
        except Exception as e:
            logger.error(
                "Update digest delivery failed",
                tenant_id=tenant_id,
                item_count=len(items),
                error=str(e),
                error_type=type(e).__name__,
            )
            return 0

        logger.info("Update digest sent", tenant_id=tenant_id, item_count=len(items))
        return len(items)

"""
Update aggregator.

Pulls candidates from every collector, merges them into update_items and
notifies about high-severity items the tenant has not been told about
yet. Each source is isolated: one failing collector is reported in the
source checks and never stops the others.
"""

import asyncio
from collections.abc import Sequence
from datetime import UTC, datetime, time

from centri.config import Settings, settings
from centri.features.integrations.services.credential_service import (
    CredentialError,
    CredentialService,
)
from centri.features.updates.collectors.base import UpdateCollector
from centri.features.updates.domain.models import (
    CHECKED_EMPTY,
    CHECKED_OK,
    ERROR,
    NOT_CONNECTED,
    IngestResult,
    RefreshResult,
    SourceCheck,
    UpdateCandidate,
    UpdateItem,
)
from centri.features.updates.repository.update_repository import UpdateRepository
from centri.features.updates.services.notification_service import NotificationService
from centri.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class UpdateAggregatorService:
    def __init__(
        self,
        updates: UpdateRepository,
        credentials: CredentialService,
        collectors: Sequence[UpdateCollector],
        notifications: NotificationService | None = None,
        config: Settings | None = None,
    ):
        self.updates = updates
        self.credentials = credentials
        self.collectors = list(collectors)
        self.notifications = notifications or NotificationService()
        self.config = config or settings

    async def refresh_updates(self, tenant_id: str) -> RefreshResult:
        """
        Collect from all sources, ingest, and return the current feed.

        Never raises for a source failure; those show up as `error` checks.
        """
        outcomes = await asyncio.gather(
            *(self._collect_source(tenant_id, collector) for collector in self.collectors)
        )

        checks: list[SourceCheck] = []
        candidates: list[UpdateCandidate] = []
        for check, collected in outcomes:
            checks.append(check)
            candidates.extend(collected)

        ingest = await self.ingest(tenant_id, candidates)
        items = await self.list_feed(tenant_id)

        logger.info(
            "Updates refreshed",
            tenant_id=tenant_id,
            candidate_count=len(candidates),
            inserted=ingest.inserted,
            notified=ingest.notified,
            source_errors=[c.source for c in checks if c.status == ERROR],
        )
        return RefreshResult(
            items=items,
            source_checks=checks,
            last_refreshed_at=datetime.now(UTC),
            new_high_severity=ingest.notified,
        )

    async def _collect_source(
        self, tenant_id: str, collector: UpdateCollector
    ) -> tuple[SourceCheck, list[UpdateCandidate]]:
        source = collector.source
        credential = None
        if collector.provider is not None:
            try:
                credential = await self.credentials.get_valid_credential(tenant_id, collector.provider)
            except CredentialError as e:
                return SourceCheck(source=source, status=ERROR, error=str(e)), []
            except Exception as e:
                logger.error(
                    "Credential lookup failed for update source",
                    tenant_id=tenant_id,
                    source=source,
                    error=str(e),
                )
                return SourceCheck(source=source, status=ERROR, error=str(e)), []
            if credential is None:
                return SourceCheck(source=source, status=NOT_CONNECTED), []

        try:
            collected = await collector.collect(tenant_id, credential)
        except Exception as e:
            logger.warning(
                "Update source failed",
                tenant_id=tenant_id,
                source=source,
                error=str(e),
                error_type=type(e).__name__,
            )
            return SourceCheck(source=source, status=ERROR, error=str(e)), []

        status = CHECKED_OK if collected else CHECKED_EMPTY
        return SourceCheck(source=source, status=status, count=len(collected)), collected

    async def ingest(self, tenant_id: str, candidates: list[UpdateCandidate]) -> IngestResult:
        """
        Merge candidates into the feed, then notify what this merge raised.

        Every candidate is upserted first, which refreshes content and leaves
        read/dismissed flags alone. Only items this call created at, or
        escalated into, a notify severity go into the digest, so overlapping
        ingests for one tenant never notify the same item twice.
        """
        result = IngestResult()
        if not candidates:
            return result

        # Last one wins when a collector yields the same key twice
        unique = list({candidate.key: candidate for candidate in candidates}.values())
        notify_severities = list(self.config.NOTIFY_SEVERITIES)

        fresh: list[UpdateCandidate] = []
        for candidate in unique:
            outcome = await self.updates.upsert(tenant_id, candidate)
            result.upserted += 1
            if outcome.inserted:
                result.inserted += 1
            if outcome.raised_into(notify_severities, candidate.severity):
                fresh.append(candidate)

        result.notified = await self.notifications.notify_new_high_severity(tenant_id, fresh)
        return result

    async def list_feed(self, tenant_id: str, limit: int | None = None) -> list[UpdateItem]:
        return await self.updates.list_feed(tenant_id, limit or self.config.FEED_PAGE_SIZE)

    async def list_newsletters(self, tenant_id: str) -> list[UpdateItem]:
        start_of_today = datetime.combine(datetime.now(UTC).date(), time.min, tzinfo=UTC)
        return await self.updates.list_newsletters(tenant_id, start_of_today)

    async def mark_read(self, tenant_id: str, item_id: str) -> bool:
        return await self.updates.mark_read(tenant_id, item_id)

    async def dismiss(self, tenant_id: str, item_id: str) -> bool:
        return await self.updates.dismiss(tenant_id, item_id)

    async def dismiss_all(self, tenant_id: str) -> int:
        count = await self.updates.dismiss_all(tenant_id)
        logger.info("Updates dismissed", tenant_id=tenant_id, count=count)
        return count

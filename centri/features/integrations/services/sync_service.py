"""
Sync orchestrator.

One pass per tenant: every connected provider (or just the requested one)
is synced independently and concurrently, bounded by a semaphore and a
per-provider timeout. Failures are caught per provider and reported in
the returned SyncSummary; they never abort the other providers.

Within a provider, records are upserted one after another. The storage
upserts are atomic, so two overlapping syncs can't create duplicate rows;
the Redis lock only avoids doing the same work twice.
"""

import asyncio
import uuid
from datetime import UTC, datetime

from centri.config import Settings, settings
from centri.features.integrations.domain.models import (
    PROCESSED,
    PROCESSING,
    SYNC_FAILED,
    SYNC_PARTIAL,
    SYNC_SKIPPED,
    SYNC_SUCCESS,
    TASK,
    ClassificationResult,
    Credential,
    NormalizedMeeting,
    ProviderSyncResult,
    SyncResult,
    SyncSummary,
    UpsertOutcome,
)
from centri.features.integrations.providers.base import ProviderAdapter, ProviderAuthError
from centri.features.integrations.providers.registry import ProviderRegistry
from centri.features.integrations.repository.integration_repository import IntegrationRepository
from centri.features.integrations.repository.sync_repository import SyncRepository
from centri.features.integrations.services.classification_service import ClassificationService
from centri.features.integrations.services.credential_service import (
    CredentialService,
    ReconnectRequiredError,
)
from centri.features.integrations.services.meeting_analysis_service import MeetingAnalysisService
from centri.features.updates.domain.email_rules import email_to_candidate
from centri.features.updates.domain.models import INFO, UpdateCandidate
from centri.features.updates.services.aggregator_service import UpdateAggregatorService
from centri.infrastructure.observability.logging import get_logger
from centri.services.redis_client import FastRedisClient, fast_redis

logger = get_logger(__name__)

REASON_IN_PROGRESS = "sync_in_progress"
REASON_NOT_CONNECTED = "not_connected"
REASON_UNSUPPORTED = "unsupported_provider"


def lock_key(tenant_id: str, provider: str) -> str:
    return f"sync_lock:{tenant_id}:{provider}"


def scheduled_update(meeting: NormalizedMeeting, classification: ClassificationResult) -> UpdateCandidate:
    """Feed entry announcing a newly seen meeting or time block."""
    is_task = classification.type == TASK
    when = meeting.start_time.strftime("%a %d %b %H:%M UTC") if meeting.start_time else "Unscheduled"
    return UpdateCandidate(
        source=meeting.source,
        type="time_block_scheduled" if is_task else "meeting_scheduled",
        severity=INFO,
        title=f"{'Time block' if is_task else 'New meeting'}: {meeting.title}",
        body=f"{when} • {len(meeting.attendees)} attendees",
        occurred_at=meeting.start_time or datetime.now(UTC),
        external_id=f"meeting_created:{meeting.calendar_event_id}",
        url=meeting.meeting_url,
        metadata={
            "calendar_event_id": meeting.calendar_event_id,
            "classification": classification.type,
        },
    )


class SyncService:
    def __init__(
        self,
        integrations: IntegrationRepository,
        records: SyncRepository,
        credentials: CredentialService,
        registry: ProviderRegistry,
        classifier: ClassificationService,
        aggregator: UpdateAggregatorService,
        analysis: MeetingAnalysisService | None = None,
        locks: FastRedisClient | None = None,
        config: Settings | None = None,
    ):
        self.integrations = integrations
        self.records = records
        self.credentials = credentials
        self.registry = registry
        self.classifier = classifier
        self.aggregator = aggregator
        self.analysis = analysis
        self.locks = locks or fast_redis
        self.config = config or settings

    async def sync(self, tenant_id: str, provider: str | None = None) -> SyncSummary:
        """
        Sync all connected providers for a tenant, or only `provider`.

        Returns:
            SyncSummary with one ProviderSyncResult per provider

        Raises:
            UnknownProviderError: `provider` is not a registered provider name
        """
        if provider is not None:
            self.registry.get(provider)

        connected = [record.provider for record in await self.integrations.list_for_user(tenant_id)]
        if provider is not None:
            if provider not in connected:
                return SyncSummary(
                    tenant_id=tenant_id,
                    results=[
                        ProviderSyncResult(
                            provider=provider, status=SYNC_SKIPPED, reason=REASON_NOT_CONNECTED
                        )
                    ],
                )
            connected = [provider]

        semaphore = asyncio.Semaphore(self.config.SYNC_MAX_CONCURRENT_PROVIDERS)

        async def run(name: str) -> ProviderSyncResult:
            async with semaphore:
                return await self._sync_provider(tenant_id, name)

        outcomes = await asyncio.gather(*(run(name) for name in connected), return_exceptions=True)

        results = []
        for name, outcome in zip(connected, outcomes, strict=True):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                logger.error(
                    "Provider sync crashed",
                    tenant_id=tenant_id,
                    provider=name,
                    error=str(outcome),
                    error_type=type(outcome).__name__,
                )
                outcome = ProviderSyncResult(provider=name, status=SYNC_FAILED, error=str(outcome))
            results.append(outcome)

        summary = SyncSummary(tenant_id=tenant_id, results=results)
        logger.info(
            "Tenant sync finished",
            tenant_id=tenant_id,
            success=summary.success,
            statuses={r.provider: r.status for r in results},
        )
        return summary

    async def _sync_provider(self, tenant_id: str, provider: str) -> ProviderSyncResult:
        if not self.registry.has(provider):
            logger.warning("Skipping unsupported provider", tenant_id=tenant_id, provider=provider)
            return ProviderSyncResult(provider=provider, status=SYNC_SKIPPED, reason=REASON_UNSUPPORTED)

        key = lock_key(tenant_id, provider)
        token = uuid.uuid4().hex
        acquired = await self.locks.acquire_lock(key, token, self.config.SYNC_LOCK_TTL_SECONDS)
        if acquired is False:
            logger.info("Provider sync already running", tenant_id=tenant_id, provider=provider)
            return ProviderSyncResult(provider=provider, status=SYNC_SKIPPED, reason=REASON_IN_PROGRESS)

        try:
            return await self._run_provider(tenant_id, provider)
        finally:
            if acquired:
                await self.locks.release_lock(key, token)

    async def _run_provider(self, tenant_id: str, provider: str) -> ProviderSyncResult:
        run_id = await self.records.start_run(tenant_id, provider)
        log = logger.bind(tenant_id=tenant_id, provider=provider, sync_run_id=run_id)
        adapter = self.registry.get(provider)

        try:
            credential = await self.credentials.get_valid_credential(tenant_id, provider)
            if credential is None:
                raise ReconnectRequiredError("Integration has no stored credential", tenant_id, provider)
            result = await self._invoke_adapter(tenant_id, adapter, credential)
            counts, dropped = await self._persist(tenant_id, result)

        except ReconnectRequiredError as e:
            await self.credentials.mark_reconnect_required(tenant_id, provider, str(e))
            await self.records.finish_run(
                run_id, SYNC_FAILED, {"message": str(e), "reconnect_required": True}
            )
            log.warning("Provider sync needs reconnect", error=str(e))
            return ProviderSyncResult(
                provider=provider,
                status=SYNC_FAILED,
                sync_run_id=run_id,
                error=str(e),
                reconnect_required=True,
            )

        except TimeoutError:
            message = f"Provider sync timed out after {self.config.SYNC_PROVIDER_TIMEOUT_SECONDS}s"
            await self.records.finish_run(run_id, SYNC_FAILED, {"message": message})
            log.warning("Provider sync timed out")
            return ProviderSyncResult(
                provider=provider, status=SYNC_FAILED, sync_run_id=run_id, error=message
            )

        except Exception as e:
            await self.records.finish_run(
                run_id, SYNC_FAILED, {"message": str(e), "error_type": type(e).__name__}
            )
            log.error("Provider sync failed", error=str(e), error_type=type(e).__name__)
            return ProviderSyncResult(
                provider=provider, status=SYNC_FAILED, sync_run_id=run_id, error=str(e)
            )

        status = SYNC_PARTIAL if result.errors or dropped else SYNC_SUCCESS
        error = None
        if status == SYNC_PARTIAL:
            error = {"errors": result.errors, "dropped_records": dropped}
        await self.records.finish_run(run_id, status, error)
        await self.integrations.mark_synced(tenant_id, provider)

        log.info("Provider sync finished", status=status, **counts)
        return ProviderSyncResult(
            provider=provider,
            status=status,
            sync_run_id=run_id,
            counts=counts,
            error="; ".join(result.errors) if result.errors else None,
        )

    async def _invoke_adapter(
        self, tenant_id: str, adapter: ProviderAdapter, credential: Credential
    ) -> SyncResult:
        """
        Run the adapter under the provider timeout.

        A rejected credential is refreshed once and the call retried; a
        second rejection means the user has to reconnect.
        """
        timeout = self.config.SYNC_PROVIDER_TIMEOUT_SECONDS
        try:
            return await asyncio.wait_for(adapter.sync_data(tenant_id, credential), timeout)
        except ProviderAuthError as e:
            logger.info(
                "Provider rejected credential, refreshing",
                tenant_id=tenant_id,
                provider=adapter.name,
                status_code=e.status_code,
            )
            refreshed = await self.credentials.refresh_tokens(tenant_id, adapter.name, credential)

        try:
            return await asyncio.wait_for(adapter.sync_data(tenant_id, refreshed), timeout)
        except ProviderAuthError as e:
            raise ReconnectRequiredError(
                f"Credential rejected after refresh: {e}", tenant_id, adapter.name
            ) from e

    async def _persist(self, tenant_id: str, result: SyncResult) -> tuple[dict[str, int], int]:
        counts = {"meetings": 0, "tasks": 0, "team_members": 0, "emails": len(result.emails), "updates": 0}
        dropped = 0
        candidates: list[UpdateCandidate] = []

        for meeting in result.meetings:
            classification = await self.classifier.classify(meeting.context())
            needs_analysis = bool(meeting.transcript) and not meeting.summary
            outcome = await self.records.upsert_meeting(
                tenant_id, meeting, classification, PROCESSING if needs_analysis else PROCESSED
            )
            if outcome is None:
                dropped += 1
                continue
            counts["meetings"] += 1
            if outcome.inserted:
                candidates.append(scheduled_update(meeting, classification))
            if self.analysis and await self._claim_analysis(outcome, needs_analysis):
                self.analysis.schedule(tenant_id, outcome.id)

        for task in result.tasks:
            if await self.records.upsert_task(tenant_id, task) is None:
                dropped += 1
            else:
                counts["tasks"] += 1

        for member in result.team_members:
            if await self.records.upsert_team_member(tenant_id, member) is None:
                dropped += 1
            else:
                counts["team_members"] += 1

        for email in result.emails:
            candidate = email_to_candidate(email)
            if candidate:
                candidates.append(candidate)

        if candidates:
            ingest = await self.aggregator.ingest(tenant_id, candidates)
            counts["updates"] = ingest.upserted
        return counts, dropped

    async def _claim_analysis(self, outcome: UpsertOutcome, needs_analysis: bool) -> bool:
        # a new row was stored as `processing` already; an existing one may have
        # gained its transcript on this sync or be left over from a failed attempt
        if outcome.inserted:
            return needs_analysis
        return await self.records.claim_meeting_analysis(outcome.id)

"""
Periodic sync job.

Every SYNC_INTERVAL_MINUTES: list tenants with at least one integration,
then sync and refresh updates for each with bounded concurrency. A
failing tenant is logged and counted; it never stops the run.
"""

import asyncio
import time
from dataclasses import dataclass, field

from centri.config import Settings, settings
from centri.features.integrations.domain.models import SYNC_FAILED
from centri.features.integrations.repository.integration_repository import IntegrationRepository
from centri.infrastructure.observability.logging import get_logger
from centri.services.container import ServiceContainer

logger = get_logger(__name__)

MAX_CONCURRENT_TENANTS = 5


@dataclass(slots=True)
class SyncJobMetrics:
    tenants_processed: int = 0
    tenants_failed: int = 0
    providers_failed: int = 0
    duration_seconds: float = 0.0
    errors: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "job_run": "sync_all",
            "tenants_processed": self.tenants_processed,
            "tenants_failed": self.tenants_failed,
            "providers_failed": self.providers_failed,
            "duration_seconds": round(self.duration_seconds, 2),
            "errors_count": len(self.errors),
        }


class SyncJob:
    def __init__(
        self,
        services: ServiceContainer,
        integrations: IntegrationRepository | None = None,
        config: Settings | None = None,
        max_concurrent: int = MAX_CONCURRENT_TENANTS,
    ):
        self.services = services
        self.integrations = integrations or IntegrationRepository()
        self.config = config or settings
        self.max_concurrent = max_concurrent
        self.is_running = False

    async def run_once(self) -> dict:
        if self.is_running:
            logger.warning("Sync job already running, skipping this iteration")
            return {"skipped": True, "reason": "already_running"}

        self.is_running = True
        metrics = SyncJobMetrics()
        start = time.time()
        try:
            tenant_ids = await self.integrations.list_tenant_ids()
            logger.info("Starting sync job", tenant_count=len(tenant_ids))

            semaphore = asyncio.Semaphore(self.max_concurrent)

            async def run(tenant_id: str) -> None:
                async with semaphore:
                    await self._sync_tenant(tenant_id, metrics)

            await asyncio.gather(*(run(tenant_id) for tenant_id in tenant_ids))
        finally:
            self.is_running = False
            metrics.duration_seconds = time.time() - start

        result = metrics.to_dict()
        logger.info("Sync job completed", **result)
        return result

    async def _sync_tenant(self, tenant_id: str, metrics: SyncJobMetrics) -> None:
        try:
            summary = await self.services.sync.sync(tenant_id)
            metrics.providers_failed += sum(1 for r in summary.results if r.status == SYNC_FAILED)
            await self.services.aggregator.refresh_updates(tenant_id)
        except Exception as e:
            metrics.tenants_failed += 1
            metrics.errors.append({"tenant_id": tenant_id, "error": str(e)})
            logger.error(
                "Tenant sync failed",
                tenant_id=tenant_id,
                error=str(e),
                error_type=type(e).__name__,
            )
        finally:
            metrics.tenants_processed += 1


async def start_sync_scheduler(services: ServiceContainer, config: Settings | None = None) -> None:
    """Run the sync job forever at the configured interval."""
    config = config or settings
    job = SyncJob(services, config=config)
    interval_seconds = config.SYNC_INTERVAL_MINUTES * 60
    logger.info("Sync scheduler started", interval_minutes=config.SYNC_INTERVAL_MINUTES)

    while True:
        try:
            await job.run_once()
        except Exception as e:
            logger.error("Sync job run failed", error=str(e), error_type=type(e).__name__)
        await asyncio.sleep(interval_seconds)

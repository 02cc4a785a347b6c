"""
Background worker entrypoint.

    python -m centri.jobs.worker [sync_all|sync_once]

The job name falls back to WORKER_JOB, then to sync_all.
"""

import asyncio
import os
import sys
from collections.abc import Awaitable, Callable

from centri.config import settings
from centri.db.pool import db_pool
from centri.features.integrations.jobs.sync_job import SyncJob, start_sync_scheduler
from centri.infrastructure.observability.logging import get_logger, setup_logging
from centri.services.container import ServiceContainer, build_services
from centri.services.redis_client import fast_redis

logger = get_logger(__name__)

JobCoroutine = Callable[[ServiceContainer], Awaitable[object]]


async def _sync_once(services: ServiceContainer) -> dict:
    return await SyncJob(services).run_once()


JOB_REGISTRY: dict[str, JobCoroutine] = {
    "sync_all": start_sync_scheduler,
    "sync_once": _sync_once,
}


def _resolve_job_name() -> str:
    raw = sys.argv[1] if len(sys.argv) > 1 else os.getenv("WORKER_JOB", "sync_all")
    return raw.strip().lower()


async def run_worker(job_name: str | None = None) -> None:
    name = (job_name or _resolve_job_name()).strip().lower()
    job = JOB_REGISTRY.get(name)
    if job is None:
        raise ValueError(f"Unknown worker job '{name}'. Available jobs: {', '.join(sorted(JOB_REGISTRY))}")

    logger.info("Worker starting", job=name)
    await db_pool.initialize()
    try:
        await fast_redis.initialize()
    except RuntimeError as e:
        logger.warning("Redis unavailable, sync locks will fail open", error=str(e))

    services = build_services(settings)
    try:
        await job(services)
    finally:
        await services.analysis.drain()
        await fast_redis.close()
        await db_pool.close()
        logger.info("Worker stopped", job=name)


def main() -> None:
    setup_logging(log_level=settings.LOG_LEVEL)
    asyncio.run(run_worker(_resolve_job_name()))


if __name__ == "__main__":
    main()

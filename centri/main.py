"""
FastAPI application: resource lifecycle, service wiring and routers.
"""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from centri.config import settings
from centri.db.pool import db_pool
from centri.features.integrations.api.router import router as integrations_router
from centri.features.integrations.api.router import sync_router
from centri.features.updates.api.router import router as updates_router
from centri.infrastructure.observability.logging import get_logger, setup_logging
from centri.routes import health
from centri.services.container import build_services
from centri.services.redis_client import fast_redis

# logging must be configured before any router module logs
setup_logging(log_level=settings.LOG_LEVEL)
logger = get_logger(__name__)


async def _shutdown(steps, errors: list[str]) -> None:
    for label, close in steps:
        try:
            await close()
        except Exception as e:
            logger.error("Shutdown step failed", step=label, error=str(e))
            errors.append(f"{label}: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the pool and Redis, build the services container, and tear it all down in reverse."""

    logger.info("Application starting", environment=settings.environment, debug=settings.debug)
    opened: list[tuple[str, object]] = []

    try:
        await db_pool.initialize()
        opened.append(("database", db_pool.close))

        try:
            await fast_redis.initialize()
            opened.append(("redis", fast_redis.close))
        except RuntimeError as e:
            logger.warning("Redis unavailable, sync locks will fail open", error=str(e))

        app.state.services = build_services(settings)
    except Exception as e:
        logger.error("Startup failed", error=str(e), opened=[label for label, _ in opened])
        await _shutdown(reversed(opened), [])
        raise

    logger.info("Application ready", resources=[label for label, _ in opened])
    yield

    logger.info("Application shutting down")
    errors: list[str] = []
    # in-flight meeting analyses must finish writing before storage closes
    await _shutdown([("analysis", app.state.services.analysis.drain), *reversed(opened)], errors)

    if errors:
        logger.warning("Shutdown finished with errors", errors=errors)
    else:
        logger.info("Shutdown complete")


app = FastAPI(
    title="Centri Co-pilot",
    description="Integration sync and update feed for the executive co-pilot",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health.router)
app.include_router(sync_router)
app.include_router(integrations_router)
app.include_router(updates_router)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    logger.info(
        "Request handled",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round((time.perf_counter() - started) * 1000, 2),
    )
    return response


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)

"""
Process-wide PostgreSQL pool.

The API process and the sync worker each open exactly one pool at startup
and close it on shutdown; repositories borrow connections through
`db_pool.connection()` or the helpers in centri.db.helpers.
"""

import asyncio
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import psycopg
from psycopg import sql
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

from centri.config import settings
from centri.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

CLOSE_TIMEOUT_SECONDS = 30.0
SATURATED_PERCENT = 90
BUSY_PERCENT = 80


class DatabasePoolManager:
    """Lifecycle wrapper around a single AsyncConnectionPool."""

    def __init__(self):
        self.pool: AsyncConnectionPool | None = None
        self._initialized = False
        self._closed = False

    def _state_error(self) -> str | None:
        if self._closed:
            return "Pool is closed"
        if not self._initialized:
            return "Pool not initialized"
        return None

    async def initialize(self) -> None:
        if self._initialized:
            logger.warning("Pool initialize called twice, ignoring")
            return
        if self._closed:
            raise RuntimeError("Cannot reinitialize closed pool")

        options = settings.get_db_pool_config()
        logger.info("Opening database pool", min_size=options["min_size"], max_size=options["max_size"])

        self.pool = AsyncConnectionPool(
            conninfo=settings.DATABASE_URL,
            open=False,
            check=AsyncConnectionPool.check_connection,
            configure=self._prepare_session,
            **options,
        )
        try:
            await self.pool.open()
            await self.pool.wait()
            self._initialized = True
            await self._probe()
        except Exception as e:
            logger.error("Database pool failed to open", error=str(e))
            self._initialized = False
            await self._discard_pool()
            raise RuntimeError(f"Database pool initialization failed: {e}") from e

        logger.info("Database pool ready", timeout=options["timeout"])

    async def _discard_pool(self) -> None:
        pool, self.pool = self.pool, None
        if pool is None:
            return
        try:
            await pool.close()
        except Exception as close_error:
            logger.debug("Ignoring pool close error", error=str(close_error))

    async def _prepare_session(self, conn: psycopg.AsyncConnection) -> None:
        """Per-connection session settings: dict rows, autocommit, UTC, a statement cap."""
        conn.row_factory = dict_row
        await conn.set_autocommit(True)
        try:
            label = sql.Literal(f"centri-{settings.environment}")
            await conn.execute(sql.SQL("SET application_name = {}").format(label))
            await conn.execute("SET timezone = 'UTC'")
            await conn.execute("SET statement_timeout = '60s'")
        except psycopg.Error:
            logger.exception("Could not apply session settings")

    async def _probe(self) -> None:
        async with self.connection() as conn:
            cursor = await conn.execute("SELECT 1 AS ok")
            row = await cursor.fetchone()
        if not row or row.get("ok") != 1:
            raise RuntimeError("Database probe returned an unexpected row")

    async def close(self) -> None:
        if self._state_error():
            return

        logger.info("Closing database pool")
        try:
            if self.pool:
                await asyncio.wait_for(self.pool.close(), timeout=CLOSE_TIMEOUT_SECONDS)
        except TimeoutError:
            logger.warning("Database pool close timed out", timeout=CLOSE_TIMEOUT_SECONDS)
        except Exception as e:
            logger.error("Error closing database pool", error=str(e))
        finally:
            self._initialized = False
            self._closed = True

    @asynccontextmanager
    async def connection(self) -> AsyncGenerator[psycopg.AsyncConnection, None]:
        """
        Borrow a connection for the duration of the block:

            async with db_pool.connection() as conn:
                await conn.execute(...)
        """
        problem = self._state_error()
        if problem:
            raise RuntimeError(f"Database unavailable: {problem}")

        try:
            async with self.pool.connection() as conn:
                yield conn
        except Exception as e:
            logger.error("Database connection error", error=str(e), error_type=type(e).__name__)
            raise

    async def health_check(self) -> dict[str, Any]:
        """Probe round trip plus pool saturation, shaped for the /health route."""
        problem = self._state_error()
        if problem:
            return {"healthy": False, "error": problem, "service": "database_pool"}

        started = time.perf_counter()
        try:
            await self._probe()
        except Exception as e:
            logger.error("Database health probe failed", error=str(e))
            return {
                "healthy": False,
                "service": "database_pool",
                "error": str(e),
                "error_type": type(e).__name__,
            }
        elapsed_ms = (time.perf_counter() - started) * 1000

        stats = self.pool.get_stats()
        size = stats.get("pool_size", 0)
        idle = stats.get("pool_available", 0)
        in_use = round((size - idle) / size * 100, 2) if size else 0

        report: dict[str, Any] = {
            "healthy": in_use < SATURATED_PERCENT,
            "service": "database_pool",
            "connection_time_ms": round(elapsed_ms, 2),
            "pool_stats": {
                "pool_size": size,
                "pool_available": idle,
                "pool_utilization_percent": in_use,
                "requests_waiting": stats.get("requests_waiting", 0),
            },
        }
        if in_use > BUSY_PERCENT:
            report["warnings"] = [f"High pool utilization: {in_use:.1f}%"]
        return report


db_pool = DatabasePoolManager()


async def get_db_connection():
    """Async context manager over a pooled connection (await it, then `async with`)."""
    return db_pool.connection()


async def db_health_check() -> dict[str, Any]:
    return await db_pool.health_check()

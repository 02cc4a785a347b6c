"""
Thin query helpers over the shared pool.

Repositories call these instead of handling cursors themselves. Driver
errors come back as DatabaseError, or as StorageConflictError when a
unique constraint rejects the write.
"""

import asyncio
import functools
from collections.abc import Awaitable, Callable
from typing import Any

import psycopg
from psycopg import errors as pg_errors

from centri.db.pool import get_db_connection
from centri.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class DatabaseError(Exception):
    def __init__(self, message: str, operation: str = "unknown", recoverable: bool = True):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


class StorageConflictError(DatabaseError):
    """A write collided with a uniqueness constraint on another key."""

    def __init__(self, message: str, constraint: str | None = None):
        super().__init__(message, operation="upsert", recoverable=True)
        self.constraint = constraint


def _translate(e: psycopg.Error, operation: str, query: str) -> DatabaseError:
    snippet = str(query)[:100]
    if isinstance(e, pg_errors.UniqueViolation):
        constraint = getattr(e.diag, "constraint_name", None)
        logger.warning("Unique constraint violated", constraint=constraint, query=snippet)
        return StorageConflictError(f"Unique violation: {e}", constraint=constraint)
    logger.error("Query failed", operation=operation, query=snippet, error=str(e))
    return DatabaseError(
        f"Query failed: {e}",
        operation=operation,
        recoverable=isinstance(e, psycopg.OperationalError),
    )


async def _run(operation: str, query: str, params: tuple, consume: Callable[[Any], Awaitable[Any]]):
    try:
        async with await get_db_connection() as conn:
            cursor = await conn.execute(query, params)
            return await consume(cursor)
    except psycopg.Error as e:
        raise _translate(e, operation, query) from e


async def _rowcount(cursor) -> int:
    return cursor.rowcount


async def fetch_one(query: str, params: tuple = ()) -> dict[str, Any] | None:
    """First row as a dict, or None. Also used for INSERT/UPDATE ... RETURNING."""
    return await _run("fetch_one", query, params, lambda cur: cur.fetchone())


async def fetch_all(query: str, params: tuple = ()) -> list[dict[str, Any]]:
    return await _run("fetch_all", query, params, lambda cur: cur.fetchall())


async def execute_query(query: str, params: tuple = ()) -> int:
    """Run a statement and return the affected row count."""
    return await _run("execute", query, params, _rowcount)


def with_db_retry(max_retries: int = 3, base_delay: float = 0.1):
    """
    Retry a repository coroutine on connection-level failures.

    Constraint conflicts and non-recoverable query errors are raised at
    once; recoverable ones back off exponentially from base_delay.
    """

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            attempt = 0
            while True:
                try:
                    return await func(*args, **kwargs)
                except StorageConflictError:
                    raise
                except DatabaseError as e:
                    if not e.recoverable:
                        raise
                    if attempt >= max_retries:
                        logger.error("Database retries exhausted", operation=func.__name__, error=str(e))
                        raise DatabaseError(
                            f"Operation failed after {max_retries} retries: {e}",
                            operation=func.__name__,
                            recoverable=False,
                        ) from e
                    delay = base_delay * (2**attempt)
                    attempt += 1
                    logger.warning("Retrying database operation", attempt=attempt, delay=delay, error=str(e))
                    await asyncio.sleep(delay)

        return wrapper

    return decorator

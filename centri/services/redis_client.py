"""
Shared async Redis connection, used for the per-(tenant, provider) sync locks.

Lock operations never raise: an unreachable Redis reports None from
acquire_lock so the caller can fail open.
"""

import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool

from centri.config import settings
from centri.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

MAX_CONNECTIONS = 20

# compare-and-delete so a lock that expired and was re-taken is left alone
RELEASE_SCRIPT = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('del', KEYS[1])
end
return 0
"""


class FastRedisClient:
    def __init__(self):
        self.pool = None
        self.client = None
        self._initialized = False

    async def initialize(self):
        if self._initialized:
            return

        self.pool = ConnectionPool.from_url(
            settings.REDIS_URL,
            max_connections=MAX_CONNECTIONS,
            retry_on_timeout=True,
            socket_connect_timeout=10,
            socket_timeout=10,
            health_check_interval=30,
            decode_responses=True,
        )
        self.client = redis.Redis(connection_pool=self.pool)
        try:
            await self.client.ping()
        except Exception as e:
            logger.error("Redis did not answer ping", error=str(e))
            raise RuntimeError("Redis initialization failed") from e

        self._initialized = True
        logger.info("Redis connected", max_connections=MAX_CONNECTIONS)

    async def close(self):
        try:
            if self.client:
                await self.client.aclose()
            if self.pool:
                await self.pool.disconnect()
        except Exception as e:
            logger.error("Error closing Redis client", error=str(e))
        finally:
            self._initialized = False

    async def _client(self) -> redis.Redis:
        if not self._initialized:
            logger.warning("Redis used before startup, connecting lazily")
            await self.initialize()
        return self.client

    async def ping(self) -> bool:
        try:
            client = await self._client()
            return bool(await client.ping())
        except Exception as e:
            logger.error("Redis ping failed", error=str(e))
            return False

    async def acquire_lock(self, key: str, token: str, ttl_s: int) -> bool | None:
        """
        SET key token NX EX ttl_s.

        True when this caller now holds the lock, False when someone else
        does, None when Redis could not be reached.
        """
        try:
            client = await self._client()
            return bool(await client.set(key, token, nx=True, ex=ttl_s))
        except Exception as e:
            logger.error("Redis lock acquire failed", key=key[:60], error=str(e))
            return None

    async def release_lock(self, key: str, token: str) -> bool:
        """Delete the lock only while it still carries our token."""
        try:
            client = await self._client()
            return bool(await client.eval(RELEASE_SCRIPT, 1, key, token))
        except Exception as e:
            logger.error("Redis lock release failed", key=key[:60], error=str(e))
            return False


fast_redis = FastRedisClient()

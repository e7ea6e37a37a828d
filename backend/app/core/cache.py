"""
Redis cache backend client.

The client is constructed explicitly and handed to the components that need
it; ``connect()`` runs at application startup and ``close()`` at shutdown.

Every backend round trip is bounded by ``timeout_seconds`` and guarded by a
circuit breaker. Any failure (no connection, timeout, Redis error, open
circuit) is raised as CacheUnavailableError; callers decide how to degrade.
"""
import asyncio
from typing import Optional, Any, Callable, Dict
import redis.asyncio as redis
from redis.exceptions import RedisError

from app.core.circuit_breaker import CircuitBreaker, CircuitBreakerOpenError
from app.core.config import Settings
from app.core.errors import CacheUnavailableError
from app.core.logging import get_logger

logger = get_logger(__name__)

# Keys deleted per DEL round trip during pattern purges
DELETE_BATCH_SIZE = 500


class CacheClient:
    """
    Thin async wrapper around a Redis connection pool.

    Values are raw bytes; the client never interprets payloads.
    """

    def __init__(
        self,
        redis_url: str,
        timeout_seconds: float = 0.25,
        circuit_breaker: Optional[CircuitBreaker] = None,
        redis_client: Optional[redis.Redis] = None,
    ):
        self.redis_url = redis_url
        self.timeout_seconds = timeout_seconds
        self.circuit_breaker = circuit_breaker or CircuitBreaker(
            name="redis_cache",
            failure_threshold=0.5,
            time_window_seconds=60,
            open_duration_seconds=30,
        )
        self._redis: Optional[redis.Redis] = redis_client

    @classmethod
    def from_settings(cls, settings: Settings) -> "CacheClient":
        return cls(settings.redis_url, timeout_seconds=settings.cache_timeout_seconds)

    @property
    def connected(self) -> bool:
        return self._redis is not None

    async def connect(self) -> bool:
        """
        Open the connection pool and verify it with PING.

        Returns:
            True when Redis answered, False when the service runs uncached
        """
        if self._redis is None:
            logger.info("redis_initializing", url=self.redis_url)
            self._redis = redis.from_url(
                self.redis_url,
                max_connections=20,
                socket_connect_timeout=self.timeout_seconds,
                socket_timeout=self.timeout_seconds,
                decode_responses=False,
            )

        try:
            await asyncio.wait_for(self._redis.ping(), self.timeout_seconds)
        except (RedisError, OSError, asyncio.TimeoutError) as e:
            logger.warning(
                "redis_unavailable",
                error=str(e),
                error_type=type(e).__name__,
                message="Serving reads without caching",
            )
            return False

        logger.info("redis_initialized")
        return True

    async def close(self) -> None:
        if self._redis is None:
            return
        try:
            await self._redis.aclose()
            logger.info("redis_closed")
        except (RedisError, OSError) as e:
            logger.error("redis_close_failed", error=str(e), exc_info=True)
        finally:
            self._redis = None

    async def _call(self, operation: str, func: Callable[..., Any], *args, **kwargs) -> Any:
        if self._redis is None:
            raise CacheUnavailableError(operation, "not_connected")

        async def bounded():
            return await asyncio.wait_for(func(*args, **kwargs), self.timeout_seconds)

        try:
            return await self.circuit_breaker.call_async(bounded)
        except CircuitBreakerOpenError as e:
            raise CacheUnavailableError(operation, "circuit_open") from e
        except asyncio.TimeoutError as e:
            raise CacheUnavailableError(operation, "timeout") from e
        except (RedisError, OSError) as e:
            raise CacheUnavailableError(operation, f"{type(e).__name__}: {e}") from e

    async def get(self, key: str) -> Optional[bytes]:
        return await self._call("get", self._redis_get, key)

    async def set(self, key: str, value: bytes, ttl: int) -> None:
        """Store value with a TTL in a single SETEX (never a partial entry)."""
        await self._call("set", self._redis_setex, key, ttl, value)

    async def delete_pattern(self, pattern: str) -> int:
        """
        Delete keys matching a glob pattern.

        Uses SCAN so the server is never blocked by KEYS. The whole purge
        is bounded by one timeout.

        Returns:
            Number of keys deleted
        """
        return await self._call("delete", self._scan_and_delete, pattern)

    async def ping(self) -> bool:
        return bool(await self._call("ping", self._redis_ping))

    async def _redis_get(self, key: str) -> Optional[bytes]:
        return await self._redis.get(key)

    async def _redis_setex(self, key: str, ttl: int, value: bytes) -> Any:
        return await self._redis.setex(key, ttl, value)

    async def _redis_ping(self) -> Any:
        return await self._redis.ping()

    async def _scan_and_delete(self, pattern: str) -> int:
        deleted = 0
        batch = []
        async for key in self._redis.scan_iter(match=pattern, count=DELETE_BATCH_SIZE):
            batch.append(key)
            if len(batch) >= DELETE_BATCH_SIZE:
                deleted += await self._redis.delete(*batch)
                batch = []
        if batch:
            deleted += await self._redis.delete(*batch)
        return deleted

    def get_circuit_breaker_metrics(self) -> Dict:
        return self.circuit_breaker.get_metrics()

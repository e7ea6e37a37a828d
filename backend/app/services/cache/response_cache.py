"""
TTL response cache over the Redis backend.

Implements read-through caching of opaque response payloads:
1. Look up the key
2. On hit, return the cached bytes
3. On miss, produce the payload once, store it, return it

Caching is an optimization only. Backend failures degrade to a miss (reads)
or a logged no-op (writes); they never fail the request being served.
Concurrent misses on one key each produce and store (last writer wins).
"""
import json
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Tuple

from app.core.cache import CacheClient
from app.core.errors import CacheUnavailableError, InvalidationFailure
from app.core.logging import get_logger
from app.core.metrics import record_cache_hit, record_cache_miss, record_cache_error

logger = get_logger(__name__)

Producer = Callable[[], Awaitable[bytes]]


@dataclass(frozen=True)
class CacheEntry:
    key: str
    payload: bytes
    stored_at: float
    ttl_seconds: int

    def is_fresh(self, now: float) -> bool:
        return now - self.stored_at < self.ttl_seconds


def encode_entry(payload: bytes, stored_at: float, ttl_seconds: int) -> bytes:
    """Envelope: one JSON header line, then the payload bytes untouched."""
    header = json.dumps({"stored_at": stored_at, "ttl": ttl_seconds}).encode()
    return header + b"\n" + payload


def decode_entry(key: str, raw: bytes) -> Optional[CacheEntry]:
    header, sep, payload = raw.partition(b"\n")
    if not sep:
        return None
    try:
        meta = json.loads(header)
        return CacheEntry(key, payload, float(meta["stored_at"]), int(meta["ttl"]))
    except (ValueError, KeyError, TypeError):
        return None


def cache_type_of(key: str) -> str:
    return key.split(":", 1)[0]


class ResponseCache:
    """Get/put/read-through/invalidate over a CacheClient."""

    def __init__(self, client: CacheClient, clock: Callable[[], float] = time.time):
        self.client = client
        self._clock = clock

    async def get(self, key: str) -> Optional[CacheEntry]:
        """
        Returns:
            The fresh entry, or None on miss, expiry, or backend failure
        """
        try:
            raw = await self.client.get(key)
        except CacheUnavailableError as e:
            record_cache_error("get")
            logger.warning("cache_get_failed", key=key, reason=e.reason)
            return None

        if raw is None:
            return None

        entry = decode_entry(key, raw)
        if entry is None:
            logger.warning("cache_entry_corrupt", key=key)
            return None
        if not entry.is_fresh(self._clock()):
            return None
        return entry

    async def put(self, key: str, payload: bytes, ttl_seconds: int) -> bool:
        """
        Store a payload wholesale.

        Returns:
            True if stored, False if the backend failed (already logged)
        """
        raw = encode_entry(payload, self._clock(), ttl_seconds)
        try:
            await self.client.set(key, raw, ttl_seconds)
        except CacheUnavailableError as e:
            record_cache_error("set")
            logger.warning("cache_set_failed", key=key, reason=e.reason)
            return False

        logger.debug("cache_set", key=key, ttl=ttl_seconds, size=len(payload))
        return True

    async def fetch(self, key: str, ttl_seconds: int, produce: Producer) -> Tuple[bytes, bool]:
        """
        Read-through lookup that also reports whether it was a hit.

        ``produce`` runs at most once per call and is never retried. If it
        raises, nothing is cached and the error propagates.
        """
        cache_type = cache_type_of(key)
        entry = await self.get(key)
        if entry is not None:
            record_cache_hit(cache_type)
            logger.debug("cache_hit", cache_type=cache_type, key=key)
            return entry.payload, True

        record_cache_miss(cache_type)
        logger.debug("cache_miss", cache_type=cache_type, key=key)

        payload = await produce()
        await self.put(key, payload, ttl_seconds)
        return payload, False

    async def read_through(self, key: str, ttl_seconds: int, produce: Producer) -> bytes:
        payload, _ = await self.fetch(key, ttl_seconds, produce)
        return payload

    async def invalidate(self, pattern: str) -> int:
        """
        Delete every key matching a glob pattern.

        Returns:
            Number of keys deleted (0 when nothing matched)

        Raises:
            InvalidationFailure: the backend could not complete the purge
        """
        try:
            count = await self.client.delete_pattern(pattern)
        except CacheUnavailableError as e:
            record_cache_error("delete")
            raise InvalidationFailure(pattern, e.reason) from e

        logger.info("cache_invalidated", pattern=pattern, count=count)
        return count

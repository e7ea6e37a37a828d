"""
Entry points used by the HTTP layer.

- ``cached_read``: every read endpoint hands over its request descriptor,
  TTL and a producer, and sends back whatever payload it receives
- ``invalidate_for_write``: every write endpoint calls it after the store
  commits and before responding
"""
from typing import NamedTuple, Optional

from app.core.cache import CacheClient
from app.core.config import Settings
from app.services.cache.invalidation import InvalidationCoordinator, WriteKind
from app.services.cache.keys import RequestDescriptor, derive_cache_key
from app.services.cache.response_cache import ResponseCache, Producer


class CachedPayload(NamedTuple):
    payload: bytes
    hit: bool
    key: str


class ReadPathCache:
    def __init__(self, cache: ResponseCache, coordinator: InvalidationCoordinator):
        self.cache = cache
        self.coordinator = coordinator

    @classmethod
    def build(cls, client: CacheClient, settings: Settings) -> "ReadPathCache":
        cache = ResponseCache(client)
        return cls(cache, InvalidationCoordinator(cache, settings.api_prefix))

    async def cached_read(
        self,
        descriptor: RequestDescriptor,
        ttl_seconds: int,
        producer: Producer,
    ) -> CachedPayload:
        key = derive_cache_key(descriptor)
        payload, hit = await self.cache.fetch(key, ttl_seconds, producer)
        return CachedPayload(payload, hit, key)

    async def invalidate_for_write(self, kind: WriteKind, resource_id: Optional[str] = None) -> int:
        return await self.coordinator.on_write(kind, resource_id)

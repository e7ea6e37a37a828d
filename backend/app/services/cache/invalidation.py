"""
Write-driven cache invalidation.

Each write kind maps to the route prefixes whose cached responses may hold
the written value. Every prefix becomes a glob over all namespaces and
principals: `*:*:*:{prefix}*`.

| Write         | Purged routes                              |
|---------------|--------------------------------------------|
| create        | /api/blogs (all lists and items), trending |
| update/delete | /api/blogs, trending, /api/blogs/{id}      |
| like_toggle   | /api/blogs/{id}, trending                  |
| comment_add   | /api/blogs/{id}, trending                  |

Purging runs after the store acknowledges the write and before the write's
response is returned.
"""
from enum import Enum
from typing import List, Optional

from app.core.errors import InvalidationFailure
from app.core.logging import get_logger
from app.core.metrics import record_invalidation, record_invalidation_failure
from app.services.cache.keys import route_pattern
from app.services.cache.response_cache import ResponseCache

logger = get_logger(__name__)


class WriteKind(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    LIKE_TOGGLE = "like_toggle"
    COMMENT_ADD = "comment_add"


# Route scopes purged per write kind
COLLECTION = "collection"
TRENDING = "trending"
ITEM = "item"

INVALIDATION_SCOPES = {
    WriteKind.CREATE: (COLLECTION, TRENDING),
    WriteKind.UPDATE: (COLLECTION, TRENDING, ITEM),
    WriteKind.DELETE: (COLLECTION, TRENDING, ITEM),
    WriteKind.LIKE_TOGGLE: (ITEM, TRENDING),
    WriteKind.COMMENT_ADD: (ITEM, TRENDING),
}


class InvalidationCoordinator:
    """Purges the cache entries a write may have made stale."""

    def __init__(self, cache: ResponseCache, api_prefix: str = "/api/blogs"):
        self.cache = cache
        self.api_prefix = api_prefix.rstrip("/")

    def routes_for(self, kind: WriteKind, resource_id: Optional[str] = None) -> List[str]:
        routes = []
        for scope in INVALIDATION_SCOPES[kind]:
            if scope == COLLECTION:
                routes.append(self.api_prefix)
            elif scope == TRENDING:
                routes.append(f"{self.api_prefix}/trending")
            elif scope == ITEM:
                if resource_id is None:
                    # Without an id only the whole collection covers the item
                    routes.append(self.api_prefix)
                else:
                    routes.append(f"{self.api_prefix}/{resource_id}")
        # Preserve order, drop duplicates
        return list(dict.fromkeys(routes))

    def patterns_for(self, kind: WriteKind, resource_id: Optional[str] = None) -> List[str]:
        return [route_pattern(route) for route in self.routes_for(kind, resource_id)]

    async def on_write(self, kind: WriteKind, resource_id: Optional[str] = None) -> int:
        """
        Purge every pattern for this write.

        A failed pattern is logged and skipped; the write itself has already
        committed and still succeeds. Entries missed this way expire with
        their TTL.

        Returns:
            Total number of keys deleted
        """
        kind = WriteKind(kind)
        total = 0
        for pattern in self.patterns_for(kind, resource_id):
            try:
                total += await self.cache.invalidate(pattern)
            except InvalidationFailure as e:
                record_invalidation_failure(kind.value)
                logger.warning(
                    "cache_invalidation_failed",
                    write_kind=kind.value,
                    resource_id=resource_id,
                    pattern=e.pattern,
                    reason=e.reason,
                )

        record_invalidation(kind.value, total)
        logger.info(
            "cache_invalidated_for_write",
            write_kind=kind.value,
            resource_id=resource_id,
            keys_deleted=total,
        )
        return total

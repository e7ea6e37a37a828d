"""Response caching and write invalidation for the read path."""

from .keys import RequestDescriptor, derive_cache_key
from .response_cache import ResponseCache, CacheEntry
from .invalidation import InvalidationCoordinator, WriteKind
from .read_path import ReadPathCache, CachedPayload

__all__ = [
    "RequestDescriptor",
    "derive_cache_key",
    "ResponseCache",
    "CacheEntry",
    "InvalidationCoordinator",
    "WriteKind",
    "ReadPathCache",
    "CachedPayload",
]

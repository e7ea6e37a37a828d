"""
Prometheus metrics.

Metrics Categories:
- RED Metrics: HTTP rate, errors, duration
- Cache Metrics: hits, misses, backend errors, invalidations
- Ranking Metrics: trending computation latency

Naming follows Prometheus conventions (_total for counters, _seconds for durations).
"""
import re
from prometheus_client import (
    Counter,
    Histogram,
    generate_latest,
    REGISTRY,
    CONTENT_TYPE_LATEST,
)

from app.core.logging import get_logger

logger = get_logger(__name__)

registry = REGISTRY

# ============================================================================
# RED METRICS
# ============================================================================

http_requests_total = Counter(
    "http_requests_total",
    "Total number of HTTP requests",
    ["method", "endpoint", "status"],
    registry=registry,
)

http_errors_total = Counter(
    "http_errors_total",
    "Total number of HTTP errors",
    ["method", "endpoint", "status_code"],
    registry=registry,
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "endpoint"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
    registry=registry,
)

# ============================================================================
# CACHE METRICS
# ============================================================================

cache_hits_total = Counter(
    "cache_hits_total",
    "Total number of cache hits",
    ["cache_type"],  # key namespace: blogs, blog, trending
    registry=registry,
)

cache_misses_total = Counter(
    "cache_misses_total",
    "Total number of cache misses",
    ["cache_type"],
    registry=registry,
)

cache_errors_total = Counter(
    "cache_errors_total",
    "Cache backend failures that degraded to the uncached path",
    ["operation"],  # get, set, delete, ping
    registry=registry,
)

cache_invalidations_total = Counter(
    "cache_invalidations_total",
    "Cache keys purged after writes",
    ["write_kind"],
    registry=registry,
)

cache_invalidation_failures_total = Counter(
    "cache_invalidation_failures_total",
    "Invalidation patterns that could not be purged",
    ["write_kind"],
    registry=registry,
)

# ============================================================================
# RANKING METRICS
# ============================================================================

trending_computation_seconds = Histogram(
    "trending_computation_seconds",
    "Trending ranking computation latency in seconds",
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5],
    registry=registry,
)


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

_DYNAMIC_SEGMENT = re.compile(r"^/api/blogs/(?!trending$)(?!user/)[^/]+")


def normalize_endpoint(path: str) -> str:
    """
    Collapse dynamic path segments to keep label cardinality bounded.

    Examples:
        /api/blogs/66f1c2/like -> /api/blogs/{id}/like
        /api/blogs/user/42 -> /api/blogs/user/{user_id}
        /api/blogs/trending -> /api/blogs/trending
    """
    path = path.split("?", 1)[0]
    if path.startswith("/api/blogs/user/"):
        return "/api/blogs/user/{user_id}"
    return _DYNAMIC_SEGMENT.sub("/api/blogs/{id}", path)


def record_http_request(
    method: str,
    endpoint: str,
    status_code: int,
    duration_seconds: float,
) -> None:
    normalized_endpoint = normalize_endpoint(endpoint)

    http_requests_total.labels(
        method=method,
        endpoint=normalized_endpoint,
        status=str(status_code),
    ).inc()

    if status_code >= 400:
        http_errors_total.labels(
            method=method,
            endpoint=normalized_endpoint,
            status_code=str(status_code),
        ).inc()

    http_request_duration_seconds.labels(
        method=method,
        endpoint=normalized_endpoint,
    ).observe(duration_seconds)


def record_cache_hit(cache_type: str) -> None:
    cache_hits_total.labels(cache_type=cache_type).inc()


def record_cache_miss(cache_type: str) -> None:
    cache_misses_total.labels(cache_type=cache_type).inc()


def record_cache_error(operation: str) -> None:
    cache_errors_total.labels(operation=operation).inc()


def record_invalidation(write_kind: str, count: int) -> None:
    cache_invalidations_total.labels(write_kind=write_kind).inc(count)


def record_invalidation_failure(write_kind: str) -> None:
    cache_invalidation_failures_total.labels(write_kind=write_kind).inc()


def record_trending_duration(duration_seconds: float) -> None:
    trending_computation_seconds.observe(duration_seconds)


def get_metrics() -> bytes:
    """Prometheus text exposition of the registry."""
    return generate_latest(registry)


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST

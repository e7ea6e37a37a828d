"""
Health check endpoints.
"""
from fastapi import APIRouter, Request

from app.core.errors import CacheUnavailableError
from app.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter()


@router.get("/")
async def health_check():
    return {
        "status": "ok",
        "message": "API is running"
    }


@router.get("/cache")
async def cache_health(request: Request):
    """
    Cache backend status.

    The service stays healthy without Redis (reads are served uncached), so
    this reports "degraded" rather than failing.
    """
    client = request.app.state.cache_client
    try:
        available = await client.ping()
    except CacheUnavailableError as e:
        logger.warning("cache_health_unavailable", reason=e.reason)
        available = False

    return {
        "status": "ok" if available else "degraded",
        "available": available,
        "circuit_breaker": client.get_circuit_breaker_metrics(),
    }

"""
Prometheus metrics endpoint.

GET /metrics
"""
from fastapi import APIRouter, Response
from fastapi.responses import PlainTextResponse

from app.core.metrics import get_metrics, get_metrics_content_type

router = APIRouter()


@router.get("", response_class=PlainTextResponse)
async def metrics():
    """Metrics in Prometheus text format (unauthenticated, scraped by Prometheus)."""
    return Response(
        content=get_metrics(),
        media_type=get_metrics_content_type(),
    )

"""
Request context middleware.

- Takes the trace ID from X-Trace-ID / X-Request-ID or generates one
- Generates a request ID per request
- Binds the requester (X-User-Id, set by the upstream auth layer) for logging
- Records RED metrics and echoes the ids in response headers
"""
import time
from typing import Callable
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from .logging import (
    set_trace_id,
    set_request_id,
    set_user_id,
    generate_id,
    get_logger,
)
from .metrics import record_http_request

logger = get_logger(__name__)


class RequestContextMiddleware(BaseHTTPMiddleware):

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        trace_id = (
            request.headers.get("X-Trace-ID")
            or request.headers.get("X-Request-ID")
            or generate_id()
        )
        request_id = generate_id()
        user_id = request.headers.get("X-User-Id")

        set_trace_id(trace_id)
        set_request_id(request_id)
        set_user_id(user_id)

        start_time = time.time()
        request.state.start_time = start_time
        logger.info(
            "request_started",
            method=request.method,
            path=request.url.path,
            query_params=dict(request.query_params),
        )

        try:
            response = await call_next(request)
        except Exception as e:
            process_time = time.time() - start_time
            record_http_request(request.method, request.url.path, 500, process_time)
            logger.error(
                "request_failed",
                method=request.method,
                path=request.url.path,
                error=str(e),
                error_type=type(e).__name__,
                latency_ms=int(process_time * 1000),
                exc_info=True,
            )
            raise
        else:
            process_time = time.time() - start_time
            record_http_request(request.method, request.url.path, response.status_code, process_time)
            logger.info(
                "request_completed",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                cache_status=response.headers.get("X-Cache-Status"),
                latency_ms=int(process_time * 1000),
            )
            response.headers["X-Trace-ID"] = trace_id
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            set_trace_id(None)
            set_request_id(None)
            set_user_id(None)

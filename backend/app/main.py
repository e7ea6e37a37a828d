from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .core.cache import CacheClient
from .core.config import Settings, get_settings
from .core.errors import RankingComputationError, StoreError
from .core.logging import configure_logging, get_logger, get_trace_id
from .core.middleware import RequestContextMiddleware
from .data.blog_store import BlogStore, PostgresBlogStore
from .routes import blogs, health, metrics
from .services.cache import ReadPathCache
from .services.ranking.trending import TrendingEngine, TrendingWeights

logger = get_logger(__name__)


def _error_response(status_code: int, detail: str) -> JSONResponse:
    trace_id = get_trace_id()
    response = JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "detail": detail,
            "status_code": status_code,
            "trace_id": trace_id,
        },
    )
    if trace_id:
        response.headers["X-Trace-ID"] = trace_id
    return response


def create_app(
    settings: Optional[Settings] = None,
    cache_client: Optional[CacheClient] = None,
    store: Optional[BlogStore] = None,
) -> FastAPI:
    """
    Build the application.

    The cache client and store are created at startup from settings unless
    passed in; passed-in instances are not closed at shutdown.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("app_startup_started")

        client = cache_client or CacheClient.from_settings(settings)
        if not await client.connect():
            logger.warning(
                "app_startup_redis_unavailable",
                message="Redis cache not available. Reads are served uncached.",
            )
        blog_store = store or await PostgresBlogStore.connect(settings.database_url)

        app.state.settings = settings
        app.state.cache_client = client
        app.state.store = blog_store
        app.state.read_cache = ReadPathCache.build(client, settings)
        app.state.trending = TrendingEngine(
            blog_store,
            TrendingWeights(
                views=settings.trending_weight_views,
                likes=settings.trending_weight_likes,
                comments=settings.trending_weight_comments,
            ),
        )
        logger.info("app_startup_completed")

        yield

        logger.info("app_shutdown_started")
        if cache_client is None:
            await client.close()
        if store is None:
            await blog_store.close()
        logger.info("app_shutdown_completed")

    app = FastAPI(
        title="Blog Read-Path API",
        description="Cached blog reads, trending ranking and write invalidation",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestContextMiddleware)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        logger.warning(
            "http_exception",
            status_code=exc.status_code,
            detail=exc.detail,
            path=request.url.path,
            method=request.method,
        )
        return _error_response(exc.status_code, exc.detail)

    @app.exception_handler(RankingComputationError)
    async def ranking_error_handler(request: Request, exc: RankingComputationError):
        logger.error("trending_unavailable", error=str(exc), path=request.url.path)
        return _error_response(500, "Server error fetching trending blogs")

    @app.exception_handler(StoreError)
    async def store_error_handler(request: Request, exc: StoreError):
        logger.error("store_unavailable", error=str(exc), path=request.url.path, method=request.method)
        return _error_response(500, "Server error accessing blogs")

    app.include_router(health.router, prefix="/health", tags=["Health"])
    app.include_router(metrics.router, prefix="/metrics", tags=["Metrics"])
    app.include_router(blogs.router, prefix=settings.api_prefix, tags=["Blogs"])

    return app


def build_default_app() -> FastAPI:
    settings = get_settings()
    configure_logging(log_level=settings.log_level, json_output=settings.log_json)
    return create_app(settings)


# uvicorn app.main:app
app = build_default_app()

"""
Blog endpoints.

Reads go through ``ReadPathCache.cached_read``; writes commit to the store,
then call ``invalidate_for_write`` before responding.

Requester identity comes from X-User-Id / X-User-Role, set by the upstream
authentication layer.

GET    /api/blogs
GET    /api/blogs/trending
GET    /api/blogs/user/{user_id}
GET    /api/blogs/{blog_id}
POST   /api/blogs
PUT    /api/blogs/{blog_id}
DELETE /api/blogs/{blog_id}
POST   /api/blogs/{blog_id}/like
POST   /api/blogs/{blog_id}/comments
"""
import json
from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, Header, HTTPException, Path, Query, Request, Response

from app.core.config import Settings
from app.core.logging import get_logger
from app.data.blog_store import BlogStore
from app.models.blog import BlogCreate, CommentCreate
from app.services.cache import CachedPayload, ReadPathCache, RequestDescriptor, WriteKind
from app.services.query.pagination import BlogFilters, SortSpec, build_query, compute_pagination
from app.services.ranking.trending import TrendingEngine

logger = get_logger(__name__)

router = APIRouter()

MAX_COMMENT_LENGTH = 1000


@dataclass(frozen=True)
class Requester:
    user_id: Optional[str]
    role: Optional[str]

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def get_requester(
    x_user_id: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None),
) -> Requester:
    return Requester(x_user_id or None, (x_user_role or "user") if x_user_id else None)


def require_user(requester: Requester = Depends(get_requester)) -> Requester:
    if not requester.user_id:
        raise HTTPException(status_code=401, detail="Authentication required")
    return requester


def get_settings_dep(request: Request) -> Settings:
    return request.app.state.settings


def get_read_cache(request: Request) -> ReadPathCache:
    return request.app.state.read_cache


def get_store(request: Request) -> BlogStore:
    return request.app.state.store


def get_trending_engine(request: Request) -> TrendingEngine:
    return request.app.state.trending


def to_json(body: Any) -> bytes:
    return json.dumps(body, default=str).encode()


def cached_response(result: CachedPayload, ttl: int, public: bool) -> Response:
    return Response(
        content=result.payload,
        media_type="application/json",
        headers={
            "X-Cache-Status": "HIT" if result.hit else "MISS",
            "X-Cache-Key": quote(result.key, safe=":/?=&%+*,"),
            "Cache-Control": f"{'public' if public else 'private'}, max-age={ttl}",
        },
    )


def descriptor_for(
    request: Request,
    namespace: str,
    requester: Requester,
    params: Optional[dict] = None,
) -> RequestDescriptor:
    """
    Cache descriptor for a read.

    ``params`` are the inputs the handler actually used (after binding and
    normalization), never the raw query string.
    """
    return RequestDescriptor(
        route=request.url.path,
        query_params=params or {},
        requester_id=requester.user_id,
        requester_role=requester.role,
        namespace=namespace,
    )


@router.get("")
async def list_blogs(
    request: Request,
    page: int = Query(1),
    limit: Optional[int] = Query(None),
    category: Optional[str] = Query(None),
    tags: Optional[str] = Query(None),
    author: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    status: str = Query("published"),
    sort_by: str = Query("createdAt", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder"),
    requester: Requester = Depends(get_requester),
    settings: Settings = Depends(get_settings_dep),
    read_cache: ReadPathCache = Depends(get_read_cache),
    store: BlogStore = Depends(get_store),
):
    """Paginated, filtered blog listing."""
    status = status.strip().lower()
    if status != "published":
        own = requester.user_id is not None and author == requester.user_id
        if not (own or requester.is_admin):
            raise HTTPException(status_code=403, detail="Only published posts are listed publicly")

    descriptor = build_query(
        BlogFilters(status=status, category=category, tags=tags, author=author, search=search),
        SortSpec(sort_by, sort_order),
        page=page,
        page_size=settings.default_page_size if limit is None else limit,
        max_page_size=settings.max_page_size,
    )

    async def produce() -> bytes:
        posts, total = await store.query(descriptor)
        pagination = descriptor.compute_pagination(total, posts)
        return to_json({
            "success": True,
            "data": {
                "blogs": [p.model_dump(mode="json") for p in posts],
                "pagination": pagination.to_dict(),
            },
        })

    result = await read_cache.cached_read(
        descriptor_for(request, "blogs", requester, descriptor.cache_params()), settings.cache_ttl, produce
    )
    return cached_response(result, settings.cache_ttl, requester.user_id is None)


@router.get("/trending")
async def trending_blogs(
    request: Request,
    limit: int = Query(10, ge=1, le=50),
    timeframe: Optional[int] = Query(None, ge=1, le=365),
    settings: Settings = Depends(get_settings_dep),
    read_cache: ReadPathCache = Depends(get_read_cache),
    engine: TrendingEngine = Depends(get_trending_engine),
):
    """Top posts by trending score; identical for every requester."""
    window_days = timeframe or settings.trending_window_days

    async def produce() -> bytes:
        entries = await engine.compute_trending(limit, window_days)
        return to_json({
            "success": True,
            "data": {
                "blogs": [
                    {**e.post.model_dump(mode="json"), "trendingScore": e.score}
                    for e in entries
                ],
                "limit": limit,
                "timeframe": window_days,
            },
        })

    descriptor = RequestDescriptor(
        route=request.url.path,
        query_params={"limit": limit, "timeframe": window_days},
        namespace="trending",
    )
    result = await read_cache.cached_read(descriptor, settings.trending_cache_ttl, produce)
    return cached_response(result, settings.trending_cache_ttl, True)


@router.get("/user/{user_id}")
async def user_blogs(
    request: Request,
    user_id: str = Path(...),
    page: int = Query(1),
    limit: Optional[int] = Query(None),
    requester: Requester = Depends(get_requester),
    settings: Settings = Depends(get_settings_dep),
    read_cache: ReadPathCache = Depends(get_read_cache),
    store: BlogStore = Depends(get_store),
):
    """A user's posts; drafts included only on the user's own profile."""
    own_profile = requester.user_id == user_id
    descriptor = build_query(
        BlogFilters(status=None if own_profile else "published", author=user_id),
        SortSpec("created_at", "desc"),
        page=page,
        page_size=settings.default_page_size if limit is None else limit,
        max_page_size=settings.max_page_size,
    )

    async def produce() -> bytes:
        posts, total = await store.query(descriptor)
        pagination = compute_pagination(total, descriptor.page_size, descriptor.page, posts)
        return to_json({
            "success": True,
            "data": {
                "blogs": [p.model_dump(mode="json") for p in posts],
                "pagination": pagination.to_dict(),
            },
        })

    result = await read_cache.cached_read(
        descriptor_for(request, "blogs", requester, descriptor.cache_params()), settings.cache_ttl, produce
    )
    return cached_response(result, settings.cache_ttl, requester.user_id is None)


def _visible(post, requester: Requester) -> bool:
    # Unpublished posts are visible to their author only
    return post is not None and (post.is_published or post.author_id == requester.user_id)


@router.get("/{blog_id}")
async def get_blog(
    request: Request,
    blog_id: str = Path(...),
    requester: Requester = Depends(get_requester),
    settings: Settings = Depends(get_settings_dep),
    read_cache: ReadPathCache = Depends(get_read_cache),
    store: BlogStore = Depends(get_store),
):
    """
    Single post.

    The view counter is bumped on every visible request, cached or not; the
    cached payload shows counters as of its production. Requests that end
    in 404 never count a view.
    """
    post = await store.get_by_id(blog_id)
    if not _visible(post, requester):
        raise HTTPException(status_code=404, detail="Blog not found")
    if not await store.increment_views(blog_id):
        raise HTTPException(status_code=404, detail="Blog not found")

    async def produce() -> bytes:
        current = await store.get_by_id(blog_id)
        if not _visible(current, requester):
            raise HTTPException(status_code=404, detail="Blog not found")
        return to_json({"success": True, "data": {"blog": current.model_dump(mode="json")}})

    result = await read_cache.cached_read(
        descriptor_for(request, "blog", requester), settings.cache_ttl, produce
    )
    return cached_response(result, settings.cache_ttl, requester.user_id is None)


async def _owned_post(store: BlogStore, blog_id: str, requester: Requester):
    post = await store.get_by_id(blog_id)
    if post is None:
        raise HTTPException(status_code=404, detail="Blog not found")
    if post.author_id != requester.user_id and not requester.is_admin:
        raise HTTPException(status_code=403, detail="Not allowed to modify this blog")
    return post


@router.post("", status_code=201)
async def create_blog(
    body: BlogCreate,
    requester: Requester = Depends(require_user),
    read_cache: ReadPathCache = Depends(get_read_cache),
    store: BlogStore = Depends(get_store),
):
    if not (body.title and body.title.strip()) or not (body.content and body.content.strip()):
        raise HTTPException(status_code=422, detail="Blog title and content are required")

    post = await store.create(requester.user_id, body.model_dump())
    await read_cache.invalidate_for_write(WriteKind.CREATE, post.id)

    logger.info("blog_created", blog_id=post.id, author_id=post.author_id)
    return {"success": True, "message": "Blog created successfully", "data": {"blog": post.model_dump(mode="json")}}


@router.put("/{blog_id}")
async def update_blog(
    body: BlogCreate,
    blog_id: str = Path(...),
    requester: Requester = Depends(require_user),
    read_cache: ReadPathCache = Depends(get_read_cache),
    store: BlogStore = Depends(get_store),
):
    await _owned_post(store, blog_id, requester)
    post = await store.update(blog_id, body.model_dump(exclude_unset=True))
    if post is None:
        raise HTTPException(status_code=404, detail="Blog not found")
    await read_cache.invalidate_for_write(WriteKind.UPDATE, blog_id)

    return {"success": True, "message": "Blog updated successfully", "data": {"blog": post.model_dump(mode="json")}}


@router.delete("/{blog_id}")
async def delete_blog(
    blog_id: str = Path(...),
    requester: Requester = Depends(require_user),
    read_cache: ReadPathCache = Depends(get_read_cache),
    store: BlogStore = Depends(get_store),
):
    await _owned_post(store, blog_id, requester)
    if not await store.delete(blog_id):
        raise HTTPException(status_code=404, detail="Blog not found")
    await read_cache.invalidate_for_write(WriteKind.DELETE, blog_id)

    return {"success": True, "message": "Blog deleted successfully"}


@router.post("/{blog_id}/like")
async def toggle_like(
    blog_id: str = Path(...),
    requester: Requester = Depends(require_user),
    read_cache: ReadPathCache = Depends(get_read_cache),
    store: BlogStore = Depends(get_store),
):
    result = await store.toggle_like(blog_id, requester.user_id)
    if result is None:
        raise HTTPException(status_code=404, detail="Blog not found")
    post, liked = result
    await read_cache.invalidate_for_write(WriteKind.LIKE_TOGGLE, blog_id)

    return {
        "success": True,
        "message": "Blog liked successfully" if liked else "Blog unliked successfully",
        "data": {"likesCount": post.likes_count, "isLiked": liked},
    }


@router.post("/{blog_id}/comments", status_code=201)
async def add_comment(
    body: CommentCreate,
    blog_id: str = Path(...),
    requester: Requester = Depends(require_user),
    read_cache: ReadPathCache = Depends(get_read_cache),
    store: BlogStore = Depends(get_store),
):
    content = body.content.strip()
    if not content or len(content) > MAX_COMMENT_LENGTH:
        raise HTTPException(status_code=422, detail="Comment must be 1-1000 characters")

    comment = await store.add_comment(blog_id, requester.user_id, content)
    if comment is None:
        raise HTTPException(status_code=404, detail="Blog not found")
    await read_cache.invalidate_for_write(WriteKind.COMMENT_ADD, blog_id)

    return {"success": True, "message": "Comment added successfully", "data": {"comment": comment.model_dump(mode="json")}}

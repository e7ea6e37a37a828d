"""
Shared test doubles: an in-memory Redis and an in-memory blog store.
"""
import asyncio
import re
import time
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from app.core.cache import CacheClient
from app.core.errors import StoreError
from app.models.blog import BlogPost, Comment, prepare_post_fields
from app.services.cache.response_cache import ResponseCache
from app.services.query.pagination import QueryDescriptor

NOW = datetime(2024, 5, 20, 12, 0, tzinfo=timezone.utc)


def redis_glob_to_regex(pattern: str) -> "re.Pattern[str]":
    """Redis glob semantics: * ? [...] and backslash escapes."""
    out = []
    i = 0
    while i < len(pattern):
        c = pattern[i]
        if c == "\\" and i + 1 < len(pattern):
            out.append(re.escape(pattern[i + 1]))
            i += 2
            continue
        if c == "*":
            out.append(".*")
        elif c == "?":
            out.append(".")
        elif c == "[":
            end = pattern.find("]", i + 1)
            if end == -1:
                out.append(re.escape(c))
            else:
                out.append("[" + pattern[i + 1:end].replace("\\", "\\\\") + "]")
                i = end + 1
                continue
        else:
            out.append(re.escape(c))
        i += 1
    return re.compile("".join(out) + r"\Z", re.S)


class FakeRedis:
    """Subset of redis.asyncio.Redis used by CacheClient."""

    def __init__(self):
        self.data: Dict[str, Tuple[bytes, float]] = {}
        self.fail = False
        self.delay = 0.0
        self.closed = False

    async def _io(self):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise RedisConnectionError("connection refused")

    def _live(self, key: str) -> Optional[bytes]:
        item = self.data.get(key)
        if item is None:
            return None
        value, expires_at = item
        if time.monotonic() >= expires_at:
            del self.data[key]
            return None
        return value

    async def ping(self):
        await self._io()
        return True

    async def get(self, key):
        await self._io()
        return self._live(key)

    async def setex(self, key, ttl, value):
        await self._io()
        self.data[key] = (value, time.monotonic() + ttl)
        return True

    async def delete(self, *keys):
        await self._io()
        deleted = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                deleted += 1
        return deleted

    async def scan_iter(self, match=None, count=None):
        await self._io()
        regex = redis_glob_to_regex(match or "*")
        for key in list(self.data):
            if regex.match(key) and self._live(key) is not None:
                yield key

    async def aclose(self):
        self.closed = True


class InMemoryBlogStore:
    """BlogStore over plain dicts, with call counters and a failure switch."""

    def __init__(self, now: datetime = NOW):
        self.posts: Dict[str, BlogPost] = {}
        self.likes: Dict[str, set] = {}
        self.comments: Dict[str, List[Comment]] = {}
        self.now = now
        self.fail = False
        self.calls: Dict[str, int] = {}
        self._next_id = 1

    def _enter(self, operation: str):
        self.calls[operation] = self.calls.get(operation, 0) + 1
        if self.fail:
            raise StoreError(f"{operation} failed: store offline")

    def _with_counters(self, post: BlogPost) -> BlogPost:
        return post.model_copy(update={
            "likes_count": len(self.likes.get(post.id, ())),
            "comments_count": len(self.comments.get(post.id, ())),
        })

    def add(self, **fields) -> BlogPost:
        post_id = fields.pop("id", None) or f"b{self._next_id}"
        self._next_id += 1
        fields.setdefault("title", f"Post {post_id}")
        fields.setdefault("content", "Some content")
        fields.setdefault("author_id", "author-1")
        fields.setdefault("status", "published")
        fields.setdefault("created_at", self.now)
        if fields["status"] == "published":
            fields.setdefault("published_at", self.now)
        likes = fields.pop("likes", 0)
        comments = fields.pop("comments", 0)
        post = BlogPost(id=post_id, **fields)
        self.posts[post_id] = post
        self.likes[post_id] = {f"liker-{i}" for i in range(likes)}
        self.comments[post_id] = [
            Comment(id=f"c{i}", blog_id=post_id, author_id="u", content="hi") for i in range(comments)
        ]
        return self._with_counters(post)

    def _matches(self, post: BlogPost, d: QueryDescriptor) -> bool:
        if d.status and post.status != d.status:
            return False
        if d.category and post.category != d.category:
            return False
        if d.tags and not set(d.tags) & set(post.tags):
            return False
        if d.author and post.author_id != d.author:
            return False
        if d.search_pattern:
            fields = [post.title, post.content, post.excerpt or "", post.category, *post.tags]
            if not any(re.search(d.search_pattern, f, re.IGNORECASE) for f in fields):
                return False
        return True

    async def query(self, descriptor: QueryDescriptor):
        self._enter("query")
        matched = [self._with_counters(p) for p in self.posts.values() if self._matches(p, descriptor)]
        matched.sort(
            key=lambda p: (getattr(p, descriptor.sort_field) is not None, getattr(p, descriptor.sort_field) or 0, p.id),
            reverse=descriptor.sort_direction == "desc",
        )
        page = matched[descriptor.offset:descriptor.offset + descriptor.limit]
        return page, len(matched)

    async def get_by_id(self, blog_id):
        self._enter("get_by_id")
        post = self.posts.get(blog_id)
        return self._with_counters(post) if post else None

    async def increment_views(self, blog_id):
        self._enter("increment_views")
        post = self.posts.get(blog_id)
        if post is None:
            return False
        self.posts[blog_id] = post.model_copy(update={"views": post.views + 1})
        return True

    async def create(self, author_id, data):
        self._enter("create")
        fields = prepare_post_fields(data, None, self.now)
        fields.setdefault("status", "draft")
        return self.add(author_id=author_id, created_at=self.now, **fields)

    async def update(self, blog_id, data):
        self._enter("update")
        post = self.posts.get(blog_id)
        if post is None:
            return None
        fields = prepare_post_fields(data, post.status, self.now)
        if post.published_at is not None:
            fields.pop("published_at", None)
        self.posts[blog_id] = post.model_copy(update={**fields, "updated_at": self.now})
        return self._with_counters(self.posts[blog_id])

    async def delete(self, blog_id):
        self._enter("delete")
        self.likes.pop(blog_id, None)
        self.comments.pop(blog_id, None)
        return self.posts.pop(blog_id, None) is not None

    async def toggle_like(self, blog_id, user_id):
        self._enter("toggle_like")
        if blog_id not in self.posts:
            return None
        likers = self.likes.setdefault(blog_id, set())
        liked = user_id not in likers
        if liked:
            likers.add(user_id)
        else:
            likers.discard(user_id)
        return self._with_counters(self.posts[blog_id]), liked

    async def add_comment(self, blog_id, user_id, content):
        self._enter("add_comment")
        if blog_id not in self.posts:
            return None
        comment = Comment(
            id=f"c-{len(self.comments.get(blog_id, [])) + 1}",
            blog_id=blog_id,
            author_id=user_id,
            content=content,
            created_at=self.now,
        )
        self.comments.setdefault(blog_id, []).append(comment)
        return comment

    async def find_published_since(self, cutoff):
        self._enter("find_published_since")
        return [
            self._with_counters(p) for p in self.posts.values()
            if p.status == "published" and p.published_at is not None and p.published_at >= cutoff
        ]


def days_ago(days: float) -> datetime:
    return NOW - timedelta(days=days)


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def cache_client(fake_redis):
    return CacheClient("redis://test", timeout_seconds=0.05, redis_client=fake_redis)


@pytest.fixture
def response_cache(cache_client):
    return ResponseCache(cache_client)


@pytest.fixture
def store():
    return InMemoryBlogStore()

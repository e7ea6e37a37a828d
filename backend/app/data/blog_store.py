"""
Document store for blog posts.

The read-path layer depends only on the ``BlogStore`` protocol. The
production implementation runs parameterized SQL over an asyncpg pool:

    blogs(id text primary key, title, content, excerpt, author_id, tags text[],
          category, status, views int, read_time int,
          published_at timestamptz, created_at timestamptz, updated_at timestamptz)
    blog_likes(blog_id references blogs on delete cascade, user_id, created_at,
               primary key (blog_id, user_id))
    blog_comments(id text primary key, blog_id references blogs on delete cascade,
                  author_id, content, created_at)

Pool settings:
- Pool size: 10-20 connections
- Command timeout: 30 seconds
"""
import uuid
from datetime import datetime, timezone
from typing import List, Optional, Protocol, Tuple

import asyncpg

from app.core.errors import StoreError
from app.core.logging import get_logger
from app.models.blog import BlogPost, Comment, prepare_post_fields
from app.services.query.pagination import QueryDescriptor, SORTABLE_FIELDS

logger = get_logger(__name__)

WRITABLE_COLUMNS = (
    "title", "content", "excerpt", "tags", "category", "status", "read_time",
)

SELECT_POSTS = """
    SELECT b.id, b.title, b.content, b.excerpt, b.author_id, b.tags, b.category,
           b.status, b.views, b.read_time, b.published_at, b.created_at, b.updated_at,
           (SELECT count(*) FROM blog_likes l WHERE l.blog_id = b.id) AS likes_count,
           (SELECT count(*) FROM blog_comments c WHERE c.blog_id = b.id) AS comments_count
    FROM blogs b
"""


class BlogStore(Protocol):
    """Operations the read path consumes from the document store."""

    async def query(self, descriptor: QueryDescriptor) -> Tuple[List[BlogPost], int]: ...

    async def get_by_id(self, blog_id: str) -> Optional[BlogPost]: ...

    async def increment_views(self, blog_id: str) -> bool: ...

    async def create(self, author_id: str, data: dict) -> BlogPost: ...

    async def update(self, blog_id: str, data: dict) -> Optional[BlogPost]: ...

    async def delete(self, blog_id: str) -> bool: ...

    async def toggle_like(self, blog_id: str, user_id: str) -> Optional[Tuple[BlogPost, bool]]: ...

    async def add_comment(self, blog_id: str, user_id: str, content: str) -> Optional[Comment]: ...

    async def find_published_since(self, cutoff: datetime) -> List[BlogPost]: ...


def row_to_post(row) -> BlogPost:
    data = dict(row)
    data["tags"] = list(data.get("tags") or [])
    return BlogPost(**data)


def build_where(descriptor: QueryDescriptor) -> Tuple[str, list]:
    """WHERE clause and positional arguments for a listing descriptor."""
    clauses = []
    args: list = []

    def arg(value) -> str:
        args.append(value)
        return f"${len(args)}"

    if descriptor.status:
        clauses.append(f"b.status = {arg(descriptor.status)}")
    if descriptor.category:
        clauses.append(f"b.category = {arg(descriptor.category)}")
    if descriptor.tags:
        clauses.append(f"b.tags && {arg(list(descriptor.tags))}::text[]")
    if descriptor.author:
        clauses.append(f"b.author_id = {arg(descriptor.author)}")
    if descriptor.search_pattern:
        p = arg(descriptor.search_pattern)
        clauses.append(
            f"(b.title ~* {p} OR b.content ~* {p} OR coalesce(b.excerpt, '') ~* {p}"
            f" OR b.category ~* {p}"
            f" OR EXISTS (SELECT 1 FROM unnest(b.tags) t WHERE t ~* {p}))"
        )

    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    return where, args


class PostgresBlogStore:
    """BlogStore over an asyncpg connection pool."""

    def __init__(self, pool: asyncpg.Pool, clock=lambda: datetime.now(timezone.utc)):
        self.pool = pool
        self._clock = clock

    @classmethod
    async def connect(cls, database_url: str) -> "PostgresBlogStore":
        logger.info("db_pool_initializing", url_prefix=database_url[:30])
        pool = await asyncpg.create_pool(
            database_url,
            min_size=10,
            max_size=20,
            max_inactive_connection_lifetime=3600,
            command_timeout=30,
        )
        logger.info("db_pool_initialized")
        return cls(pool)

    async def close(self) -> None:
        await self.pool.close()
        logger.info("db_pool_closed")

    async def _fetch(self, operation: str, sql: str, *args) -> list:
        try:
            async with self.pool.acquire() as conn:
                return await conn.fetch(sql, *args)
        except (asyncpg.PostgresError, OSError) as e:
            logger.error(
                "store_query_failed",
                operation=operation,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise StoreError(f"{operation} failed: {e}") from e

    async def _fetchrow(self, operation: str, sql: str, *args):
        rows = await self._fetch(operation, sql, *args)
        return rows[0] if rows else None

    async def query(self, descriptor: QueryDescriptor) -> Tuple[List[BlogPost], int]:
        where, args = build_where(descriptor)
        # sort_field is whitelisted by the query builder; checked again here
        sort_field = descriptor.sort_field if descriptor.sort_field in SORTABLE_FIELDS else "created_at"
        direction = "ASC" if descriptor.sort_direction == "asc" else "DESC"

        limit_arg = f"${len(args) + 1}"
        offset_arg = f"${len(args) + 2}"
        rows = await self._fetch(
            "query",
            f"{SELECT_POSTS} {where} ORDER BY b.{sort_field} {direction} NULLS LAST, b.id"
            f" LIMIT {limit_arg} OFFSET {offset_arg}",
            *args, descriptor.limit, descriptor.offset,
        )
        count_row = await self._fetchrow("count", f"SELECT count(*) AS total FROM blogs b {where}", *args)
        total = int(count_row["total"]) if count_row else 0
        return [row_to_post(r) for r in rows], total

    async def get_by_id(self, blog_id: str) -> Optional[BlogPost]:
        row = await self._fetchrow("get_by_id", f"{SELECT_POSTS} WHERE b.id = $1", blog_id)
        return row_to_post(row) if row else None

    async def increment_views(self, blog_id: str) -> bool:
        updated = await self._fetchrow(
            "increment_views",
            "UPDATE blogs SET views = views + 1 WHERE id = $1 RETURNING id",
            blog_id,
        )
        return updated is not None

    async def create(self, author_id: str, data: dict) -> BlogPost:
        now = self._clock()
        fields = prepare_post_fields(data, None, now)
        columns = [c for c in WRITABLE_COLUMNS if c in fields]
        values = [fields[c] for c in columns]
        columns += ["id", "author_id", "published_at", "created_at", "updated_at"]
        values += [str(uuid.uuid4()), author_id, fields.get("published_at"), now, now]

        placeholders = ", ".join(f"${i}" for i in range(1, len(values) + 1))
        row = await self._fetchrow(
            "create",
            f"INSERT INTO blogs ({', '.join(columns)}) VALUES ({placeholders}) RETURNING id",
            *values,
        )
        post = await self.get_by_id(row["id"])
        if post is None:
            raise StoreError("create failed: inserted post not found")
        return post

    async def update(self, blog_id: str, data: dict) -> Optional[BlogPost]:
        current = await self._fetchrow("update", "SELECT status FROM blogs WHERE id = $1", blog_id)
        if current is None:
            return None

        now = self._clock()
        fields = prepare_post_fields(data, current["status"], now)
        assignments = []
        args: list = [blog_id]
        for column in WRITABLE_COLUMNS:
            if column in fields:
                args.append(fields[column])
                assignments.append(f"{column} = ${len(args)}")
        if "published_at" in fields:
            args.append(fields["published_at"])
            assignments.append(f"published_at = coalesce(published_at, ${len(args)})")
        args.append(now)
        assignments.append(f"updated_at = ${len(args)}")

        await self._fetch(
            "update",
            f"UPDATE blogs SET {', '.join(assignments)} WHERE id = $1",
            *args,
        )
        return await self.get_by_id(blog_id)

    async def delete(self, blog_id: str) -> bool:
        row = await self._fetchrow("delete", "DELETE FROM blogs WHERE id = $1 RETURNING id", blog_id)
        return row is not None

    async def toggle_like(self, blog_id: str, user_id: str) -> Optional[Tuple[BlogPost, bool]]:
        try:
            async with self.pool.acquire() as conn:
                async with conn.transaction():
                    exists = await conn.fetchval("SELECT 1 FROM blogs WHERE id = $1 FOR UPDATE", blog_id)
                    if not exists:
                        return None
                    removed = await conn.fetchval(
                        "DELETE FROM blog_likes WHERE blog_id = $1 AND user_id = $2 RETURNING 1",
                        blog_id, user_id,
                    )
                    if not removed:
                        await conn.execute(
                            "INSERT INTO blog_likes (blog_id, user_id, created_at) VALUES ($1, $2, $3)"
                            " ON CONFLICT DO NOTHING",
                            blog_id, user_id, self._clock(),
                        )
        except (asyncpg.PostgresError, OSError) as e:
            logger.error("store_query_failed", operation="toggle_like", error=str(e), error_type=type(e).__name__)
            raise StoreError(f"toggle_like failed: {e}") from e

        post = await self.get_by_id(blog_id)
        if post is None:
            return None
        return post, not removed

    async def add_comment(self, blog_id: str, user_id: str, content: str) -> Optional[Comment]:
        row = await self._fetchrow(
            "add_comment",
            "INSERT INTO blog_comments (id, blog_id, author_id, content, created_at)"
            " SELECT $1, b.id, $3, $4, $5 FROM blogs b WHERE b.id = $2"
            " RETURNING id, blog_id, author_id, content, created_at",
            str(uuid.uuid4()), blog_id, user_id, content.strip(), self._clock(),
        )
        return Comment(**dict(row)) if row else None

    async def find_published_since(self, cutoff: datetime) -> List[BlogPost]:
        rows = await self._fetch(
            "find_published_since",
            f"{SELECT_POSTS} WHERE b.status = 'published' AND b.published_at >= $1",
            cutoff,
        )
        return [row_to_post(r) for r in rows]

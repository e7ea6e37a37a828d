"""
Blog domain models.

Counters (views, likes_count, comments_count) are owned by the document
store; the read path only reads them.
"""
import math
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field

EXCERPT_LENGTH = 200
WORDS_PER_MINUTE = 200

BLOG_STATUSES = ("draft", "published", "archived")


class BlogPost(BaseModel):
    """A blog post as returned by the document store."""
    id: str
    title: str
    content: str
    excerpt: Optional[str] = None
    author_id: str
    tags: List[str] = Field(default_factory=list)
    category: str = "general"
    status: str = "draft"
    views: int = 0
    likes_count: int = 0
    comments_count: int = 0
    read_time: int = 1
    published_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_published(self) -> bool:
        return self.status == "published"


class Comment(BaseModel):
    id: str
    blog_id: str
    author_id: str
    content: str
    created_at: Optional[datetime] = None


class BlogCreate(BaseModel):
    """Fields accepted when creating or updating a post."""
    title: Optional[str] = None
    content: Optional[str] = None
    excerpt: Optional[str] = None
    tags: Optional[List[str]] = None
    category: Optional[str] = None
    status: Optional[str] = None


class CommentCreate(BaseModel):
    content: str


def derive_excerpt(content: str) -> str:
    return content[:EXCERPT_LENGTH] + "..."


def derive_read_time(content: str) -> int:
    """Minutes to read at 200 words per minute, at least 1."""
    words = len(content.split())
    return max(1, math.ceil(words / WORDS_PER_MINUTE))


def prepare_post_fields(data: dict, previous_status: Optional[str], now: datetime) -> dict:
    """
    Fill derived fields before a post is persisted.

    - tags and category are lower-cased
    - excerpt defaults to the first 200 characters of content
    - read_time follows content length
    - published_at is proposed when status becomes published; stores keep
      an existing value so it records the first publication
    """
    fields = {k: v for k, v in data.items() if v is not None}

    if "tags" in fields:
        fields["tags"] = [t.strip().lower() for t in fields["tags"] if t and t.strip()]
    if "category" in fields:
        fields["category"] = fields["category"].strip().lower() or "general"

    content = fields.get("content")
    if content:
        if not fields.get("excerpt") and previous_status is None:
            fields["excerpt"] = derive_excerpt(content)
        fields["read_time"] = derive_read_time(content)

    if fields.get("status") == "published" and previous_status != "published":
        fields["published_at"] = now

    return fields

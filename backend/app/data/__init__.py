"""Document store access."""

from .blog_store import BlogStore, PostgresBlogStore

__all__ = ["BlogStore", "PostgresBlogStore"]

"""Blog domain models."""

from .blog import BlogPost, Comment, BlogCreate, CommentCreate

__all__ = ["BlogPost", "Comment", "BlogCreate", "CommentCreate"]

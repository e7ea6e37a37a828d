"""Listing query construction and pagination."""

from .pagination import (
    BlogFilters,
    SortSpec,
    QueryDescriptor,
    PaginationResult,
    build_query,
    compute_pagination,
    escape_search_term,
)

__all__ = [
    "BlogFilters",
    "SortSpec",
    "QueryDescriptor",
    "PaginationResult",
    "build_query",
    "compute_pagination",
    "escape_search_term",
]

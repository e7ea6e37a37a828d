"""
List query construction and pagination metadata.

Translates filter/sort/page parameters into a store-neutral QueryDescriptor.
Search text is escaped with ``re.escape`` so the store can match it as a
case-insensitive regular expression without the user's text being read as
pattern syntax (``c++`` matches the literal substring ``c++``).
"""
import math
import re
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence, Union

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 50

SORTABLE_FIELDS = ("created_at", "updated_at", "published_at", "views", "title")
DEFAULT_SORT_FIELD = "created_at"

# Accept the camelCase names clients send
SORT_FIELD_ALIASES = {
    "createdat": "created_at",
    "updatedat": "updated_at",
    "publishedat": "published_at",
}

SEARCH_FIELDS = ("title", "content", "excerpt", "tags", "category")


@dataclass(frozen=True)
class BlogFilters:
    status: Optional[str] = "published"  # None lists every status
    category: Optional[str] = None
    tags: Optional[Union[str, Sequence[str]]] = None
    author: Optional[str] = None
    search: Optional[str] = None


@dataclass(frozen=True)
class SortSpec:
    field: str = DEFAULT_SORT_FIELD
    direction: str = "desc"


@dataclass(frozen=True)
class PaginationResult:
    items: List[Any]
    current_page: int
    total_pages: int
    total_count: int
    has_next: bool
    has_prev: bool
    page_size: int

    def to_dict(self) -> dict:
        return {
            "currentPage": self.current_page,
            "totalPages": self.total_pages,
            "totalCount": self.total_count,
            "hasNext": self.has_next,
            "hasPrev": self.has_prev,
            "pageSize": self.page_size,
        }


@dataclass(frozen=True)
class QueryDescriptor:
    """Store-neutral description of one page of a filtered, sorted listing."""
    status: Optional[str]
    category: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    author: Optional[str] = None
    search_pattern: Optional[str] = None
    sort_field: str = DEFAULT_SORT_FIELD
    sort_direction: str = "desc"
    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size

    @property
    def limit(self) -> int:
        return self.page_size

    def compute_pagination(self, total_count: int, items: Sequence[Any] = ()) -> PaginationResult:
        return compute_pagination(total_count, self.page_size, self.page, items)

    def cache_params(self) -> dict:
        """
        The effective inputs of this query, for cache keys.

        Built from normalized values, so requests the store would answer
        identically share a key and requests it would answer differently
        never do, whatever the raw query string looked like.
        """
        return {
            "status": self.status or "any",
            "category": self.category,
            "tags": list(self.tags),
            "author": self.author,
            "search": self.search_pattern,
            "sort": self.sort_field,
            "order": self.sort_direction,
            "page": self.page,
            "limit": self.page_size,
        }


def escape_search_term(search: str) -> str:
    """Regex that matches the search text literally."""
    return re.escape(search.strip())


def normalize_tags(tags: Optional[Union[str, Sequence[str]]]) -> List[str]:
    if not tags:
        return []
    if isinstance(tags, str):
        tags = tags.split(",")
    return sorted({t.strip().lower() for t in tags if t and t.strip()})


def normalize_sort(sort: Optional[SortSpec]) -> SortSpec:
    if sort is None:
        return SortSpec()
    name = (sort.field or "").strip()
    name = SORT_FIELD_ALIASES.get(name.lower(), name)
    if name not in SORTABLE_FIELDS:
        name = DEFAULT_SORT_FIELD
    direction = "asc" if (sort.direction or "").strip().lower() == "asc" else "desc"
    return SortSpec(name, direction)


def clamp_page(page: Optional[int]) -> int:
    return max(1, int(page or 1))


def clamp_page_size(page_size: Optional[int], max_page_size: int = MAX_PAGE_SIZE) -> int:
    if page_size is None:
        page_size = DEFAULT_PAGE_SIZE
    return max(1, min(int(page_size), max_page_size))


def build_query(
    filters: BlogFilters,
    sort: Optional[SortSpec] = None,
    page: Optional[int] = 1,
    page_size: Optional[int] = DEFAULT_PAGE_SIZE,
    max_page_size: int = MAX_PAGE_SIZE,
) -> QueryDescriptor:
    """
    Build the descriptor for one page of a blog listing.

    Args:
        filters: status (required), optional category/tags/author/search
        sort: field and direction; unknown fields fall back to created_at
        page: 1-based page number, values below 1 are clamped to 1
        page_size: items per page, clamped to [1, max_page_size]
        max_page_size: configured upper bound

    Returns:
        QueryDescriptor consumable by a BlogStore
    """
    sort = normalize_sort(sort)
    search = filters.search.strip() if filters.search else ""
    category = filters.category.strip().lower() if filters.category else None

    return QueryDescriptor(
        status=filters.status,
        category=category or None,
        tags=normalize_tags(filters.tags),
        author=filters.author or None,
        search_pattern=escape_search_term(search) if search else None,
        sort_field=sort.field,
        sort_direction=sort.direction,
        page=clamp_page(page),
        page_size=clamp_page_size(page_size, max_page_size),
    )


def compute_pagination(
    total_count: int,
    page_size: int,
    current_page: int,
    items: Sequence[Any] = (),
) -> PaginationResult:
    """
    Pagination metadata for a page of results.

    total_pages = ceil(total_count / page_size), has_next = current_page < total_pages,
    has_prev = current_page > 1.
    """
    total_pages = math.ceil(total_count / page_size) if page_size > 0 else 0
    return PaginationResult(
        items=list(items),
        current_page=current_page,
        total_pages=total_pages,
        total_count=total_count,
        has_next=current_page < total_pages,
        has_prev=current_page > 1,
        page_size=page_size,
    )

"""
Cache key derivation for personalized read responses.

Key format: `{namespace}:{role}:{identity}:{route}?{normalized_query}`

Two requests that would receive the same, authorization-equivalent response
share a key; requests from different principals never do. Anonymous callers
collapse to one `guest:anonymous` principal so they share entries.
"""
from dataclasses import dataclass, field
from typing import Mapping, Optional, Sequence, Union
from urllib.parse import quote, urlencode

ANONYMOUS_ROLE = "guest"
ANONYMOUS_IDENTITY = "anonymous"

# Parameters whose values are matched case-insensitively by the store
CASE_INSENSITIVE_PARAMS = frozenset({"category", "tags", "search", "status", "sortorder"})

# Parameters holding comma-separated sets where order is irrelevant
LIST_PARAMS = frozenset({"tags"})

QueryValue = Union[str, int, float, bool, None, Sequence[Union[str, int, float]]]


@dataclass(frozen=True)
class RequestDescriptor:
    """Everything about a read request that can change its response."""
    route: str
    query_params: Mapping[str, QueryValue] = field(default_factory=dict)
    requester_id: Optional[str] = None
    requester_role: Optional[str] = None
    namespace: str = "cache"


def _values(name: str, raw: QueryValue) -> list[str]:
    if raw is None:
        return []
    if isinstance(raw, (list, tuple, set, frozenset)):
        items = [str(v) for v in raw]
    else:
        items = [str(raw)]

    if name in LIST_PARAMS:
        items = [part for item in items for part in item.split(",")]

    values = [v.strip() for v in items]
    if name in CASE_INSENSITIVE_PARAMS:
        values = [v.casefold() for v in values]
    return [v for v in values if v]


def normalize_query(query_params: Mapping[str, QueryValue]) -> str:
    """
    Canonical query string.

    Names are case-folded and sorted, blank values dropped, list parameters
    de-duplicated and sorted, and everything URL-encoded.
    """
    merged: dict[str, list[str]] = {}
    for raw_name, raw_value in query_params.items():
        name = raw_name.strip().casefold()
        if not name:
            continue
        merged.setdefault(name, []).extend(_values(name, raw_value))

    pairs = []
    for name in sorted(merged):
        values = merged[name]
        if not values:
            continue
        if name in LIST_PARAMS:
            values = sorted(set(values))
        for value in values:
            pairs.append((name, value))

    return urlencode(pairs)


def normalize_route(route: str) -> str:
    route = route.strip() or "/"
    if len(route) > 1:
        route = route.rstrip("/") or "/"
    return route


def derive_cache_key(descriptor: RequestDescriptor) -> str:
    """Map a read request to its canonical cache key."""
    if descriptor.requester_id:
        role = descriptor.requester_role or "user"
        identity = descriptor.requester_id
    else:
        role = ANONYMOUS_ROLE
        identity = ANONYMOUS_IDENTITY

    path = normalize_route(descriptor.route)
    query = normalize_query(descriptor.query_params)
    if query:
        path = f"{path}?{query}"

    return ":".join((
        descriptor.namespace,
        quote(role.casefold(), safe=""),
        quote(identity, safe=""),
        path,
    ))


def escape_glob(text: str) -> str:
    """Escape Redis glob metacharacters so text matches literally."""
    return "".join("\\" + ch if ch in "*?[]\\" else ch for ch in text)


def route_pattern(route_prefix: str) -> str:
    """Glob matching every namespace and principal for routes under a prefix."""
    return f"*:*:*:{escape_glob(normalize_route(route_prefix))}*"

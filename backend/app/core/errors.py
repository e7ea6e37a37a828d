"""
Error taxonomy for the read-path layer.

Failures of the optimization layer (cache, invalidation) are recovered
locally and never reach the caller. Failures of the data-producing layer
(document store, ranking query) surface as explicit errors.
"""


class CacheUnavailableError(Exception):
    """Cache backend unreachable, timed out, or short-circuited."""

    def __init__(self, operation: str, reason: str):
        super().__init__(f"cache {operation} failed: {reason}")
        self.operation = operation
        self.reason = reason


class InvalidationFailure(Exception):
    """A pattern delete did not complete."""

    def __init__(self, pattern: str, reason: str):
        super().__init__(f"invalidation of {pattern!r} failed: {reason}")
        self.pattern = pattern
        self.reason = reason


class StoreError(Exception):
    """The document store rejected or failed a call."""


class RankingComputationError(Exception):
    """Trending could not be computed from the document store."""

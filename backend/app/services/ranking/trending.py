"""
Trending ranking over a sliding publication window.

trending_score = views * W_views + likes * W_likes + comments * W_comments

Only published posts whose published_at falls inside the trailing window are
ranked; older posts are excluded outright, whatever their counters. Ties go
to the more recently published post.

Default weights: views=1, likes=5, comments=10 over 7 days.
"""
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, List, NamedTuple, Optional

from app.core.errors import RankingComputationError, StoreError
from app.core.logging import get_logger
from app.core.metrics import record_trending_duration
from app.data.blog_store import BlogStore
from app.models.blog import BlogPost

logger = get_logger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class TrendingWeights:
    views: float = 1.0
    likes: float = 5.0
    comments: float = 10.0


class TrendingEntry(NamedTuple):
    post: BlogPost
    score: float


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def compute_trending_score(post: BlogPost, weights: TrendingWeights = TrendingWeights()) -> float:
    """Weighted engagement score; non-decreasing in every counter."""
    return (
        max(post.views, 0) * weights.views
        + max(post.likes_count, 0) * weights.likes
        + max(post.comments_count, 0) * weights.comments
    )


def rank_trending(
    posts: List[BlogPost],
    cutoff: datetime,
    limit: int,
    weights: TrendingWeights = TrendingWeights(),
) -> List[TrendingEntry]:
    """Filter to the window, score, sort by (score, recency) descending, truncate."""
    cutoff = _aware(cutoff)
    in_window = [
        p for p in posts
        if p.is_published and p.published_at is not None and _aware(p.published_at) >= cutoff
    ]
    ranked = [TrendingEntry(p, compute_trending_score(p, weights)) for p in in_window]
    ranked.sort(key=lambda e: (e.score, _aware(e.post.published_at) or _EPOCH), reverse=True)
    return ranked[:limit]


class TrendingEngine:
    """Read-only trending computation over the document store's current state."""

    def __init__(
        self,
        store: BlogStore,
        weights: TrendingWeights = TrendingWeights(),
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.store = store
        self.weights = weights
        self._clock = clock

    async def compute_trending(self, limit: int = 10, window_days: int = 7) -> List[TrendingEntry]:
        """
        Top posts by trending score.

        Args:
            limit: Maximum number of posts (at least 1)
            window_days: Trailing publication window in days (at least 1)

        Returns:
            TrendingEntry list sorted by score, then published_at, descending

        Raises:
            RankingComputationError: the store query failed
        """
        limit = max(1, int(limit))
        window_days = max(1, int(window_days))
        cutoff = self._clock() - timedelta(days=window_days)
        start_time = time.time()

        logger.info("trending_started", limit=limit, window_days=window_days)
        try:
            candidates = await self.store.find_published_since(cutoff)
        except StoreError as e:
            logger.error(
                "trending_store_query_failed",
                limit=limit,
                window_days=window_days,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise RankingComputationError(f"trending query failed: {e}") from e

        ranked = rank_trending(candidates, cutoff, limit, self.weights)

        duration = time.time() - start_time
        record_trending_duration(duration)
        logger.info(
            "trending_completed",
            candidates_count=len(candidates),
            ranked_count=len(ranked),
            latency_ms=int(duration * 1000),
        )
        return ranked

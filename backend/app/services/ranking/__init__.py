"""Trending ranking for blog posts."""

from .trending import TrendingEngine, TrendingWeights, TrendingEntry, compute_trending_score

__all__ = ["TrendingEngine", "TrendingWeights", "TrendingEntry", "compute_trending_score"]

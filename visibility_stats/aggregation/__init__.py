"""Pure computation layer of the daily stats engine.

Nothing in this package touches the database; the services package fetches
rows and delegates here.
"""

from visibility_stats.aggregation.merger import collapse_dimensions, merge_daily_stats
from visibility_stats.aggregation.reducer import compute_avg_sentiment, compute_som, reduce_summaries
from visibility_stats.aggregation.sentiment import SentimentRecord, accumulate_sentiment
from visibility_stats.aggregation.types import (
    DailyStatRow,
    DimensionFilter,
    DimensionKey,
    DimensionalStatKey,
    EntityKey,
    EntitySummary,
    EntityType,
    StatKey,
    StatsFilters,
)

__all__ = [
    "DailyStatRow",
    "DimensionFilter",
    "DimensionKey",
    "DimensionalStatKey",
    "EntityKey",
    "EntitySummary",
    "EntityType",
    "SentimentRecord",
    "StatKey",
    "StatsFilters",
    "accumulate_sentiment",
    "collapse_dimensions",
    "compute_avg_sentiment",
    "compute_som",
    "merge_daily_stats",
    "reduce_summaries",
]

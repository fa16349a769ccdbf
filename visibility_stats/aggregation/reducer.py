"""Reduce per-day counter rows into per-entity summaries."""

from __future__ import annotations

import uuid
from collections import defaultdict
from collections.abc import Iterable, Mapping, Sequence
from datetime import date

from visibility_stats.aggregation.types import (
    DailyStatRow,
    EntityKey,
    EntitySummary,
    PlatformOverview,
    PlatformShare,
    SentimentAccumulator,
    ShareOfVoicePoint,
    TopicPerformance,
)


def compute_som(entity_mentions: int, total_mentions: int) -> float:
    """Share of mentions = entity_mentions / all entities' mentions * 100%."""
    if total_mentions == 0:
        return 0.0
    return round((entity_mentions / total_mentions) * 100.0, 2)


def compute_avg_sentiment(positive: int, neutral: int, negative: int) -> float | None:
    """(positive - negative) / (positive + neutral + negative).

    Mixed evaluations do not take part. None when there is nothing to rate.
    """
    denominator = positive + neutral + negative
    if denominator == 0:
        return None
    return (positive - negative) / denominator


def _sort_key(summary: EntitySummary) -> tuple:
    return (not summary.entity.is_brand, -summary.total_mentions, summary.entity_name)


def reduce_summaries(
    rows: Iterable[DailyStatRow],
    sentiment: Mapping[EntityKey, SentimentAccumulator] | None = None,
) -> list[EntitySummary]:
    """Sum counters per entity across days and dimensions and attach sentiment.

    Entities that only have sentiment evaluations still get a summary with
    zero counters. The brand comes first, then competitors by mentions
    (descending) and name.
    """
    summaries: dict[EntityKey, EntitySummary] = {}

    for row in rows:
        entity = row.entity
        summary = summaries.get(entity)
        if summary is None:
            summary = summaries[entity] = EntitySummary(
                entity_type=row.entity_type,
                competitor_id=row.competitor_id,
                entity_name=row.entity_name,
            )
        summary.total_mentions += row.mentions_count
        summary.total_citations += row.citations_count

    for entity, acc in (sentiment or {}).items():
        summary = summaries.get(entity)
        if summary is None:
            summary = summaries[entity] = EntitySummary(
                entity_type=entity.entity_type,
                competitor_id=entity.competitor_id,
                entity_name=acc.entity_name,
            )
        summary.sentiment_positive = acc.positive
        summary.sentiment_neutral = acc.neutral
        summary.sentiment_negative = acc.negative
        summary.sentiment_mixed = acc.mixed

    total_mentions = sum(s.total_mentions for s in summaries.values())
    for summary in summaries.values():
        summary.mention_share = compute_som(summary.total_mentions, total_mentions)
        summary.avg_sentiment = compute_avg_sentiment(
            summary.sentiment_positive,
            summary.sentiment_neutral,
            summary.sentiment_negative,
        )

    return sorted(summaries.values(), key=_sort_key)


def compute_share_of_voice(rows: Iterable[DailyStatRow]) -> list[ShareOfVoicePoint]:
    """Each entity's share of the day's mentions, newest day first.

    Expects coarse rows (one per entity per day).
    """
    rows = list(rows)
    day_totals: dict[date, int] = defaultdict(int)
    for row in rows:
        day_totals[row.stat_date] += row.mentions_count

    points = [
        ShareOfVoicePoint(
            stat_date=row.stat_date,
            entity_type=row.entity_type,
            competitor_id=row.competitor_id,
            entity_name=row.entity_name,
            mentions=row.mentions_count,
            share_percentage=compute_som(row.mentions_count, day_totals[row.stat_date]),
        )
        for row in rows
    ]
    points.sort(key=lambda p: (-p.stat_date.toordinal(), -p.mentions, p.entity_name))
    return points


def _per_platform(rows: Iterable[DailyStatRow], platforms: Sequence[str]) -> dict[str, list[int]]:
    totals = {platform: [0, 0] for platform in platforms}
    for row in rows:
        if row.platform in totals:
            totals[row.platform][0] += row.mentions_count
            totals[row.platform][1] += row.citations_count
    return totals


def compute_platform_overview(
    current: Iterable[DailyStatRow],
    previous: Iterable[DailyStatRow],
    platforms: Sequence[str],
) -> PlatformOverview:
    """Mentions, citations and mention share per platform, with the share trend.

    Rows without a tracked platform are ignored. Share and trend are rounded
    to one decimal.
    """
    now_totals = _per_platform(current, platforms)
    prev_totals = _per_platform(previous, platforms)
    total_mentions = sum(m for m, _ in now_totals.values())
    total_citations = sum(c for _, c in now_totals.values())
    prev_mentions = sum(m for m, _ in prev_totals.values())

    overview = PlatformOverview(total_mentions=total_mentions, total_citations=total_citations)
    for platform in platforms:
        mentions, citations = now_totals[platform]
        share = mentions / total_mentions * 100 if total_mentions else 0.0
        prev_share = prev_totals[platform][0] / prev_mentions * 100 if prev_mentions else 0.0
        overview.platforms.append(
            PlatformShare(
                platform=platform,
                mentions=mentions,
                citations=citations,
                share=round(share, 1),
                trend=round(share - prev_share, 1),
            )
        )
    return overview


def compute_topic_performance(
    rows: Iterable[DailyStatRow],
    topics: Sequence[tuple[uuid.UUID, str]],
    platforms: Sequence[str],
) -> list[TopicPerformance]:
    """Brand mentions per topic and tracked platform, busiest topic first.

    Only brand rows count. Rows without a topic, on an unknown topic or on
    an untracked platform are ignored. Every given topic gets an entry, ties
    ordered by name.
    """
    results = {
        topic_id: TopicPerformance(topic_id=topic_id, name=name, platforms=dict.fromkeys(platforms, 0))
        for topic_id, name in topics
    }
    for row in rows:
        if not row.entity.is_brand:
            continue
        result = results.get(row.topic_id)
        if result is None or row.platform not in result.platforms:
            continue
        result.platforms[row.platform] += row.mentions_count
        result.total += row.mentions_count

    return sorted(results.values(), key=lambda t: (-t.total, t.name))

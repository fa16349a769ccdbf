"""Pure sentiment accumulation over evaluation records."""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from dataclasses import dataclass

from visibility_stats.aggregation.types import EntityKey, EntityType, SentimentAccumulator, SentimentLabel


@dataclass(frozen=True)
class SentimentRecord:
    """Minimal row extracted from brand_evaluations."""

    entity_type: str  # brand | competitor
    entity_name: str
    competitor_id: uuid.UUID | None = None
    sentiment: str | None = None  # positive | neutral | negative | mixed
    sentiment_score: float | None = None


def _entity_of(record: SentimentRecord) -> EntityKey | None:
    if record.entity_type == EntityType.BRAND.value:
        return EntityKey.brand()
    if record.entity_type == EntityType.COMPETITOR.value and record.competitor_id is not None:
        return EntityKey.competitor(record.competitor_id)
    return None


def accumulate_sentiment(records: Iterable[SentimentRecord]) -> dict[EntityKey, SentimentAccumulator]:
    """Group evaluations by entity identity and count labels.

    Competitor evaluations without a competitor id cannot be attributed and
    are skipped. Unknown labels still count towards `count` but towards no
    bucket.
    """
    result: dict[EntityKey, SentimentAccumulator] = {}

    for record in records:
        entity = _entity_of(record)
        if entity is None:
            continue

        acc = result.get(entity)
        if acc is None:
            acc = result[entity] = SentimentAccumulator(entity_name=record.entity_name)

        acc.count += 1
        label = (record.sentiment or "").lower()
        if label == SentimentLabel.POSITIVE.value:
            acc.positive += 1
        elif label == SentimentLabel.NEUTRAL.value:
            acc.neutral += 1
        elif label == SentimentLabel.NEGATIVE.value:
            acc.negative += 1
        elif label == SentimentLabel.MIXED.value:
            acc.mixed += 1

        if record.sentiment_score is not None:
            acc.total_score += record.sentiment_score
            acc.scored += 1

    return result

"""Core types and DTOs for the daily stats engine."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Generic, TypeVar

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class EntityType(str, Enum):
    BRAND = "brand"
    COMPETITOR = "competitor"


class EventKind(str, Enum):
    MENTION = "mention"
    CITATION = "citation"


class SentimentLabel(str, Enum):
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"
    MIXED = "mixed"


# ---------------------------------------------------------------------------
# Keys
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EntityKey:
    """Identity of the brand or of one competitor."""

    entity_type: EntityType
    competitor_id: uuid.UUID | None = None

    def __post_init__(self) -> None:
        if (self.entity_type == EntityType.COMPETITOR) != (self.competitor_id is not None):
            raise ValueError("competitor_id must be set for competitors and only for competitors")

    @classmethod
    def brand(cls) -> EntityKey:
        return cls(EntityType.BRAND, None)

    @classmethod
    def competitor(cls, competitor_id: uuid.UUID) -> EntityKey:
        return cls(EntityType.COMPETITOR, competitor_id)

    @property
    def is_brand(self) -> bool:
        return self.entity_type == EntityType.BRAND


@dataclass(frozen=True)
class DimensionKey:
    platform: str | None = None
    region_id: uuid.UUID | None = None
    topic_id: uuid.UUID | None = None


@dataclass(frozen=True)
class StatKey:
    """Coarse merge key: one row per entity per day."""

    entity: EntityKey
    stat_date: date


@dataclass(frozen=True)
class DimensionalStatKey:
    """Merge key of the dimension-aware path."""

    entity: EntityKey
    stat_date: date
    dimensions: DimensionKey


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DimensionFilter(Generic[T]):
    """Either "no filter" or "equals value"."""

    value: T | None = None
    is_any: bool = True

    @classmethod
    def any(cls) -> DimensionFilter:
        return cls(None, True)

    @classmethod
    def equals(cls, value: T) -> DimensionFilter[T]:
        return cls(value, False)

    def matches(self, candidate: T | None) -> bool:
        return self.is_any or candidate == self.value


@dataclass(frozen=True)
class StatsFilters:
    platform: DimensionFilter[str] = field(default_factory=DimensionFilter.any)
    region_id: DimensionFilter[uuid.UUID] = field(default_factory=DimensionFilter.any)
    topic_id: DimensionFilter[uuid.UUID] = field(default_factory=DimensionFilter.any)

    @property
    def is_unfiltered(self) -> bool:
        return self.platform.is_any and self.region_id.is_any and self.topic_id.is_any

    def matches(self, origin: ResolvedOrigin) -> bool:
        return (
            self.platform.matches(origin.platform)
            and self.region_id.matches(origin.region_id)
            and self.topic_id.matches(origin.topic_id)
        )


# ---------------------------------------------------------------------------
# Rows
# ---------------------------------------------------------------------------


@dataclass
class DailyStatRow:
    """One counter row: an entity on a day, optionally tagged with dimensions."""

    stat_date: date
    entity_type: EntityType
    competitor_id: uuid.UUID | None
    entity_name: str
    mentions_count: int = 0
    citations_count: int = 0
    responses_analyzed: int = 0
    platform: str | None = None
    region_id: uuid.UUID | None = None
    topic_id: uuid.UUID | None = None

    def __post_init__(self) -> None:
        if min(self.mentions_count, self.citations_count, self.responses_analyzed) < 0:
            raise ValueError("counters must be non-negative")

    @property
    def entity(self) -> EntityKey:
        return EntityKey(self.entity_type, self.competitor_id)

    @property
    def dimensions(self) -> DimensionKey:
        return DimensionKey(self.platform, self.region_id, self.topic_id)

    def key(self) -> StatKey:
        return StatKey(self.entity, self.stat_date)

    def dimensional_key(self) -> DimensionalStatKey:
        return DimensionalStatKey(self.entity, self.stat_date, self.dimensions)


@dataclass(frozen=True)
class RawEvent:
    """A mention or citation read from the raw tables.

    `entity` is None when the event cannot be attributed to the brand or to
    an active competitor.
    """

    kind: EventKind
    entity: EntityKey | None
    created_at: datetime
    ai_response_id: uuid.UUID | None = None


@dataclass(frozen=True)
class ResolvedOrigin:
    """Dimensions of the prompt/response that produced an event."""

    platform: str
    region_id: uuid.UUID | None = None
    topic_id: uuid.UUID | None = None


# ---------------------------------------------------------------------------
# Summaries
# ---------------------------------------------------------------------------


@dataclass
class SentimentAccumulator:
    entity_name: str = ""
    positive: int = 0
    neutral: int = 0
    negative: int = 0
    mixed: int = 0
    total_score: float = 0.0
    scored: int = 0
    count: int = 0

    @property
    def avg_score(self) -> float | None:
        if self.scored == 0:
            return None
        return self.total_score / self.scored


@dataclass
class EntitySummary:
    entity_type: EntityType
    competitor_id: uuid.UUID | None
    entity_name: str
    total_mentions: int = 0
    total_citations: int = 0
    mention_share: float = 0.0
    sentiment_positive: int = 0
    sentiment_neutral: int = 0
    sentiment_negative: int = 0
    sentiment_mixed: int = 0
    avg_sentiment: float | None = None

    @property
    def entity(self) -> EntityKey:
        return EntityKey(self.entity_type, self.competitor_id)


@dataclass
class BrandSentiment:
    positive: int = 0
    neutral: int = 0
    negative: int = 0
    total: int = 0
    avg_rating: float = 0.0


@dataclass
class ShareOfVoicePoint:
    stat_date: date
    entity_type: EntityType
    competitor_id: uuid.UUID | None
    entity_name: str
    mentions: int
    share_percentage: float


@dataclass
class PlatformShare:
    platform: str
    mentions: int = 0
    citations: int = 0
    share: float = 0.0
    trend: float = 0.0  # percentage points vs the previous period


@dataclass
class PlatformOverview:
    platforms: list[PlatformShare] = field(default_factory=list)
    total_mentions: int = 0
    total_citations: int = 0


@dataclass
class TopicPerformance:
    """Brand mentions for one topic, split by tracked platform."""

    topic_id: uuid.UUID
    name: str
    platforms: dict[str, int] = field(default_factory=dict)
    total: int = 0

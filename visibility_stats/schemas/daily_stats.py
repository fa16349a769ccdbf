"""Pydantic response models for the daily stats API."""

import uuid
from datetime import date

from pydantic import BaseModel, ConfigDict, Field

from visibility_stats.aggregation.types import EntityType


class DailyStatResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    stat_date: date
    entity_type: EntityType
    competitor_id: uuid.UUID | None = None
    entity_name: str
    mentions_count: int = Field(ge=0)
    citations_count: int = Field(ge=0)
    responses_analyzed: int = Field(ge=0)
    platform: str | None = None


class DailyStatsResponse(BaseModel):
    start_date: date
    end_date: date
    stats: list[DailyStatResponse]


class EntitySummaryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    entity_type: EntityType
    competitor_id: uuid.UUID | None = None
    entity_name: str
    total_mentions: int = Field(ge=0)
    total_citations: int = Field(ge=0)
    mention_share: float = Field(ge=0, le=100, description="Share of all entities' mentions (%)")
    sentiment_positive: int = Field(ge=0)
    sentiment_neutral: int = Field(ge=0)
    sentiment_negative: int = Field(ge=0)
    sentiment_mixed: int = Field(ge=0)
    avg_sentiment: float | None = Field(default=None, ge=-1, le=1, description="None when nothing was rated")


class MentionsSummaryResponse(BaseModel):
    start_date: date
    end_date: date
    entities: list[EntitySummaryResponse]


class BrandSentimentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    positive: int = Field(ge=0)
    neutral: int = Field(ge=0)
    negative: int = Field(ge=0)
    total: int = Field(ge=0)
    avg_rating: float = Field(ge=-1, le=1)


class ShareOfVoicePointResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    stat_date: date
    entity_type: EntityType
    competitor_id: uuid.UUID | None = None
    entity_name: str
    mentions: int = Field(ge=0)
    share_percentage: float = Field(ge=0, le=100)


class PlatformShareResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    platform: str
    mentions: int = Field(ge=0)
    citations: int = Field(ge=0)
    share: float = Field(ge=0, le=100)
    trend: float = Field(description="Share change vs the previous period, in percentage points")


class PlatformOverviewResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    platforms: list[PlatformShareResponse]
    total_mentions: int = Field(ge=0)
    total_citations: int = Field(ge=0)


class TopicPerformanceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    topic_id: uuid.UUID
    name: str
    platforms: dict[str, int] = Field(description="Brand mentions per tracked platform")
    total: int = Field(ge=0)


class CitedDomainResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    domain: str
    count: int = Field(ge=0)
    citation_type: str


class CitationTypeStatsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    brand: int = Field(ge=0)
    competitor: int = Field(ge=0)
    other: int = Field(ge=0)
    total: int = Field(ge=0)


class RawCountsResponse(BaseModel):
    brand_mentions: int = Field(ge=0)
    brand_citations: int = Field(ge=0)
    citations_by_type: CitationTypeStatsResponse

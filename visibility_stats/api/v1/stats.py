"""Daily stats API: rollup-backed series, summaries and raw counters per project."""

import uuid
from datetime import date

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from visibility_stats.core.config import settings
from visibility_stats.core.exceptions import BadRequestError
from visibility_stats.core.rate_limit import limiter
from visibility_stats.db.postgres import get_db, get_session_factory
from visibility_stats.schemas.daily_stats import (
    BrandSentimentResponse,
    CitationTypeStatsResponse,
    CitedDomainResponse,
    DailyStatResponse,
    DailyStatsResponse,
    EntitySummaryResponse,
    MentionsSummaryResponse,
    PlatformOverviewResponse,
    RawCountsResponse,
    ShareOfVoicePointResponse,
    TopicPerformanceResponse,
)
from visibility_stats.services import daily_stats_service, raw_counts

router = APIRouter(prefix="/stats", tags=["stats"])

# Dashboard values that mean "no filter"
_ANY_VALUES = {"", "all", "global"}


def _dimension(value: str | None) -> str | None:
    if value is None or value.strip().lower() in _ANY_VALUES:
        return None
    return value.strip()


def _topic(value: str | None) -> uuid.UUID | None:
    value = _dimension(value)
    if value is None:
        return None
    try:
        return uuid.UUID(value)
    except ValueError:
        raise BadRequestError(f"Invalid topic_id: {value}") from None


async def _project(project_id: uuid.UUID, db: AsyncSession = Depends(get_db)) -> uuid.UUID:
    await daily_stats_service.get_project_or_404(db, project_id)
    return project_id


@router.get("/{project_id}/daily", response_model=DailyStatsResponse)
@limiter.limit(settings.stats_rate_limit)
async def daily_stats(
    request: Request,
    project_id: uuid.UUID = Depends(_project),
    start_date: date | None = None,
    end_date: date | None = None,
    platform: str | None = None,
    region: str | None = None,
    topic_id: str | None = None,
    db: AsyncSession = Depends(get_db),
):
    """One row per entity per day. Filters accept "all" / "GLOBAL" for no filter."""
    start, end, _ = daily_stats_service.resolve_range(start_date, end_date)
    rows = await daily_stats_service.get_daily_stats(
        db,
        project_id,
        start,
        end,
        platform=_dimension(platform),
        region=_dimension(region),
        topic_id=_topic(topic_id),
    )
    return DailyStatsResponse(
        start_date=start,
        end_date=end,
        stats=[DailyStatResponse.model_validate(row) for row in rows],
    )


@router.get("/{project_id}/daily/by-platform", response_model=DailyStatsResponse)
@limiter.limit(settings.stats_rate_limit)
async def daily_stats_by_platform(
    request: Request,
    project_id: uuid.UUID = Depends(_project),
    start_date: date | None = None,
    end_date: date | None = None,
    region: str | None = None,
    topic_id: str | None = None,
    db: AsyncSession = Depends(get_db),
):
    start, end, _ = daily_stats_service.resolve_range(start_date, end_date)
    rows = await daily_stats_service.get_daily_stats_by_platform(
        db, project_id, start, end, region=_dimension(region), topic_id=_topic(topic_id)
    )
    return DailyStatsResponse(
        start_date=start,
        end_date=end,
        stats=[DailyStatResponse.model_validate(row) for row in rows],
    )


@router.get("/{project_id}/summary", response_model=MentionsSummaryResponse)
@limiter.limit(settings.stats_rate_limit)
async def mentions_summary(
    request: Request,
    project_id: uuid.UUID = Depends(_project),
    start_date: date | None = None,
    end_date: date | None = None,
    platform: str | None = None,
    region: str | None = None,
    topic_id: str | None = None,
    db: AsyncSession = Depends(get_db),
):
    """Per-entity totals, share of mentions and sentiment. Brand first."""
    start, end, _ = daily_stats_service.resolve_range(start_date, end_date)
    summaries = await daily_stats_service.get_mentions_summary(
        db,
        project_id,
        start,
        end,
        platform=_dimension(platform),
        region=_dimension(region),
        topic_id=_topic(topic_id),
    )
    return MentionsSummaryResponse(
        start_date=start,
        end_date=end,
        entities=[EntitySummaryResponse.model_validate(s) for s in summaries],
    )


@router.get("/{project_id}/sentiment", response_model=BrandSentimentResponse)
@limiter.limit(settings.stats_rate_limit)
async def brand_sentiment(
    request: Request,
    project_id: uuid.UUID = Depends(_project),
    start_date: date | None = None,
    end_date: date | None = None,
    db: AsyncSession = Depends(get_db),
):
    sentiment = await daily_stats_service.get_sentiment_from_daily_stats(db, project_id, start_date, end_date)
    return BrandSentimentResponse.model_validate(sentiment)


@router.get("/{project_id}/share-of-voice", response_model=list[ShareOfVoicePointResponse])
@limiter.limit(settings.stats_rate_limit)
async def share_of_voice(
    request: Request,
    project_id: uuid.UUID = Depends(_project),
    days: int = Query(default=30, ge=0, le=365),
    db: AsyncSession = Depends(get_db),
):
    points = await daily_stats_service.get_share_of_voice_trend(db, project_id, days=days)
    return [ShareOfVoicePointResponse.model_validate(p) for p in points]


@router.get("/{project_id}/platforms", response_model=PlatformOverviewResponse)
@limiter.limit(settings.stats_rate_limit)
async def platform_overview(
    request: Request,
    project_id: uuid.UUID = Depends(_project),
    start_date: date | None = None,
    end_date: date | None = None,
    region: str | None = None,
    topic_id: str | None = None,
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
):
    """Mentions and citations per tracked platform with the trend vs the previous period."""
    overview = await daily_stats_service.get_platform_overview(
        session_factory,
        project_id,
        start_date,
        end_date,
        region=_dimension(region),
        topic_id=_topic(topic_id),
    )
    return PlatformOverviewResponse.model_validate(overview)


@router.get("/{project_id}/topics/by-platform", response_model=list[TopicPerformanceResponse])
@limiter.limit(settings.stats_rate_limit)
async def topic_performance_by_platform(
    request: Request,
    project_id: uuid.UUID = Depends(_project),
    start_date: date | None = None,
    end_date: date | None = None,
    region: str | None = None,
    db: AsyncSession = Depends(get_db),
):
    """Brand mentions per active topic, split by tracked platform."""
    topics = await daily_stats_service.get_topic_performance_by_platform(
        db, project_id, start_date, end_date, region=_dimension(region)
    )
    return [TopicPerformanceResponse.model_validate(t) for t in topics]


@router.get("/{project_id}/raw-counts", response_model=RawCountsResponse)
@limiter.limit(settings.stats_rate_limit)
async def raw_event_counts(
    request: Request,
    project_id: uuid.UUID = Depends(_project),
    start_date: date | None = None,
    end_date: date | None = None,
    db: AsyncSession = Depends(get_db),
):
    """Counts read straight from brand_mentions / citations, bypassing the rollup."""
    mentions = await raw_counts.get_brand_mentions_count(db, project_id, "client", start=start_date, end=end_date)
    citations = await raw_counts.get_citations_count(db, project_id, "brand", start=start_date, end=end_date)
    by_type = await raw_counts.get_citation_stats_by_type(db, project_id, start=start_date, end=end_date)
    return RawCountsResponse(
        brand_mentions=mentions,
        brand_citations=citations,
        citations_by_type=CitationTypeStatsResponse.model_validate(by_type),
    )


@router.get("/{project_id}/top-domains", response_model=list[CitedDomainResponse])
@limiter.limit(settings.stats_rate_limit)
async def top_cited_domains(
    request: Request,
    project_id: uuid.UUID = Depends(_project),
    limit: int = Query(default=10, ge=1, le=100),
    start_date: date | None = None,
    end_date: date | None = None,
    db: AsyncSession = Depends(get_db),
):
    domains = await raw_counts.get_top_cited_domains(db, project_id, limit=limit, start=start_date, end=end_date)
    return [CitedDomainResponse.model_validate(d) for d in domains]

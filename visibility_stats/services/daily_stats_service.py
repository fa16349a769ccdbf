"""Daily stats engine: rollup + today supplement, with real-time fallback.

Per request:

    range -> read rollup --+-- ok ----> [range includes today: supplement] --+--> merge -> reduce
                           +-- error --> full real-time reconstruction -------+

A rollup failure is recovered exactly once by reconstruction (no retries).
Failures of the raw tables or of sentiment evaluations propagate.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import replace
from datetime import date, datetime, timedelta, timezone

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from visibility_stats.aggregation.dates import as_utc, local_day, previous_period
from visibility_stats.aggregation.merger import collapse_dimensions, merge_daily_stats
from visibility_stats.aggregation.platforms import normalize_platform
from visibility_stats.aggregation.reducer import (
    compute_platform_overview,
    compute_share_of_voice,
    compute_topic_performance,
    reduce_summaries,
)
from visibility_stats.aggregation.types import (
    BrandSentiment,
    DailyStatRow,
    DimensionFilter,
    EntitySummary,
    PlatformOverview,
    ShareOfVoicePoint,
    StatsFilters,
    TopicPerformance,
)
from visibility_stats.core.config import settings
from visibility_stats.core.exceptions import (
    BadRequestError,
    NotFoundError,
    ReconstructionError,
    RollupUnavailableError,
)
from visibility_stats.core.metrics import ROLLUP_FALLBACKS, STATS_QUERY_DURATION
from visibility_stats.models import Project, Region
from visibility_stats.services.realtime_reconstructor import reconstruct_daily_stats
from visibility_stats.services.raw_events import fetch_active_topics
from visibility_stats.services.rollup_reader import read_rollup_rows, read_rollup_watermark
from visibility_stats.services.sentiment_aggregator import aggregate_sentiment
from visibility_stats.services.today_supplement import compute_today_supplement

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Request helpers
# ---------------------------------------------------------------------------


def current_day(now: datetime | None = None) -> date:
    """Today in the stats timezone."""
    now = as_utc(now) if now is not None else datetime.now(timezone.utc)
    return local_day(now, settings.stats_tz)


def resolve_range(
    start_date: date | None,
    end_date: date | None,
    now: datetime | None = None,
) -> tuple[date, date, date]:
    """(start, end, today) with defaults applied: end = today, start = end - default_range_days."""
    today = current_day(now)
    end = end_date or today
    start = start_date or end - timedelta(days=settings.default_range_days)
    if start > end:
        raise BadRequestError(f"start_date {start.isoformat()} is after end_date {end.isoformat()}")
    return start, end, today


async def get_project_or_404(db: AsyncSession, project_id: uuid.UUID) -> Project:
    try:
        project = await db.get(Project, project_id)
    except SQLAlchemyError as exc:
        raise ReconstructionError("could not read project") from exc
    if project is None:
        raise NotFoundError("Project not found")
    return project


async def resolve_region_id(db: AsyncSession, project_id: uuid.UUID, code: str) -> uuid.UUID | None:
    """Project region id for a public region code, or None if the code is unknown."""
    stmt = select(Region.id).where(
        Region.project_id == project_id,
        func.upper(Region.code) == code.upper(),
    )
    try:
        return (await db.execute(stmt)).scalars().first()
    except SQLAlchemyError as exc:
        raise ReconstructionError("could not read regions") from exc


async def build_filters(
    db: AsyncSession,
    project_id: uuid.UUID,
    platform: str | None = None,
    region: str | None = None,
    topic_id: uuid.UUID | None = None,
) -> StatsFilters | None:
    """Turn public filter values into engine filters.

    None means "no filter" for each argument. Returns None when the filters
    can match nothing (an unknown region code).
    """
    region_filter: DimensionFilter[uuid.UUID] = DimensionFilter.any()
    if region:
        region_id = await resolve_region_id(db, project_id, region)
        if region_id is None:
            logger.info(
                "Unknown region code %r for project %s",
                region,
                project_id,
                extra={"project_id": str(project_id)},
            )
            return None
        region_filter = DimensionFilter.equals(region_id)

    return StatsFilters(
        platform=DimensionFilter.equals(normalize_platform(platform)) if platform else DimensionFilter.any(),
        region_id=region_filter,
        topic_id=DimensionFilter.equals(topic_id) if topic_id else DimensionFilter.any(),
    )


# ---------------------------------------------------------------------------
# Core load: rollup (+ supplement) or reconstruction
# ---------------------------------------------------------------------------


async def _load_rows(
    db: AsyncSession,
    project_id: uuid.UUID,
    start: date,
    end: date,
    today: date,
    filters: StatsFilters,
    now: datetime | None,
    entry_point: str,
    by_platform: bool = False,
    topic_ids: list[uuid.UUID] | None = None,
) -> tuple[list[DailyStatRow], list[DailyStatRow]]:
    """(base, delta) rows for the range; delta is empty on the fallback path.

    `by_platform` and `topic_ids` only shape the fallback rows. Rollup and
    supplement rows always carry their dimensions.
    """
    log_extra = {
        "project_id": str(project_id),
        "start_date": start.isoformat(),
        "end_date": end.isoformat(),
    }

    try:
        rollup = await read_rollup_rows(db, project_id, start, end, filters)
    except RollupUnavailableError:
        logger.warning(
            "Rollup unavailable for project %s, rebuilding %s..%s from raw events",
            project_id,
            start,
            end,
            exc_info=True,
            extra={**log_extra, "phase": "rollup"},
        )
        ROLLUP_FALLBACKS.labels(entry_point=entry_point).inc()
        # PostgreSQL refuses further statements in an aborted transaction
        await db.rollback()
        rows = await reconstruct_daily_stats(
            db, project_id, start, end, filters, by_platform=by_platform, topic_ids=topic_ids
        )
        return rows, []

    if not start <= today <= end:
        return rollup, []

    watermark = await read_rollup_watermark(db, project_id) if settings.use_rollup_watermark else None
    supplement = await compute_today_supplement(db, project_id, filters, now=now, watermark=watermark)
    logger.debug(
        "Merging %d rollup rows with %d supplement rows",
        len(rollup),
        len(supplement),
        extra={**log_extra, "phase": "supplement"},
    )
    return rollup, supplement


def _platform_rows(rows: list[DailyStatRow]) -> list[DailyStatRow]:
    tracked = set(settings.tracked_platforms)
    return [replace(row, region_id=None, topic_id=None) for row in rows if row.platform in tracked]


# ---------------------------------------------------------------------------
# Public entry points
# ---------------------------------------------------------------------------


async def get_daily_stats(
    db: AsyncSession,
    project_id: uuid.UUID,
    start_date: date | None = None,
    end_date: date | None = None,
    platform: str | None = None,
    region: str | None = None,
    topic_id: uuid.UUID | None = None,
    now: datetime | None = None,
) -> list[DailyStatRow]:
    """One coarse row per entity per day (dense on the fallback path)."""
    start, end, today = resolve_range(start_date, end_date, now)
    with STATS_QUERY_DURATION.labels(entry_point="daily_stats").time():
        filters = await build_filters(db, project_id, platform, region, topic_id)
        if filters is None:
            return []
        return await _coarse(db, project_id, start, end, today, filters, now, "daily_stats")


async def _coarse(
    db: AsyncSession,
    project_id: uuid.UUID,
    start: date,
    end: date,
    today: date,
    filters: StatsFilters,
    now: datetime | None,
    entry_point: str,
) -> list[DailyStatRow]:
    base, delta = await _load_rows(db, project_id, start, end, today, filters, now, entry_point)
    return collapse_dimensions([*base, *delta])


async def get_daily_stats_by_platform(
    db: AsyncSession,
    project_id: uuid.UUID,
    start_date: date | None = None,
    end_date: date | None = None,
    region: str | None = None,
    topic_id: uuid.UUID | None = None,
    now: datetime | None = None,
) -> list[DailyStatRow]:
    """Rows keyed by (entity, day, platform) for the tracked platforms."""
    start, end, today = resolve_range(start_date, end_date, now)
    with STATS_QUERY_DURATION.labels(entry_point="daily_stats_by_platform").time():
        filters = await build_filters(db, project_id, None, region, topic_id)
        if filters is None:
            return []
        return await _by_platform(db, project_id, start, end, today, filters, now)


async def _by_platform(
    db: AsyncSession,
    project_id: uuid.UUID,
    start: date,
    end: date,
    today: date,
    filters: StatsFilters,
    now: datetime | None,
) -> list[DailyStatRow]:
    base, delta = await _load_rows(
        db, project_id, start, end, today, filters, now, "daily_stats_by_platform", by_platform=True
    )
    return merge_daily_stats(_platform_rows(base), _platform_rows(delta), by_dimensions=True)


async def get_mentions_summary(
    db: AsyncSession,
    project_id: uuid.UUID,
    start_date: date | None = None,
    end_date: date | None = None,
    platform: str | None = None,
    region: str | None = None,
    topic_id: uuid.UUID | None = None,
    now: datetime | None = None,
) -> list[EntitySummary]:
    """Per-entity totals, mention share and sentiment for the range."""
    start, end, today = resolve_range(start_date, end_date, now)
    with STATS_QUERY_DURATION.labels(entry_point="mentions_summary").time():
        filters = await build_filters(db, project_id, platform, region, topic_id)
        if filters is None:
            return []
        rows = await _coarse(db, project_id, start, end, today, filters, now, "mentions_summary")
        # Evaluations carry no dimensions; sentiment covers the whole range
        sentiment = await aggregate_sentiment(db, project_id, start, end)
    return reduce_summaries(rows, sentiment)


async def get_sentiment_from_daily_stats(
    db: AsyncSession,
    project_id: uuid.UUID,
    start_date: date | None = None,
    end_date: date | None = None,
    now: datetime | None = None,
) -> BrandSentiment:
    """Brand sentiment counts; zeros when the brand has no data."""
    summaries = await get_mentions_summary(db, project_id, start_date, end_date, now=now)
    brand = next((s for s in summaries if s.entity.is_brand), None)
    if brand is None:
        return BrandSentiment()

    return BrandSentiment(
        positive=brand.sentiment_positive,
        neutral=brand.sentiment_neutral,
        negative=brand.sentiment_negative,
        total=brand.sentiment_positive + brand.sentiment_neutral + brand.sentiment_negative,
        avg_rating=brand.avg_sentiment or 0.0,
    )


async def get_share_of_voice_trend(
    db: AsyncSession,
    project_id: uuid.UUID,
    days: int = 30,
    now: datetime | None = None,
) -> list[ShareOfVoicePoint]:
    """Daily share of voice over the last `days` days up to today."""
    if days < 0:
        raise BadRequestError("days must not be negative")
    today = current_day(now)
    rows = await get_daily_stats(db, project_id, today - timedelta(days=days), today, now=now)
    return compute_share_of_voice(rows)


async def get_platform_overview(
    session_factory: async_sessionmaker[AsyncSession],
    project_id: uuid.UUID,
    start_date: date | None = None,
    end_date: date | None = None,
    region: str | None = None,
    topic_id: uuid.UUID | None = None,
    now: datetime | None = None,
) -> PlatformOverview:
    """Per-platform mentions, citations, share and trend vs the preceding period.

    Both periods load concurrently, each on its own session. A failure in
    either period is raised only after the other has finished.
    """
    start, end, today = resolve_range(start_date, end_date, now)
    prev_start, prev_end = previous_period(start, end)
    platforms = list(settings.tracked_platforms)

    async with session_factory() as db:
        filters = await build_filters(db, project_id, None, region, topic_id)
    if filters is None:
        return compute_platform_overview([], [], platforms)

    async def load(period_start: date, period_end: date) -> list[DailyStatRow]:
        async with session_factory() as session:
            return await _by_platform(session, project_id, period_start, period_end, today, filters, now)

    with STATS_QUERY_DURATION.labels(entry_point="platform_overview").time():
        outcomes = await asyncio.gather(load(start, end), load(prev_start, prev_end), return_exceptions=True)

    errors = [outcome for outcome in outcomes if isinstance(outcome, BaseException)]
    if errors:
        for extra_error in errors[1:]:
            logger.error(
                "Previous-period load also failed: %s",
                extra_error,
                extra={"project_id": str(project_id), "phase": getattr(extra_error, "phase", None)},
            )
        raise errors[0]
    current, previous = outcomes
    return compute_platform_overview(current, previous, platforms)


async def get_topic_performance_by_platform(
    db: AsyncSession,
    project_id: uuid.UUID,
    start_date: date | None = None,
    end_date: date | None = None,
    region: str | None = None,
    now: datetime | None = None,
) -> list[TopicPerformance]:
    """Brand mentions per active topic and tracked platform, busiest topic first."""
    start, end, today = resolve_range(start_date, end_date, now)
    platforms = list(settings.tracked_platforms)

    with STATS_QUERY_DURATION.labels(entry_point="topic_performance").time():
        topics = await fetch_active_topics(db, project_id)
        if not topics:
            return []
        filters = await build_filters(db, project_id, None, region)
        if filters is None:
            return compute_topic_performance([], topics, platforms)
        base, delta = await _load_rows(
            db,
            project_id,
            start,
            end,
            today,
            filters,
            now,
            "topic_performance",
            by_platform=True,
            topic_ids=[topic_id for topic_id, _ in topics],
        )
    return compute_topic_performance([*base, *delta], topics, platforms)

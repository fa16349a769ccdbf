"""Real-time counters for the part of today the rollup has not covered yet."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from visibility_stats.aggregation.dates import as_utc, local_day, supplement_cutoff
from visibility_stats.aggregation.types import (
    DailyStatRow,
    DimensionalStatKey,
    DimensionKey,
    EventKind,
    StatsFilters,
)
from visibility_stats.core.config import settings
from visibility_stats.core.metrics import SUPPLEMENT_EVENTS
from visibility_stats.services.dimension_resolver import resolve_dimensions, resolve_origins
from visibility_stats.services.raw_events import fetch_active_competitors, fetch_brand_name, fetch_raw_events

logger = logging.getLogger(__name__)


def today_cutoff(now: datetime, watermark: datetime | None = None) -> datetime:
    """Start of the supplement window for the day `now` falls on."""
    tz = settings.stats_tz
    return supplement_cutoff(
        local_day(now, tz),
        tz,
        settings.rollup_cutoff_hour,
        settings.rollup_cutoff_minute,
        watermark,
    )


async def compute_today_supplement(
    db: AsyncSession,
    project_id: uuid.UUID,
    filters: StatsFilters | None = None,
    now: datetime | None = None,
    watermark: datetime | None = None,
) -> list[DailyStatRow]:
    """Sparse dimension-tagged rows for events in [cutoff, now).

    Every event must resolve to a response with a surviving prompt record;
    unresolvable events are dropped even when no filter is set. Rows carry
    `stat_date` = today and `responses_analyzed` = 0.
    """
    filters = filters or StatsFilters()
    now = as_utc(now) if now is not None else datetime.now(timezone.utc)
    tz = settings.stats_tz
    today = local_day(now, tz)
    cutoff = today_cutoff(now, watermark)

    log_extra = {"project_id": str(project_id), "phase": "supplement"}
    if cutoff >= now:
        logger.debug("Supplement window empty (cutoff %s >= now %s)", cutoff, now, extra=log_extra)
        return []

    brand_name = await fetch_brand_name(db, project_id)
    competitors = await fetch_active_competitors(db, project_id)
    names = {cid: name for cid, name in competitors}

    events = await fetch_raw_events(db, project_id, cutoff, now, frozenset(names))
    origins = await resolve_origins(db, (event.ai_response_id for event in events))
    resolution = resolve_dimensions(events, origins, filters)

    buckets: dict[DimensionalStatKey, DailyStatRow] = {}
    inactive = 0
    for event, origin in resolution.matched:
        if event.entity is None:
            inactive += 1
            continue
        dimensions = DimensionKey(origin.platform, origin.region_id, origin.topic_id)
        key = DimensionalStatKey(event.entity, today, dimensions)
        row = buckets.get(key)
        if row is None:
            row = buckets[key] = DailyStatRow(
                stat_date=today,
                entity_type=event.entity.entity_type,
                competitor_id=event.entity.competitor_id,
                entity_name=brand_name if event.entity.is_brand else names[event.entity.competitor_id],
                platform=origin.platform,
                region_id=origin.region_id,
                topic_id=origin.topic_id,
            )
        if event.kind == EventKind.MENTION:
            row.mentions_count += 1
        else:
            row.citations_count += 1

    counted = len(resolution.matched) - inactive
    SUPPLEMENT_EVENTS.labels(outcome="counted").inc(counted)
    SUPPLEMENT_EVENTS.labels(outcome="filtered").inc(resolution.filtered)
    SUPPLEMENT_EVENTS.labels(outcome="unresolved").inc(resolution.unresolved)
    SUPPLEMENT_EVENTS.labels(outcome="inactive_entity").inc(inactive)

    logger.info(
        "Supplement since %s: %d counted, %d filtered, %d unresolved, %d without active entity",
        cutoff.isoformat(),
        counted,
        resolution.filtered,
        resolution.unresolved,
        inactive,
        extra=log_extra,
    )
    return list(buckets.values())

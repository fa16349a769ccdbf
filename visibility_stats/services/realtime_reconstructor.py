"""Rebuild daily stats straight from the raw event tables.

Used as the fallback when the rollup cannot be read. Output is dense: one
row per entity per day (and per tracked platform and per topic when split
that way), zero rows included, so callers can draw a complete time series.
"""

from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from collections.abc import Iterable, Sequence
from datetime import date
from zoneinfo import ZoneInfo

from sqlalchemy.ext.asyncio import AsyncSession

from visibility_stats.aggregation.dates import day_window, iter_days, local_day
from visibility_stats.aggregation.types import (
    DailyStatRow,
    EntityKey,
    EventKind,
    RawEvent,
    ResolvedOrigin,
    StatsFilters,
)
from visibility_stats.core.config import settings
from visibility_stats.services.dimension_resolver import resolve_dimensions, resolve_origins
from visibility_stats.services.raw_events import fetch_active_competitors, fetch_brand_name, fetch_raw_events

logger = logging.getLogger(__name__)

# (day, entity, platform, topic)
_Slot = tuple[date, EntityKey, str | None, uuid.UUID | None]


# ---------------------------------------------------------------------------
# Pure functions
# ---------------------------------------------------------------------------


def build_dense_rows(
    start: date,
    end: date,
    brand_name: str,
    competitors: Sequence[tuple[uuid.UUID, str]],
    events: Iterable[tuple[RawEvent, ResolvedOrigin | None]],
    tz: ZoneInfo,
    platforms: Sequence[str] | None = None,
    topics: Sequence[uuid.UUID] | None = None,
) -> list[DailyStatRow]:
    """Count (event, origin) pairs into a dense day x entity [x platform] [x topic] grid.

    Events outside [start, end] or without an entity are ignored. When
    `platforms` or `topics` is given, events whose origin falls outside those
    slots (or has no origin) are ignored too. Rows are ordered by day, then
    brand, then competitors in the given order, then platform, then topic.
    """
    mentions: dict[_Slot, int] = defaultdict(int)
    citations: dict[_Slot, int] = defaultdict(int)
    tracked_platforms = set(platforms) if platforms is not None else None
    tracked_topics = set(topics) if topics is not None else None

    for event, origin in events:
        if event.entity is None:
            continue
        platform = origin.platform if origin is not None else None
        topic_id = origin.topic_id if origin is not None else None
        if tracked_platforms is None:
            platform = None
        elif platform not in tracked_platforms:
            continue
        if tracked_topics is None:
            topic_id = None
        elif topic_id not in tracked_topics:
            continue
        day = local_day(event.created_at, tz)
        if not start <= day <= end:
            continue
        bucket = mentions if event.kind == EventKind.MENTION else citations
        bucket[(day, event.entity, platform, topic_id)] += 1

    entities: list[tuple[EntityKey, str]] = [(EntityKey.brand(), brand_name)]
    entities.extend((EntityKey.competitor(cid), name) for cid, name in competitors)
    platform_slots: Sequence[str | None] = list(platforms) if platforms is not None else [None]
    topic_slots: Sequence[uuid.UUID | None] = list(topics) if topics is not None else [None]

    rows: list[DailyStatRow] = []
    for day in iter_days(start, end):
        for entity, name in entities:
            for platform in platform_slots:
                for topic_id in topic_slots:
                    key = (day, entity, platform, topic_id)
                    rows.append(
                        DailyStatRow(
                            stat_date=day,
                            entity_type=entity.entity_type,
                            competitor_id=entity.competitor_id,
                            entity_name=name,
                            mentions_count=mentions.get(key, 0),
                            citations_count=citations.get(key, 0),
                            responses_analyzed=0,
                            platform=platform,
                            topic_id=topic_id,
                        )
                    )
    return rows


# ---------------------------------------------------------------------------
# Async fetch + delegate
# ---------------------------------------------------------------------------


async def reconstruct_daily_stats(
    db: AsyncSession,
    project_id: uuid.UUID,
    start: date,
    end: date,
    filters: StatsFilters | None = None,
    by_platform: bool = False,
    topic_ids: Sequence[uuid.UUID] | None = None,
) -> list[DailyStatRow]:
    """Dense daily stats for [start, end] computed from raw mentions and citations.

    Without filters, the platform split or a topic split, events count on
    entity identity alone, even when their originating prompt is gone. Any of
    those routes events through the dimension join, which drops unresolvable
    events. `topic_ids` splits rows per topic and keeps only those topics.
    Raises ReconstructionError on storage errors.
    """
    filters = filters or StatsFilters()
    tz = settings.stats_tz

    brand_name = await fetch_brand_name(db, project_id)
    competitors = await fetch_active_competitors(db, project_id)
    active_ids = frozenset(cid for cid, _ in competitors)

    window_start, window_end = day_window(start, end, tz)
    events = await fetch_raw_events(db, project_id, window_start, window_end, active_ids)

    pairs: list[tuple[RawEvent, ResolvedOrigin | None]]
    if filters.is_unfiltered and not by_platform and topic_ids is None:
        pairs = [(event, None) for event in events]
    else:
        origins = await resolve_origins(db, (event.ai_response_id for event in events))
        resolution = resolve_dimensions(events, origins, filters)
        pairs = list(resolution.matched)
        logger.debug(
            "Reconstruction dropped %d unresolved and %d filtered events",
            resolution.unresolved,
            resolution.filtered,
            extra={"project_id": str(project_id), "phase": "reconstruction"},
        )

    platforms = list(settings.tracked_platforms) if by_platform else None
    rows = build_dense_rows(start, end, brand_name, competitors, pairs, tz, platforms, topic_ids)
    logger.info(
        "Reconstructed %d rows from %d raw events for project %s",
        len(rows),
        len(events),
        project_id,
        extra={
            "project_id": str(project_id),
            "phase": "reconstruction",
            "start_date": start.isoformat(),
            "end_date": end.isoformat(),
        },
    )
    return rows


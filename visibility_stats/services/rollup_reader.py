"""Read the nightly pre-aggregated rollup (daily_brand_stats)."""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime

from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from visibility_stats.aggregation.dates import as_utc
from visibility_stats.aggregation.types import DailyStatRow, EntityType, StatsFilters
from visibility_stats.core.exceptions import RollupUnavailableError
from visibility_stats.models import DailyBrandStat, RollupWatermark

logger = logging.getLogger(__name__)


def _to_row(stat: DailyBrandStat) -> DailyStatRow | None:
    try:
        entity_type = EntityType(stat.entity_type)
    except ValueError:
        return None
    if entity_type == EntityType.COMPETITOR and stat.competitor_id is None:
        return None
    return DailyStatRow(
        stat_date=stat.stat_date,
        entity_type=entity_type,
        competitor_id=stat.competitor_id if entity_type == EntityType.COMPETITOR else None,
        entity_name=stat.entity_name,
        mentions_count=stat.mentions_count or 0,
        citations_count=stat.citations_count or 0,
        responses_analyzed=stat.responses_analyzed or 0,
        platform=stat.platform,
        region_id=stat.region_id,
        topic_id=stat.topic_id,
    )


async def read_rollup_rows(
    db: AsyncSession,
    project_id: uuid.UUID,
    start: date,
    end: date,
    filters: StatsFilters | None = None,
) -> list[DailyStatRow]:
    """Rollup rows with start <= stat_date <= end, optionally dimension-filtered.

    Raises RollupUnavailableError on any storage error; the caller decides how
    to recover.
    """
    filters = filters or StatsFilters()
    conditions = [
        DailyBrandStat.project_id == project_id,
        DailyBrandStat.stat_date >= start,
        DailyBrandStat.stat_date <= end,
    ]
    if not filters.platform.is_any:
        conditions.append(DailyBrandStat.platform == filters.platform.value)
    if not filters.region_id.is_any:
        conditions.append(DailyBrandStat.region_id == filters.region_id.value)
    if not filters.topic_id.is_any:
        conditions.append(DailyBrandStat.topic_id == filters.topic_id.value)

    stmt = select(DailyBrandStat).where(*conditions).order_by(DailyBrandStat.stat_date)

    try:
        stats = (await db.execute(stmt)).scalars().all()
    except SQLAlchemyError as exc:
        raise RollupUnavailableError("could not read daily_brand_stats") from exc

    rows: list[DailyStatRow] = []
    skipped = 0
    for stat in stats:
        row = _to_row(stat)
        if row is None:
            skipped += 1
            continue
        rows.append(row)

    if skipped:
        logger.warning(
            "Skipped %d malformed rollup rows for project %s",
            skipped,
            project_id,
            extra={"project_id": str(project_id), "phase": "rollup"},
        )
    return rows


async def read_rollup_watermark(db: AsyncSession, project_id: uuid.UUID) -> datetime | None:
    """Latest instant the rollup covers for this project (or globally).

    A storage error is logged and treated as "no watermark".
    """
    stmt = select(func.max(RollupWatermark.completed_at)).where(
        or_(RollupWatermark.project_id == project_id, RollupWatermark.project_id.is_(None))
    )
    try:
        completed_at = (await db.execute(stmt)).scalar_one_or_none()
    except SQLAlchemyError:
        logger.warning(
            "Rollup watermark unreadable for project %s, using fixed cutoff",
            project_id,
            exc_info=True,
            extra={"project_id": str(project_id), "phase": "watermark"},
        )
        # PostgreSQL refuses further statements in an aborted transaction
        await db.rollback()
        return None
    return as_utc(completed_at) if completed_at is not None else None

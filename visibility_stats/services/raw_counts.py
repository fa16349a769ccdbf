"""Direct counts from the raw mention/citation tables.

Shown by the dashboard next to the rollup-backed series. Date bounds are
whole calendar days in the stats timezone.
"""

from __future__ import annotations

import logging
import uuid
from collections import Counter
from dataclasses import dataclass
from datetime import date, timedelta

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from visibility_stats.aggregation.dates import start_of_day
from visibility_stats.core.config import settings
from visibility_stats.core.exceptions import ReconstructionError
from visibility_stats.models import BrandMention, Citation

logger = logging.getLogger(__name__)


@dataclass
class CitedDomain:
    domain: str
    count: int
    citation_type: str  # type of the first citation seen for the domain


@dataclass
class CitationTypeStats:
    brand: int = 0
    competitor: int = 0
    other: int = 0
    total: int = 0


def _date_conditions(column, start: date | None, end: date | None) -> list:
    tz = settings.stats_tz
    conditions = []
    if start is not None:
        conditions.append(column >= start_of_day(start, tz))
    if end is not None:
        conditions.append(column < start_of_day(end + timedelta(days=1), tz))
    return conditions


async def _scalar_count(db: AsyncSession, stmt, what: str) -> int:
    try:
        return (await db.execute(stmt)).scalar_one() or 0
    except SQLAlchemyError as exc:
        raise ReconstructionError(f"could not count {what}") from exc


async def get_brand_mentions_count(
    db: AsyncSession,
    project_id: uuid.UUID,
    brand_type: str = "client",
    competitor_id: uuid.UUID | None = None,
    start: date | None = None,
    end: date | None = None,
) -> int:
    conditions = [BrandMention.project_id == project_id, BrandMention.brand_type == brand_type]
    if competitor_id is not None:
        conditions.append(BrandMention.competitor_id == competitor_id)
    conditions.extend(_date_conditions(BrandMention.created_at, start, end))

    stmt = select(func.count()).select_from(BrandMention).where(*conditions)
    return await _scalar_count(db, stmt, "brand_mentions")


async def get_citations_count(
    db: AsyncSession,
    project_id: uuid.UUID,
    citation_type: str = "brand",
    competitor_id: uuid.UUID | None = None,
    start: date | None = None,
    end: date | None = None,
) -> int:
    conditions = [Citation.project_id == project_id, Citation.citation_type == citation_type]
    if competitor_id is not None:
        conditions.append(Citation.competitor_id == competitor_id)
    conditions.extend(_date_conditions(Citation.created_at, start, end))

    stmt = select(func.count()).select_from(Citation).where(*conditions)
    return await _scalar_count(db, stmt, "citations")


async def get_top_cited_domains(
    db: AsyncSession,
    project_id: uuid.UUID,
    limit: int = 10,
    start: date | None = None,
    end: date | None = None,
) -> list[CitedDomain]:
    """Most cited domains, counted over at most `citation_record_cap` newest citations."""
    cap = settings.citation_record_cap
    stmt = (
        select(Citation.domain, Citation.citation_type)
        .where(
            Citation.project_id == project_id,
            Citation.domain.is_not(None),
            *_date_conditions(Citation.created_at, start, end),
        )
        .order_by(Citation.created_at.desc())
        .limit(cap + 1)
    )
    try:
        rows = (await db.execute(stmt)).all()
    except SQLAlchemyError as exc:
        raise ReconstructionError("could not read citation domains") from exc

    if len(rows) > cap:
        logger.warning(
            "Citation domains counted over the newest %d citations only for project %s",
            cap,
            project_id,
            extra={"project_id": str(project_id)},
        )
        rows = rows[:cap]

    counts: Counter[str] = Counter()
    first_type: dict[str, str] = {}
    for domain, citation_type in rows:
        if not domain:
            continue
        counts[domain] += 1
        first_type.setdefault(domain, citation_type)

    return [CitedDomain(domain, count, first_type[domain]) for domain, count in counts.most_common(limit)]


async def get_citation_stats_by_type(
    db: AsyncSession,
    project_id: uuid.UUID,
    start: date | None = None,
    end: date | None = None,
) -> CitationTypeStats:
    stmt = (
        select(Citation.citation_type, func.count())
        .where(Citation.project_id == project_id, *_date_conditions(Citation.created_at, start, end))
        .group_by(Citation.citation_type)
    )
    try:
        rows = (await db.execute(stmt)).all()
    except SQLAlchemyError as exc:
        raise ReconstructionError("could not read citation types") from exc

    stats = CitationTypeStats()
    for citation_type, count in rows:
        if citation_type == "brand":
            stats.brand += count
        elif citation_type == "competitor":
            stats.competitor += count
        else:
            stats.other += count
        stats.total += count
    return stats

"""Thin fetch layer over the raw event tables.

Shared by the real-time reconstruction and the today supplement. Reads
mentions and citations in a UTC window and attributes each to the brand or to
one of the currently-active competitors.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from visibility_stats.aggregation.dates import as_utc
from visibility_stats.aggregation.types import EntityKey, EventKind, RawEvent
from visibility_stats.core.exceptions import NotFoundError, ReconstructionError
from visibility_stats.models import BrandMention, Citation, Competitor, Project, Topic

logger = logging.getLogger(__name__)

MENTION_BRAND_TYPES = ("client", "competitor")
CITATION_ENTITY_TYPES = ("brand", "competitor")


def attribute_entity(
    source_type: str,
    competitor_id: uuid.UUID | None,
    active_competitor_ids: set[uuid.UUID] | frozenset[uuid.UUID],
) -> EntityKey | None:
    """Map a brand_type / citation_type to an entity identity.

    Competitor events count only for competitors that are active right now.
    """
    if source_type in ("client", "brand"):
        return EntityKey.brand()
    if source_type == "competitor" and competitor_id in active_competitor_ids:
        return EntityKey.competitor(competitor_id)
    return None


async def fetch_brand_name(db: AsyncSession, project_id: uuid.UUID) -> str:
    try:
        project = await db.get(Project, project_id)
    except SQLAlchemyError as exc:
        raise ReconstructionError("could not read project") from exc
    if project is None:
        raise NotFoundError("Project not found")
    return project.display_brand_name


async def fetch_active_competitors(db: AsyncSession, project_id: uuid.UUID) -> list[tuple[uuid.UUID, str]]:
    """Active competitors as (id, name), ordered by name."""
    try:
        result = await db.execute(
            select(Competitor.id, Competitor.name)
            .where(Competitor.project_id == project_id, Competitor.is_active.is_(True))
            .order_by(Competitor.name, Competitor.id)
        )
    except SQLAlchemyError as exc:
        raise ReconstructionError("could not read competitors") from exc
    return [(row.id, row.name) for row in result.all()]


async def fetch_active_topics(db: AsyncSession, project_id: uuid.UUID) -> list[tuple[uuid.UUID, str]]:
    """Active topics as (id, name), ordered by name."""
    try:
        result = await db.execute(
            select(Topic.id, Topic.name)
            .where(Topic.project_id == project_id, Topic.is_active.is_(True))
            .order_by(Topic.name, Topic.id)
        )
    except SQLAlchemyError as exc:
        raise ReconstructionError("could not read topics") from exc
    return [(row.id, row.name) for row in result.all()]


async def fetch_raw_events(
    db: AsyncSession,
    project_id: uuid.UUID,
    window_start: datetime,
    window_end: datetime,
    active_competitor_ids: set[uuid.UUID] | frozenset[uuid.UUID],
) -> list[RawEvent]:
    """Mentions and citations with window_start <= created_at < window_end.

    Citations of type "other" are not entity events and are not read.
    Events of inactive or unknown competitors come back with `entity=None`.
    """
    start = as_utc(window_start)
    end = as_utc(window_end)

    mention_stmt = select(
        BrandMention.brand_type,
        BrandMention.competitor_id,
        BrandMention.created_at,
        BrandMention.ai_response_id,
    ).where(
        BrandMention.project_id == project_id,
        BrandMention.brand_type.in_(MENTION_BRAND_TYPES),
        BrandMention.created_at >= start,
        BrandMention.created_at < end,
    )
    citation_stmt = select(
        Citation.citation_type,
        Citation.competitor_id,
        Citation.created_at,
        Citation.ai_response_id,
    ).where(
        Citation.project_id == project_id,
        Citation.citation_type.in_(CITATION_ENTITY_TYPES),
        Citation.created_at >= start,
        Citation.created_at < end,
    )

    try:
        mention_rows = (await db.execute(mention_stmt)).all()
        citation_rows = (await db.execute(citation_stmt)).all()
    except SQLAlchemyError as exc:
        logger.error(
            "Raw event read failed for project %s",
            project_id,
            extra={"project_id": str(project_id), "phase": "reconstruction"},
        )
        raise ReconstructionError("could not read brand_mentions/citations") from exc

    events: list[RawEvent] = []
    for source_type, competitor_id, created_at, ai_response_id in mention_rows:
        events.append(
            RawEvent(
                kind=EventKind.MENTION,
                entity=attribute_entity(source_type, competitor_id, active_competitor_ids),
                created_at=as_utc(created_at),
                ai_response_id=ai_response_id,
            )
        )
    for source_type, competitor_id, created_at, ai_response_id in citation_rows:
        events.append(
            RawEvent(
                kind=EventKind.CITATION,
                entity=attribute_entity(source_type, competitor_id, active_competitor_ids),
                created_at=as_utc(created_at),
                ai_response_id=ai_response_id,
            )
        )
    return events

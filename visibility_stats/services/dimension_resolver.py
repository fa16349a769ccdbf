"""Resolve the platform/region/topic an event originated from.

An event's dimensions live on the response that produced it (platform) and
on the tracked prompt behind that response (region, topic). Events whose
response or prompt record is gone are unresolvable and are never counted on
a dimension-aware path.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from visibility_stats.aggregation.platforms import normalize_platform
from visibility_stats.aggregation.types import RawEvent, ResolvedOrigin, StatsFilters
from visibility_stats.core.exceptions import ReconstructionError
from visibility_stats.models import AiResponse, PromptTracking

logger = logging.getLogger(__name__)

# Keeps IN lists under driver parameter limits
_ID_CHUNK = 500


@dataclass
class DimensionResolution:
    matched: list[tuple[RawEvent, ResolvedOrigin]] = field(default_factory=list)
    filtered: int = 0
    unresolved: int = 0


async def resolve_origins(
    db: AsyncSession,
    ai_response_ids: Iterable[uuid.UUID | None],
) -> dict[uuid.UUID, ResolvedOrigin]:
    """Look up the origin of each response id.

    Ids missing from the result are unresolvable: the response row is gone
    or it has no surviving prompt_tracking record.
    """
    ids = sorted({rid for rid in ai_response_ids if rid is not None}, key=str)
    origins: dict[uuid.UUID, ResolvedOrigin] = {}
    if not ids:
        return origins

    try:
        for i in range(0, len(ids), _ID_CHUNK):
            chunk = ids[i : i + _ID_CHUNK]
            stmt = (
                select(
                    AiResponse.id,
                    AiResponse.platform,
                    PromptTracking.region_id,
                    PromptTracking.topic_id,
                )
                .join(PromptTracking, AiResponse.prompt_tracking_id == PromptTracking.id)
                .where(AiResponse.id.in_(chunk))
            )
            for response_id, platform, region_id, topic_id in (await db.execute(stmt)).all():
                origins[response_id] = ResolvedOrigin(
                    platform=normalize_platform(platform),
                    region_id=region_id,
                    topic_id=topic_id,
                )
    except SQLAlchemyError as exc:
        logger.error("Dimension join failed", extra={"phase": "reconstruction"})
        raise ReconstructionError("could not resolve event dimensions") from exc

    return origins


def resolve_dimensions(
    events: Iterable[RawEvent],
    origins: dict[uuid.UUID, ResolvedOrigin],
    filters: StatsFilters,
) -> DimensionResolution:
    """Pair events with their origin, dropping unresolvable and filtered-out events."""
    resolution = DimensionResolution()
    for event in events:
        origin = origins.get(event.ai_response_id) if event.ai_response_id is not None else None
        if origin is None:
            resolution.unresolved += 1
            continue
        if not filters.matches(origin):
            resolution.filtered += 1
            continue
        resolution.matched.append((event, origin))
    return resolution

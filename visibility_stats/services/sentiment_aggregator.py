"""Sentiment per entity from brand_evaluations."""

from __future__ import annotations

import logging
import uuid
from datetime import date, timedelta

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from visibility_stats.aggregation.dates import start_of_day
from visibility_stats.aggregation.sentiment import SentimentRecord, accumulate_sentiment
from visibility_stats.aggregation.types import EntityKey, SentimentAccumulator
from visibility_stats.core.config import settings
from visibility_stats.core.exceptions import SentimentQueryError
from visibility_stats.models import BrandEvaluation

logger = logging.getLogger(__name__)


async def aggregate_sentiment(
    db: AsyncSession,
    project_id: uuid.UUID,
    start: date | None = None,
    end: date | None = None,
) -> dict[EntityKey, SentimentAccumulator]:
    """Label counts per entity over at most `sentiment_record_cap` newest evaluations."""
    tz = settings.stats_tz
    cap = settings.sentiment_record_cap

    conditions = [BrandEvaluation.project_id == project_id]
    if start is not None:
        conditions.append(BrandEvaluation.created_at >= start_of_day(start, tz))
    if end is not None:
        conditions.append(BrandEvaluation.created_at < start_of_day(end + timedelta(days=1), tz))

    # One row past the cap tells a full page from a truncated one
    stmt = (
        select(
            BrandEvaluation.entity_type,
            BrandEvaluation.entity_name,
            BrandEvaluation.competitor_id,
            BrandEvaluation.sentiment,
            BrandEvaluation.sentiment_score,
        )
        .where(*conditions)
        .order_by(BrandEvaluation.created_at.desc())
        .limit(cap + 1)
    )

    try:
        rows = (await db.execute(stmt)).all()
    except SQLAlchemyError as exc:
        logger.error(
            "Sentiment read failed for project %s",
            project_id,
            extra={"project_id": str(project_id), "phase": "sentiment"},
        )
        raise SentimentQueryError("could not read brand_evaluations") from exc

    if len(rows) > cap:
        logger.warning(
            "Sentiment evaluations truncated to the newest %d for project %s",
            cap,
            project_id,
            extra={
                "project_id": str(project_id),
                "phase": "sentiment",
                "start_date": start.isoformat() if start else None,
                "end_date": end.isoformat() if end else None,
            },
        )
        rows = rows[:cap]

    records = [
        SentimentRecord(
            entity_type=entity_type,
            entity_name=entity_name,
            competitor_id=competitor_id,
            sentiment=sentiment,
            sentiment_score=score,
        )
        for entity_type, entity_name, competitor_id, sentiment, score in rows
    ]
    return accumulate_sentiment(records)

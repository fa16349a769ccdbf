import uuid
from datetime import date

from sqlalchemy import Date, ForeignKey, Index, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from visibility_stats.db.base import Base


class DailyBrandStat(Base):
    """Nightly rollup: one counter row per (day, entity, platform, region, topic).

    Written by the external aggregation job; read-only here.
    """

    __tablename__ = "daily_brand_stats"
    __table_args__ = (
        Index("idx_daily_brand_stats_project_date", "project_id", "stat_date"),
        Index("idx_daily_brand_stats_common_query", "project_id", "stat_date", "entity_type", "platform"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    stat_date: Mapped[date] = mapped_column(Date, nullable=False)

    entity_type: Mapped[str] = mapped_column(String(20), nullable=False)  # brand | competitor
    competitor_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("competitors.id", ondelete="CASCADE"), nullable=True
    )
    entity_name: Mapped[str] = mapped_column(String(255), nullable=False)  # cached at aggregation time

    mentions_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    citations_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    responses_analyzed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Dimensions (NULL for legacy rows)
    platform: Mapped[str | None] = mapped_column(String(30), nullable=True)
    region_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("regions.id", ondelete="SET NULL"), nullable=True
    )
    topic_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("topics.id", ondelete="SET NULL"), nullable=True
    )

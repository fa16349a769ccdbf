import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, Float, ForeignKey, Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from visibility_stats.db.base import Base


class BrandEvaluation(Base):
    """Daily sentiment evaluation of the brand or a competitor."""

    __tablename__ = "brand_evaluations"
    __table_args__ = (Index("idx_brand_evaluations_project_created", "project_id", "created_at"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    entity_type: Mapped[str] = mapped_column(String(20), nullable=False)  # brand | competitor
    entity_name: Mapped[str] = mapped_column(String(255), nullable=False)
    competitor_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("competitors.id", ondelete="CASCADE"), nullable=True
    )
    sentiment: Mapped[str | None] = mapped_column(String(20), nullable=True)  # positive | neutral | negative | mixed
    sentiment_score: Mapped[float | None] = mapped_column(Float, nullable=True)  # -1 .. 1
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

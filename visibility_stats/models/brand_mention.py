import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from visibility_stats.db.base import Base


class BrandMention(Base):
    __tablename__ = "brand_mentions"
    __table_args__ = (Index("idx_brand_mentions_project_created", "project_id", "created_at"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    ai_response_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("ai_responses.id", ondelete="SET NULL"), nullable=True
    )
    brand_type: Mapped[str] = mapped_column(String(20), nullable=False)  # client | competitor
    competitor_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("competitors.id", ondelete="CASCADE"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from visibility_stats.db.base import Base


class AiResponse(Base):
    """One answer produced by an AI platform for a tracked prompt."""

    __tablename__ = "ai_responses"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    prompt_tracking_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("prompt_tracking.id", ondelete="SET NULL"), nullable=True, index=True
    )
    platform: Mapped[str] = mapped_column(String(30), nullable=False)  # openai | gemini | claude | perplexity
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

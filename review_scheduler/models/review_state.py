"""Review state model: one SM-2 record per learner-question pair."""

from datetime import datetime

from sqlalchemy import DateTime, Float, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from review_scheduler.models.base import Base, TimestampMixin


class ReviewStateRecord(Base, TimestampMixin):
    """Persisted SM-2 scheduling state, versioned for optimistic concurrency."""

    __tablename__ = "review_states"
    __table_args__ = (UniqueConstraint("learner_id", "question_id", name="uq_review_states_key"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    learner_id: Mapped[str] = mapped_column(String(255), nullable=False)
    question_id: Mapped[str] = mapped_column(String(255), nullable=False)
    repetition: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    interval: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    easiness: Mapped[float] = mapped_column(Float, nullable=False, default=2.5)
    due_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

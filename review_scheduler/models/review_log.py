from datetime import datetime

from sqlalchemy import DateTime, Float, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from review_scheduler.config import utcnow
from review_scheduler.models.base import Base


class ReviewLog(Base):
    __tablename__ = "review_logs"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    learner_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    question_id: Mapped[str] = mapped_column(String(255), nullable=False)
    quality: Mapped[int] = mapped_column(Integer, nullable=False)  # 1-5, <3 is a failure
    answered_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    repetition_before: Mapped[int] = mapped_column(Integer, nullable=False)
    repetition_after: Mapped[int] = mapped_column(Integer, nullable=False)
    interval_before: Mapped[int] = mapped_column(Integer, nullable=False)
    interval_after: Mapped[int] = mapped_column(Integer, nullable=False)
    easiness_before: Mapped[float] = mapped_column(Float, nullable=False)
    easiness_after: Mapped[float] = mapped_column(Float, nullable=False)
    due_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)  # State version written by this response
    recorded_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

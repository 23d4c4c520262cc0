"""SQLAlchemy ORM models for review scheduling."""

from review_scheduler.models.base import Base
from review_scheduler.models.review_log import ReviewLog
from review_scheduler.models.review_state import ReviewStateRecord

__all__ = ["Base", "ReviewLog", "ReviewStateRecord"]

"""SM-2 scheduling engine: transition function, store contract and orchestrator."""

from review_scheduler.srs.errors import (
    ConcurrencyConflictError,
    SchedulerError,
    StaleStateError,
    StoreUnavailableError,
    ValidationError,
)
from review_scheduler.srs.scheduler import ReviewScheduler
from review_scheduler.srs.sm2 import ReviewKey, ReviewState, quality_for_answer, transition
from review_scheduler.srs.store import InMemoryReviewStore, ReviewStore, SQLAlchemyReviewStore

__all__ = [
    "ConcurrencyConflictError",
    "InMemoryReviewStore",
    "ReviewKey",
    "ReviewScheduler",
    "ReviewState",
    "ReviewStore",
    "SQLAlchemyReviewStore",
    "SchedulerError",
    "StaleStateError",
    "StoreUnavailableError",
    "ValidationError",
    "quality_for_answer",
    "transition",
]

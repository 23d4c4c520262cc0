"""Outbound notifications for recorded responses.

Delivery is at-least-once per sink with bounded retries. A sink that keeps
failing is logged and counted; it never undoes the persisted state.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential

from review_scheduler.config import settings, to_naive_utc
from review_scheduler.models.review_log import ReviewLog
from review_scheduler.srs.schemas import ReviewRecorded

logger = logging.getLogger(__name__)


class EventSink(ABC):
    """Receives ReviewRecorded events."""

    @property
    def name(self) -> str:
        return type(self).__name__

    @abstractmethod
    async def deliver(self, event: ReviewRecorded) -> None:
        """Deliver one event. Raise to request a retry."""
        ...


class LoggingEventSink(EventSink):
    """Writes each event to the log as JSON."""

    def __init__(self, level: int = logging.INFO) -> None:
        self.level = level

    async def deliver(self, event: ReviewRecorded) -> None:
        logger.log(self.level, "Review recorded: %s", event.model_dump_json())


class ReviewLogSink(EventSink):
    """Appends a row to ``review_logs`` for each event."""

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]) -> None:
        self._sessionmaker = sessionmaker

    async def deliver(self, event: ReviewRecorded) -> None:
        async with self._sessionmaker() as session:
            session.add(
                ReviewLog(
                    learner_id=event.learner_id,
                    question_id=event.question_id,
                    quality=event.quality,
                    answered_at=to_naive_utc(event.answered_at),
                    repetition_before=event.repetition_before,
                    repetition_after=event.repetition_after,
                    interval_before=event.interval_before,
                    interval_after=event.interval_after,
                    easiness_before=event.easiness_before,
                    easiness_after=event.easiness_after,
                    due_at=to_naive_utc(event.due_at),
                    version=event.version,
                )
            )
            await session.commit()


class EventPublisher:
    """Fans events out to sinks with per-sink retries."""

    def __init__(
        self,
        sinks: Sequence[EventSink] = (),
        max_attempts: int = settings.event_max_attempts,
        max_wait_seconds: float = 2.0,
    ) -> None:
        self.sinks = list(sinks)
        self.max_attempts = max(1, max_attempts)
        self.max_wait_seconds = max_wait_seconds
        self.failed_deliveries = 0

    async def publish(self, event: ReviewRecorded) -> bool:
        """Deliver ``event`` to every sink.

        Returns:
            True if every sink accepted the event.
        """
        delivered = True
        for sink in self.sinks:
            try:
                async for attempt in AsyncRetrying(
                    stop=stop_after_attempt(self.max_attempts),
                    wait=wait_exponential(multiplier=0.1, max=self.max_wait_seconds),
                    reraise=True,
                ):
                    with attempt:
                        await sink.deliver(event)
            except Exception:
                self.failed_deliveries += 1
                delivered = False
                logger.exception(
                    "Sink %s failed to deliver event for %s/%s after %d attempts",
                    sink.name,
                    event.learner_id,
                    event.question_id,
                    self.max_attempts,
                )
        return delivered

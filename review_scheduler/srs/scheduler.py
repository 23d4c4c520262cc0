"""Review scheduling orchestrator.

Applies one response to the stored SM-2 state for a learner-question pair:
fetch, transition, conditional upsert. Responses for the same key are
serialized in-process by a per-key lock and across processes by the store's
version check; a lost version race re-runs the whole attempt from a fresh
read so no response is applied against a stale state.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable, Sequence
from contextlib import asynccontextmanager
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from review_scheduler.config import Settings, settings, utcnow
from review_scheduler.database import async_session
from review_scheduler.srs.errors import (
    ConcurrencyConflictError,
    StaleStateError,
    StoreUnavailableError,
)
from review_scheduler.srs.events import EventPublisher, EventSink, LoggingEventSink, ReviewLogSink
from review_scheduler.srs.schemas import ResponseSubmission, ReviewRecorded
from review_scheduler.srs.sm2 import ReviewKey, ReviewState, seed_state, transition
from review_scheduler.srs.store import ReviewStore, SQLAlchemyReviewStore

logger = logging.getLogger(__name__)


class KeyedLocks:
    """One asyncio.Lock per key, dropped once no task holds or awaits it."""

    def __init__(self) -> None:
        self._locks: dict[ReviewKey, asyncio.Lock] = {}
        self._waiters: dict[ReviewKey, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, key: ReviewKey) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                del self._locks[key]


class ReviewScheduler:
    """Records responses against a ReviewStore."""

    def __init__(
        self,
        store: ReviewStore,
        *,
        sinks: Sequence[EventSink] = (),
        config: Settings = settings,
        clock: Callable[[], datetime] = utcnow,
        conflict_wait_max: float = 0.5,
    ) -> None:
        """Initialize the scheduler.

        Args:
            store: Where review states are read and written.
            sinks: Receivers of a ReviewRecorded event after each write.
            config: Timeouts and retry budgets.
            clock: Source of ``updated_at`` stamps.
            conflict_wait_max: Upper bound of the backoff between conflict retries.
        """
        self.store = store
        self.publisher = EventPublisher(sinks, max_attempts=config.event_max_attempts)
        self.timeout = config.store_timeout_seconds
        self.max_conflict_attempts = max(1, config.max_conflict_attempts)
        self.max_read_attempts = max(1, config.max_read_attempts)
        self.clock = clock
        self.conflict_wait_max = conflict_wait_max
        self._locks = KeyedLocks()

    async def record_response(
        self,
        learner_id: str,
        question_id: str,
        quality: int,
        answered_at: datetime,
    ) -> ReviewState:
        """Apply a response and persist the resulting state.

        Args:
            learner_id: The learner who answered.
            question_id: The question answered.
            quality: Response quality (1-5, <3 is a failure).
            answered_at: When the response was given.

        Returns:
            The persisted ReviewState, including its store version.

        Raises:
            ValidationError: Invalid input. The store is not touched.
            StoreUnavailableError: A read or write failed or timed out.
            ConcurrencyConflictError: The key kept changing under us.
        """
        submission = ResponseSubmission.parse(learner_id, question_id, quality, answered_at)
        key = submission.key

        async with self._locks.hold(key):
            try:
                async for attempt in AsyncRetrying(
                    retry=retry_if_exception_type(StaleStateError),
                    stop=stop_after_attempt(self.max_conflict_attempts),
                    wait=wait_exponential(multiplier=0.01, max=self.conflict_wait_max),
                    before_sleep=_log_conflict,
                ):
                    with attempt:
                        prior, stored = await self._apply(submission)
            except RetryError as e:
                raise ConcurrencyConflictError(
                    f"Gave up on {key} after {self.max_conflict_attempts} conflicting writes",
                    key=key,
                    quality=submission.quality,
                    attempts=self.max_conflict_attempts,
                ) from e.last_attempt.exception()

        logger.info(
            "Recorded quality %d for %s: repetition=%d interval=%d easiness=%.2f due=%s",
            submission.quality,
            key,
            stored.repetition,
            stored.interval,
            stored.easiness,
            stored.due_at.isoformat(),
        )

        before = prior or seed_state(key, submission.answered_at)
        await self.publisher.publish(ReviewRecorded.from_transition(submission, before, stored))
        return stored

    async def _apply(self, submission: ResponseSubmission) -> tuple[ReviewState | None, ReviewState]:
        """Run one read-compute-write attempt. Raises StaleStateError on a lost race."""
        key = submission.key
        prior = await self._fetch(key, submission.quality)
        new_state = transition(
            prior,
            submission.quality,
            submission.answered_at,
            key=key,
            clock=self.clock,
        )
        expected_version = prior.version if prior is not None else 0
        try:
            stored = await asyncio.wait_for(
                self.store.upsert(new_state, expected_version=expected_version),
                timeout=self.timeout,
            )
        except TimeoutError as e:
            raise StoreUnavailableError(
                f"Timed out storing review state for {key}", key=key, quality=submission.quality
            ) from e
        except StoreUnavailableError as e:
            e.quality = submission.quality
            raise
        return prior, stored

    async def _fetch(self, key: ReviewKey, quality: int) -> ReviewState | None:
        """Read the current state, retrying failed or timed-out reads."""
        state: ReviewState | None = None
        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception_type(StoreUnavailableError),
                stop=stop_after_attempt(self.max_read_attempts),
                wait=wait_exponential(multiplier=0.05, max=1.0),
                before_sleep=_log_read_failure,
                reraise=True,
            ):
                with attempt:
                    state = await self._get(key)
        except StoreUnavailableError as e:
            e.quality = quality
            raise
        return state

    async def _get(self, key: ReviewKey) -> ReviewState | None:
        try:
            return await asyncio.wait_for(self.store.get(key), timeout=self.timeout)
        except TimeoutError as e:
            raise StoreUnavailableError(f"Timed out fetching review state for {key}", key=key) from e


def _log_read_failure(retry_state: RetryCallState) -> None:
    logger.warning(
        "Read failed (attempt %d), retrying: %s",
        retry_state.attempt_number,
        retry_state.outcome.exception(),
    )


def _log_conflict(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception()
    logger.warning(
        "Conflicting write for %s (attempt %d), re-reading",
        exc.key if exc is not None else "?",
        retry_state.attempt_number,
    )


def build_scheduler(
    sessionmaker: async_sessionmaker[AsyncSession] = async_session,
    *,
    log_reviews: bool = True,
    config: Settings = settings,
) -> ReviewScheduler:
    """Wire a scheduler to the SQL store, with review logging sinks.

    Args:
        sessionmaker: Session factory for the review database.
        log_reviews: Also append every recorded response to ``review_logs``.
        config: Timeouts and retry budgets.
    """
    sinks: list[EventSink] = [LoggingEventSink()]
    if log_reviews:
        sinks.append(ReviewLogSink(sessionmaker))
    return ReviewScheduler(SQLAlchemyReviewStore(sessionmaker), sinks=sinks, config=config)

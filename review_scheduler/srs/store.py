"""Review-state storage.

The store maps a (learner, question) key to at most one ReviewState. Writes
are conditional on the version the caller read, so two writers that started
from the same prior state cannot both succeed.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import replace

from sqlalchemy import and_, insert, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from review_scheduler.config import to_naive_utc
from review_scheduler.models.review_state import ReviewStateRecord
from review_scheduler.srs.errors import StaleStateError, StoreUnavailableError
from review_scheduler.srs.sm2 import ReviewKey, ReviewState

logger = logging.getLogger(__name__)


class ReviewStore(ABC):
    """Keyed storage for review states."""

    @abstractmethod
    async def get(self, key: ReviewKey) -> ReviewState | None:
        """Return the state stored for ``key``, or None if there is none."""
        ...

    @abstractmethod
    async def upsert(self, state: ReviewState, *, expected_version: int) -> ReviewState:
        """Insert or replace the state for ``state.key``.

        Args:
            state: The full record to store. Replaces the stored one entirely.
            expected_version: Version the caller read; 0 means the caller saw
                no record and expects to insert one.

        Returns:
            The stored state with its new version.

        Raises:
            StaleStateError: The stored version differs from ``expected_version``.
            StoreUnavailableError: The write could not be completed.
        """
        ...


class InMemoryReviewStore(ReviewStore):
    """Process-local store backed by a dict."""

    def __init__(self) -> None:
        self._states: dict[ReviewKey, ReviewState] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._states)

    async def get(self, key: ReviewKey) -> ReviewState | None:
        async with self._lock:
            state = self._states.get(key)
            return replace(state) if state is not None else None

    async def upsert(self, state: ReviewState, *, expected_version: int) -> ReviewState:
        key = state.key
        async with self._lock:
            current = self._states.get(key)
            current_version = current.version if current is not None else 0
            if current_version != expected_version:
                raise StaleStateError(
                    f"Version mismatch for {key}: expected {expected_version}, found {current_version}",
                    key=key,
                    expected_version=expected_version,
                )
            stored = replace(state, version=current_version + 1)
            self._states[key] = stored
            return replace(stored)


class SQLAlchemyReviewStore(ReviewStore):
    """Store backed by the ``review_states`` table."""

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]) -> None:
        self._sessionmaker = sessionmaker

    async def get(self, key: ReviewKey) -> ReviewState | None:
        stmt = select(ReviewStateRecord).where(
            and_(
                ReviewStateRecord.learner_id == key.learner_id,
                ReviewStateRecord.question_id == key.question_id,
            )
        )
        try:
            async with self._sessionmaker() as session:
                record = (await session.execute(stmt)).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"Failed to fetch review state for {key}", key=key) from e

        if record is None:
            return None
        return _to_state(record)

    async def upsert(self, state: ReviewState, *, expected_version: int) -> ReviewState:
        key = state.key
        values = {
            "repetition": state.repetition,
            "interval": state.interval,
            "easiness": state.easiness,
            "due_at": to_naive_utc(state.due_at),
            "updated_at": to_naive_utc(state.updated_at),
            "version": expected_version + 1,
        }

        try:
            async with self._sessionmaker() as session, session.begin():
                if expected_version == 0:
                    await session.execute(
                        insert(ReviewStateRecord).values(
                            learner_id=key.learner_id,
                            question_id=key.question_id,
                            **values,
                        )
                    )
                else:
                    result = await session.execute(
                        update(ReviewStateRecord)
                        .where(
                            and_(
                                ReviewStateRecord.learner_id == key.learner_id,
                                ReviewStateRecord.question_id == key.question_id,
                                ReviewStateRecord.version == expected_version,
                            )
                        )
                        .values(**values)
                    )
                    if result.rowcount != 1:
                        raise StaleStateError(
                            f"Version mismatch for {key}: expected {expected_version}",
                            key=key,
                            expected_version=expected_version,
                        )
        except IntegrityError as e:
            # Another writer inserted the first record for this key
            raise StaleStateError(
                f"Review state for {key} was created concurrently",
                key=key,
                expected_version=expected_version,
            ) from e
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"Failed to upsert review state for {key}", key=key) from e

        logger.debug("Stored review state %s at version %d", key, expected_version + 1)
        return replace(
            state,
            due_at=values["due_at"],
            updated_at=values["updated_at"],
            version=expected_version + 1,
        )


def _to_state(record: ReviewStateRecord) -> ReviewState:
    return ReviewState(
        learner_id=record.learner_id,
        question_id=record.question_id,
        repetition=record.repetition,
        interval=record.interval,
        easiness=record.easiness,
        due_at=record.due_at,
        updated_at=record.updated_at,
        version=record.version,
    )

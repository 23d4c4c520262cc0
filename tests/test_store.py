"""Tests for the review-state stores."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from review_scheduler.models.review_state import ReviewStateRecord
from review_scheduler.srs.errors import StaleStateError, StoreUnavailableError
from review_scheduler.srs.sm2 import ReviewKey, ReviewState
from review_scheduler.srs.store import InMemoryReviewStore, SQLAlchemyReviewStore

KEY = ReviewKey("learner-1", "question-1")
DAY0 = datetime(2024, 3, 1, 9, 30)


def _state(key: ReviewKey = KEY, repetition: int = 1, interval: int = 1, version: int = 0) -> ReviewState:
    return ReviewState(
        learner_id=key.learner_id,
        question_id=key.question_id,
        repetition=repetition,
        interval=interval,
        easiness=2.6,
        due_at=DAY0 + timedelta(days=interval),
        updated_at=DAY0,
        version=version,
    )


# --- In-memory ---


class TestInMemoryReviewStore:
    def setup_method(self) -> None:
        self.store = InMemoryReviewStore()

    @pytest.mark.asyncio
    async def test_get_missing(self) -> None:
        assert await self.store.get(KEY) is None

    @pytest.mark.asyncio
    async def test_insert_then_replace(self) -> None:
        stored = await self.store.upsert(_state(), expected_version=0)
        assert stored.version == 1

        replaced = await self.store.upsert(_state(repetition=2, interval=6), expected_version=1)
        assert replaced.version == 2

        fetched = await self.store.get(KEY)
        assert fetched == replaced
        assert len(self.store) == 1

    @pytest.mark.asyncio
    async def test_stale_version_rejected(self) -> None:
        await self.store.upsert(_state(), expected_version=0)
        with pytest.raises(StaleStateError) as exc_info:
            await self.store.upsert(_state(repetition=2), expected_version=0)
        assert exc_info.value.key == KEY
        assert (await self.store.get(KEY)).repetition == 1

    @pytest.mark.asyncio
    async def test_returned_state_is_a_copy(self) -> None:
        stored = await self.store.upsert(_state(), expected_version=0)
        stored.repetition = 42
        assert (await self.store.get(KEY)).repetition == 1

    @pytest.mark.asyncio
    async def test_keys_are_independent(self) -> None:
        other = ReviewKey("learner-1", "question-2")
        await self.store.upsert(_state(), expected_version=0)
        await self.store.upsert(_state(key=other, repetition=3), expected_version=0)
        assert (await self.store.get(KEY)).repetition == 1
        assert (await self.store.get(other)).repetition == 3


# --- SQLAlchemy ---


class TestSQLAlchemyReviewStore:
    @pytest.mark.asyncio
    async def test_get_missing(self, sessionmaker) -> None:
        store = SQLAlchemyReviewStore(sessionmaker)
        assert await store.get(KEY) is None

    @pytest.mark.asyncio
    async def test_insert_then_replace(self, sessionmaker) -> None:
        store = SQLAlchemyReviewStore(sessionmaker)
        first = await store.upsert(_state(), expected_version=0)
        assert first.version == 1

        second = await store.upsert(_state(repetition=2, interval=6), expected_version=1)
        assert second.version == 2

        fetched = await store.get(KEY)
        assert fetched == second
        assert fetched.due_at == DAY0 + timedelta(days=6)

        async with sessionmaker() as session:
            count = (await session.execute(select(func.count(ReviewStateRecord.id)))).scalar()
        assert count == 1

    @pytest.mark.asyncio
    async def test_duplicate_insert_is_stale(self, sessionmaker) -> None:
        store = SQLAlchemyReviewStore(sessionmaker)
        await store.upsert(_state(), expected_version=0)
        with pytest.raises(StaleStateError):
            await store.upsert(_state(repetition=5), expected_version=0)
        assert (await store.get(KEY)).repetition == 1

    @pytest.mark.asyncio
    async def test_version_mismatch_is_stale(self, sessionmaker) -> None:
        store = SQLAlchemyReviewStore(sessionmaker)
        await store.upsert(_state(), expected_version=0)
        await store.upsert(_state(repetition=2), expected_version=1)
        with pytest.raises(StaleStateError) as exc_info:
            await store.upsert(_state(repetition=9), expected_version=1)
        assert exc_info.value.expected_version == 1
        stored = await store.get(KEY)
        assert stored.repetition == 2
        assert stored.version == 2

    @pytest.mark.asyncio
    async def test_update_of_missing_row_is_stale(self, sessionmaker) -> None:
        store = SQLAlchemyReviewStore(sessionmaker)
        with pytest.raises(StaleStateError):
            await store.upsert(_state(), expected_version=3)

    @pytest.mark.asyncio
    async def test_aware_datetimes_stored_as_utc(self, sessionmaker) -> None:
        store = SQLAlchemyReviewStore(sessionmaker)
        plus_two = timezone(timedelta(hours=2))
        state = _state()
        state.due_at = datetime(2024, 3, 2, 12, 0, tzinfo=plus_two)
        stored = await store.upsert(state, expected_version=0)
        assert stored.due_at == datetime(2024, 3, 2, 10, 0)
        assert (await store.get(KEY)).due_at == datetime(2024, 3, 2, 10, 0)

    @pytest.mark.asyncio
    async def test_storage_fault_is_unavailable(self, sessionmaker) -> None:
        store = SQLAlchemyReviewStore(sessionmaker)
        async with sessionmaker() as session:
            await session.run_sync(lambda s: ReviewStateRecord.__table__.drop(s.connection()))
            await session.commit()

        with pytest.raises(StoreUnavailableError):
            await store.get(KEY)
        with pytest.raises(StoreUnavailableError):
            await store.upsert(_state(), expected_version=0)

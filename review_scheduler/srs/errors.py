"""Error types raised by the scheduler and its store.

Every error carries the key (and, where known, the attempted quality) so the
caller can log and resubmit.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from review_scheduler.srs.sm2 import ReviewKey


class SchedulerError(Exception):
    """Base class for scheduling failures."""

    retryable: bool = False

    def __init__(
        self,
        message: str,
        key: ReviewKey | None = None,
        quality: int | None = None,
    ) -> None:
        super().__init__(message)
        self.key = key
        self.quality = quality


class ValidationError(SchedulerError, ValueError):
    """Input outside the scheduler's domain. Raised before any store access."""


class StoreUnavailableError(SchedulerError):
    """The store could not complete a get or upsert (fault or timeout)."""

    retryable = True


class StaleStateError(SchedulerError):
    """The stored version no longer matches the version the write was based on."""

    retryable = True

    def __init__(
        self,
        message: str,
        key: ReviewKey | None = None,
        expected_version: int | None = None,
    ) -> None:
        super().__init__(message, key=key)
        self.expected_version = expected_version


class ConcurrencyConflictError(SchedulerError):
    """Optimistic-concurrency retries were exhausted for one key."""

    retryable = True

    def __init__(
        self,
        message: str,
        key: ReviewKey | None = None,
        quality: int | None = None,
        attempts: int = 0,
    ) -> None:
        super().__init__(message, key=key, quality=quality)
        self.attempts = attempts

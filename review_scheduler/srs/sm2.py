"""SuperMemo-2 (SM-2) scheduling algorithm.

Key concepts:
- Repetition: consecutive successful recalls since the last failure.
- Interval: days until the item should be shown again.
- Easiness: multiplier controlling how fast intervals grow (floor 1.3).
- Quality: 1-5 score of the response; anything below 3 is a failure.

The transition never reads the clock for due-date math: ``due_at`` is always
derived from the timestamp of the response that triggered it.
"""

import math
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from review_scheduler.config import to_naive_utc, utcnow
from review_scheduler.srs.errors import ValidationError

# Seed values for a (learner, question) pair that has never been answered
DEFAULT_REPETITION = 0
DEFAULT_INTERVAL = 1
DEFAULT_EASINESS = 2.5

# Bounds
MIN_EASINESS = 1.3
MAX_INTERVAL = 36500  # Days; keeps due_at inside the datetime range
MIN_QUALITY = 1
MAX_QUALITY = 5
PASSING_QUALITY = 3

# Fixed intervals for the first two successful recalls
FIRST_INTERVAL = 1
SECOND_INTERVAL = 6

# Binary correctness mapped onto the quality scale ("knew it" / "guessed")
QUALITY_CORRECT = 5
QUALITY_INCORRECT = 1


@dataclass(frozen=True)
class ReviewKey:
    """Identifies the review record of one learner for one question."""

    learner_id: str
    question_id: str

    def __str__(self) -> str:
        return f"{self.learner_id}/{self.question_id}"


@dataclass
class ReviewState:
    """The SM-2 state of one learner-question pair."""

    learner_id: str
    question_id: str
    repetition: int
    interval: int  # Days
    easiness: float
    due_at: datetime
    updated_at: datetime
    version: int = 0  # Assigned by the store; 0 = never persisted

    @property
    def key(self) -> ReviewKey:
        return ReviewKey(self.learner_id, self.question_id)

    def is_due(self, now: datetime) -> bool:
        """Return True if the record is due at ``now``."""
        return self.due_at <= now


def validate_quality(quality: object) -> int:
    """Return ``quality`` if it is an int in [1, 5], else raise ValidationError.

    Out-of-range values are rejected, never clamped.
    """
    if isinstance(quality, bool) or not isinstance(quality, int):
        raise ValidationError(f"Quality must be an integer, got {quality!r}")
    if not MIN_QUALITY <= quality <= MAX_QUALITY:
        raise ValidationError(
            f"Quality must be between {MIN_QUALITY} and {MAX_QUALITY}, got {quality}",
            quality=quality,
        )
    return quality


def quality_for_answer(correct: bool) -> int:
    """Map a binary answer outcome onto the SM-2 quality scale."""
    return QUALITY_CORRECT if correct else QUALITY_INCORRECT


def is_failure(quality: int) -> bool:
    return quality < PASSING_QUALITY


def round_half_up(value: float) -> int:
    """Round to the nearest integer, with exact halves rounded up.

    Python's ``round`` uses banker's rounding (7.5 -> 8 but 6.5 -> 6), which
    would make interval growth depend on parity.
    """
    return math.floor(value + 0.5)


def next_easiness(easiness: float, quality: int) -> float:
    """Apply the SM-2 easiness update and enforce the 1.3 floor.

    EF' = EF + (0.1 - (5 - q) * (0.08 + (5 - q) * 0.02))
    """
    miss = MAX_QUALITY - quality
    return max(MIN_EASINESS, easiness + (0.1 - miss * (0.08 + miss * 0.02)))


def seed_state(key: ReviewKey, answered_at: datetime) -> ReviewState:
    """Return the default state for a pair that has never been answered."""
    return ReviewState(
        learner_id=key.learner_id,
        question_id=key.question_id,
        repetition=DEFAULT_REPETITION,
        interval=DEFAULT_INTERVAL,
        easiness=DEFAULT_EASINESS,
        due_at=answered_at,
        updated_at=answered_at,
    )


def transition(
    prior: ReviewState | None,
    quality: int,
    answered_at: datetime,
    *,
    key: ReviewKey | None = None,
    clock: Callable[[], datetime] = utcnow,
) -> ReviewState:
    """Apply one response to a review state.

    Args:
        prior: The persisted state, or None on the first response.
        quality: Response quality (1-5, <3 is a failure).
        answered_at: When the response was given. ``due_at`` is computed
            from this, not from the clock.
        key: Key for the new record when ``prior`` is None.
        clock: Source of the ``updated_at`` stamp.

    Returns:
        A new ReviewState. ``prior`` is not modified.
    """
    quality = validate_quality(quality)
    if not isinstance(answered_at, datetime):
        raise ValidationError(f"answered_at must be a datetime, got {answered_at!r}", key=key)
    if prior is None and key is None:
        raise ValidationError("A key is required when there is no prior state", quality=quality)

    if prior is not None:
        key = prior.key
        repetition, interval, easiness = prior.repetition, prior.interval, prior.easiness
    else:
        repetition, interval, easiness = DEFAULT_REPETITION, DEFAULT_INTERVAL, DEFAULT_EASINESS

    if is_failure(quality):
        repetition = 0
        interval = 1
    else:
        if repetition == 0:
            interval = FIRST_INTERVAL
        elif repetition == 1:
            interval = SECOND_INTERVAL
        else:
            interval = min(MAX_INTERVAL, max(1, round_half_up(interval * easiness)))
        repetition += 1

    # Uses the pre-update easiness and applies on failures too
    easiness = next_easiness(easiness, quality)

    updated_at = clock()
    if prior is not None and to_naive_utc(prior.updated_at) > to_naive_utc(updated_at):
        updated_at = prior.updated_at

    return ReviewState(
        learner_id=key.learner_id,
        question_id=key.question_id,
        repetition=repetition,
        interval=interval,
        easiness=easiness,
        due_at=answered_at + timedelta(days=interval),
        updated_at=updated_at,
        version=prior.version if prior is not None else 0,
    )

"""Pydantic schemas for the scheduler's inbound submission and outbound event."""

from datetime import datetime

import pydantic
from pydantic import BaseModel, ConfigDict, Field, StrictInt

from review_scheduler.srs.errors import ValidationError
from review_scheduler.srs.sm2 import MAX_QUALITY, MIN_QUALITY, ReviewKey, ReviewState


class ResponseSubmission(BaseModel):
    """A learner's response to a question, as handed to the scheduler."""

    model_config = ConfigDict(frozen=True)

    learner_id: str = Field(min_length=1)
    question_id: str = Field(min_length=1)
    quality: StrictInt = Field(ge=MIN_QUALITY, le=MAX_QUALITY)
    answered_at: datetime

    @property
    def key(self) -> ReviewKey:
        return ReviewKey(self.learner_id, self.question_id)

    @classmethod
    def parse(
        cls,
        learner_id: object,
        question_id: object,
        quality: object,
        answered_at: object,
    ) -> "ResponseSubmission":
        """Build a submission, translating pydantic errors into ValidationError."""
        try:
            return cls(
                learner_id=learner_id,
                question_id=question_id,
                quality=quality,
                answered_at=answered_at,
            )
        except pydantic.ValidationError as e:
            fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
            key = None
            if isinstance(learner_id, str) and isinstance(question_id, str):
                key = ReviewKey(learner_id, question_id)
            raise ValidationError(
                f"Invalid response submission ({fields}): {e.error_count()} error(s)",
                key=key,
                quality=quality if isinstance(quality, int) else None,
            ) from e


class ReviewRecorded(BaseModel):
    """Emitted after a response has been applied and persisted."""

    learner_id: str
    question_id: str
    quality: int
    answered_at: datetime
    repetition_before: int
    repetition_after: int
    interval_before: int
    interval_after: int
    easiness_before: float
    easiness_after: float
    due_at: datetime
    version: int

    @classmethod
    def from_transition(
        cls,
        submission: ResponseSubmission,
        before: ReviewState,
        after: ReviewState,
    ) -> "ReviewRecorded":
        return cls(
            learner_id=after.learner_id,
            question_id=after.question_id,
            quality=submission.quality,
            answered_at=submission.answered_at,
            repetition_before=before.repetition,
            repetition_after=after.repetition,
            interval_before=before.interval,
            interval_after=after.interval,
            easiness_before=before.easiness,
            easiness_after=after.easiness,
            due_at=after.due_at,
            version=after.version,
        )

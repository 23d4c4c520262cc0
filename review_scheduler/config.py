from datetime import UTC, datetime
from pathlib import Path

from pydantic_settings import BaseSettings


def utcnow() -> datetime:
    """Return the current UTC time as a naive datetime.

    Datetimes stay naive so they are compatible with SQLite (which doesn't
    store tz info).
    """
    return datetime.now(UTC).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Convert an aware datetime to naive UTC; naive values pass through."""
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


class Settings(BaseSettings):
    database_url: str = f"sqlite+aiosqlite:///{Path(__file__).resolve().parent.parent / 'data' / 'review_scheduler.db'}"
    store_timeout_seconds: float = 5.0
    max_conflict_attempts: int = 5
    max_read_attempts: int = 3
    event_max_attempts: int = 3
    debug: bool = False

    model_config = {"env_prefix": "REVIEW_SCHEDULER_", "env_file": ".env"}


settings = Settings()

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from companion.utils.time import from_db, utcnow

MIN_EASE_FACTOR = 1.3
INITIAL_EASE_FACTOR = 2.5
INITIAL_INTERVAL = 1  # days


class Card(BaseModel):
    """Scheduling state of one learned vocabulary item."""

    model_config = ConfigDict(frozen=True)

    ease_factor: float = INITIAL_EASE_FACTOR
    interval: int = INITIAL_INTERVAL       # days until next review
    repetitions: int = 0                   # consecutive passes since last lapse
    due_at: datetime = Field(default_factory=utcnow)

    def is_due(self, now: datetime | None = None) -> bool:
        return (now or utcnow()) >= self.due_at


class ExerciseType(str, Enum):
    FLASHCARD = "flashcard"
    CLOZE_BLANK = "cloze_blank"
    MATCHING_PAIRS = "matching_pairs"
    MEANING_IN_CONTEXT = "meaning_in_context"


class ReviewAttempt(BaseModel):
    """A single review event. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    vocabulary_id: str = Field(min_length=1)
    quality: int = Field(ge=0, le=5)  # 0-2 lapse, 3 hard, 4 good, 5 easy
    exercise_type: ExerciseType | None = None
    response_ms: int | None = Field(default=None, ge=0)
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("created_at")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        # Naive timestamps from clients are taken as UTC
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class ReviewSubmission(ReviewAttempt):
    idempotency_key: str = Field(min_length=1, max_length=128)


class Flashcard(BaseModel):
    id: str
    vocabulary_id: str
    user_id: str
    ease_factor: float
    interval: int
    repetitions: int
    due_at: str             # UTC "YYYY-MM-DD HH:MM:SS"
    last_reviewed_at: str | None
    created_at: str

    def to_card(self) -> Card:
        return Card(
            ease_factor=self.ease_factor,
            interval=self.interval,
            repetitions=self.repetitions,
            due_at=from_db(self.due_at),
        )


class ReviewRecord(BaseModel):
    id: str
    vocabulary_id: str
    flashcard_id: str
    quality: int
    exercise_type: str | None
    response_ms: int | None
    created_at: str
    ease_factor: float
    interval: int
    repetitions: int
    due_at: str
    idempotent: bool = False
    next_due_count: int = 0


class DueCards(BaseModel):
    count: int
    cards: list[Flashcard] | None = None


class QueueStatus(str, Enum):
    PENDING = "pending"
    SUBMITTING = "submitting"
    FAILED = "failed"


class QueuedAttempt(BaseModel):
    seq: int
    local_id: str
    attempt: ReviewAttempt
    status: QueueStatus
    submission_attempts: int = 0
    last_error: str | None = None
    next_attempt_at: str | None = None
    enqueued_at: str


class DrainResult(BaseModel):
    synced: int = 0
    failed: int = 0
    failed_ids: list[str] = Field(default_factory=list)

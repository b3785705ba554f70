# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Activity events accepted by the activity tracker.

Each event describes one thing a learner did. The tracker folds events
into the learner's ActivityRecord. Omitted timestamps mean "now".
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, model_validator

from learning_insights.domains.activity.models import TaskKind, UtcDatetime

# Share of max_score needed to pass a task
PASS_RATIO = 0.6


class ReviewDifficulty(str, Enum):
    """Self-rated difficulty of a card review."""

    AGAIN = "again"
    HARD = "hard"
    GOOD = "good"
    EASY = "easy"


class VideoProgressEvent(BaseModel):
    """Watch progress reported by the video player."""

    lesson_id: str = Field(min_length=1)
    course_id: str | None = None
    total_seconds: float = Field(gt=0, description="Length of the video")
    watched_seconds: float = Field(default=0, ge=0, description="Time watched in this view")
    watched_completely: bool = False
    completed_at: UtcDatetime | None = None


class TaskResultEvent(BaseModel):
    """Result of one attempt at a task lesson."""

    lesson_id: str = Field(min_length=1)
    course_id: str | None = None
    task_kind: TaskKind | None = None
    score: float = Field(ge=0)
    max_score: float = Field(default=100, gt=0)
    correct_answers: int | None = Field(default=None, ge=0)
    total_questions: int | None = Field(default=None, ge=0)
    time_spent_seconds: float = Field(default=0, ge=0)
    completed_at: UtcDatetime | None = None

    @property
    def is_passed(self) -> bool:
        return self.score >= self.max_score * PASS_RATIO


class FlashcardSessionEvent(BaseModel):
    """A finished study session over a flashcard deck."""

    content_id: str = Field(min_length=1)
    cards_studied: int = Field(gt=0)
    correct_answers: int = Field(default=0, ge=0)
    duration_seconds: float = Field(default=0, ge=0)
    studied_at: UtcDatetime | None = None

    @model_validator(mode="after")
    def validate_correct_answers(self) -> "FlashcardSessionEvent":
        if self.correct_answers > self.cards_studied:
            raise ValueError("correct_answers cannot exceed cards_studied")
        return self


class CardReviewEvent(BaseModel):
    """A review of a single card."""

    card_id: str = Field(min_length=1)
    flashcard_id: str = Field(min_length=1)
    is_correct: bool = False
    response_time_ms: float = Field(default=0, ge=0)
    difficulty: ReviewDifficulty | None = None
    review_count: int = Field(default=1, ge=1, description="Times this card has been reviewed")
    reviewed_at: UtcDatetime | None = None


class CourseAccessEvent(BaseModel):
    """The learner opened, continued or finished a course."""

    course_id: str = Field(min_length=1)
    is_completed: bool = False


class ActivitySummary(BaseModel):
    """Entry counts of a learner's activity record."""

    total_lessons: int = 0
    total_flashcard_sessions: int = 0
    total_card_reviews: int = 0
    total_days: int = 0
    total_time_spent: float = 0
    courses_count: int = 0


def event_time(value: datetime | None, now: datetime) -> datetime:
    """Timestamp of an event, defaulting to now."""
    return value if value is not None else now

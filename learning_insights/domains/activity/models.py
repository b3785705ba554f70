# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Data models for learner activity.

This module defines the per-user ActivityRecord and its logs:
- Lesson activities as a tagged union of video and task variants
- Flashcard sessions and card-level review history
- Per-course access and per-day rollups

The record is validated at the store boundary: lessons are unique by
lesson_id and daily rollups are unique by calendar day.
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Literal

from pydantic import AfterValidator, BaseModel, Field, model_validator

from learning_insights.utils.datetime import ensure_utc, get_timezone, normalize_day

# Naive timestamps are read as UTC
UtcDatetime = Annotated[datetime, AfterValidator(ensure_utc)]


class TaskKind(str, Enum):
    """Kinds of task lessons."""

    LISTENING = "listening"
    SPEAKING = "speaking"
    READING = "reading"
    FILL_BLANK = "fill_blank"
    MULTIPLE_CHOICE = "multiple_choice"
    MATCHING = "matching"


class MasteryLevel(str, Enum):
    """Retention state of a flashcard."""

    LEARNING = "learning"
    REVIEWING = "reviewing"
    MASTERED = "mastered"


class VideoStats(BaseModel):
    """Watch progress of a video lesson."""

    watched_seconds: float = Field(default=0, ge=0)
    total_seconds: float = Field(default=0, ge=0)
    watched_completely: bool = False


class TaskStats(BaseModel):
    """Result of the latest attempt at a task lesson."""

    score: float = Field(default=0, ge=0)
    max_score: float = Field(default=100, gt=0)
    correct_answers: int | None = Field(default=None, ge=0)
    total_questions: int | None = Field(default=None, ge=0)
    is_passed: bool = False

    @property
    def percentage(self) -> float:
        """Score as a percentage of the maximum."""
        return self.score / self.max_score * 100


class _LessonActivityBase(BaseModel):
    lesson_id: str
    course_id: str | None = None
    started_at: UtcDatetime
    completed_at: UtcDatetime | None = None
    time_spent_seconds: float = Field(default=0, ge=0)
    is_completed: bool = False
    attempts: int = Field(default=1, ge=0)


class VideoLessonActivity(_LessonActivityBase):
    """Progress on one video lesson."""

    kind: Literal["video"] = "video"
    video_stats: VideoStats = Field(default_factory=VideoStats)


class TaskLessonActivity(_LessonActivityBase):
    """Progress on one task lesson."""

    kind: Literal["task"] = "task"
    task_kind: TaskKind | None = None
    task_stats: TaskStats = Field(default_factory=TaskStats)


LessonActivity = Annotated[
    VideoLessonActivity | TaskLessonActivity,
    Field(discriminator="kind"),
]


class FlashcardSession(BaseModel):
    """One study session over a flashcard deck."""

    content_id: str
    cards_studied: int = Field(default=0, ge=0)
    correct_answers: int = Field(default=0, ge=0)
    duration_seconds: float = Field(default=0, ge=0)
    studied_at: UtcDatetime


class CardReview(BaseModel):
    """One review of a single card. Several entries per card form its history."""

    card_id: str
    flashcard_id: str
    is_correct: bool
    response_time_ms: float = Field(default=0, ge=0)
    mastery_level: MasteryLevel = MasteryLevel.LEARNING
    reviewed_at: UtcDatetime


class CourseActivity(BaseModel):
    """Access and completion state of one course."""

    course_id: str
    started_at: UtcDatetime
    completed_at: UtcDatetime | None = None
    total_time_spent: float = Field(default=0, ge=0)
    is_completed: bool = False
    last_accessed_at: UtcDatetime


class DailyLearning(BaseModel):
    """Rollup of one calendar day.

    ``date`` keeps the timestamp of the first activity of the day so that
    time-of-day patterns can be derived from it.
    """

    date: UtcDatetime
    total_study_time: float = Field(default=0, ge=0)
    lessons_completed: int = Field(default=0, ge=0)
    cards_reviewed: int = Field(default=0, ge=0)
    cards_learned: int = Field(default=0, ge=0)
    correct_rate: float = Field(default=0, ge=0, le=100)
    streak_days: int = Field(default=0, ge=0)


class ActivityRecord(BaseModel):
    """All learning activity of one user.

    Attributes:
        user_id: Owner of the record.
        lesson_activities: One entry per lesson, in first-seen order.
        flashcard_sessions: Append-only session log.
        card_learning: Append-only card review history.
        course_activities: One entry per course.
        daily_learning: One entry per calendar day.
        timezone: IANA name of the timezone defining calendar days.
    """

    user_id: str
    lesson_activities: list[LessonActivity] = Field(default_factory=list)
    flashcard_sessions: list[FlashcardSession] = Field(default_factory=list)
    card_learning: list[CardReview] = Field(default_factory=list)
    course_activities: list[CourseActivity] = Field(default_factory=list)
    daily_learning: list[DailyLearning] = Field(default_factory=list)
    timezone: str = "UTC"

    @model_validator(mode="after")
    def validate_unique_keys(self) -> "ActivityRecord":
        """Reject duplicate lessons, courses and calendar days."""
        lesson_ids = [lesson.lesson_id for lesson in self.lesson_activities]
        if len(lesson_ids) != len(set(lesson_ids)):
            raise ValueError("lesson_activities must hold at most one entry per lesson_id")

        course_ids = [course.course_id for course in self.course_activities]
        if len(course_ids) != len(set(course_ids)):
            raise ValueError("course_activities must hold at most one entry per course_id")

        tz = get_timezone(self.timezone)
        days = [normalize_day(daily.date, tz) for daily in self.daily_learning]
        if len(days) != len(set(days)):
            raise ValueError("daily_learning must hold at most one entry per calendar day")
        return self

    def find_lesson(self, lesson_id: str) -> VideoLessonActivity | TaskLessonActivity | None:
        """Return the activity for a lesson, if tracked."""
        for lesson in self.lesson_activities:
            if lesson.lesson_id == lesson_id:
                return lesson
        return None

    def find_course(self, course_id: str) -> CourseActivity | None:
        """Return the activity for a course, if tracked."""
        for course in self.course_activities:
            if course.course_id == course_id:
                return course
        return None

    @property
    def completed_lesson_count(self) -> int:
        return sum(1 for lesson in self.lesson_activities if lesson.is_completed)

    @property
    def data_point_count(self) -> int:
        """Total number of raw entries backing the derived insights."""
        return (
            len(self.lesson_activities)
            + len(self.flashcard_sessions)
            + len(self.card_learning)
            + len(self.daily_learning)
        )

# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Builders for activity records and a settable clock used across tests."""

from datetime import datetime, timedelta, timezone

from learning_insights.domains.activity.models import (
    ActivityRecord,
    CardReview,
    CourseActivity,
    DailyLearning,
    FlashcardSession,
    MasteryLevel,
    TaskKind,
    TaskLessonActivity,
    TaskStats,
    VideoLessonActivity,
    VideoStats,
)

# Monday 2025-03-10 12:00 UTC
FIXED_NOW = datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Settable clock usable wherever a ``Callable[[], datetime]`` is expected."""

    def __init__(self, start: datetime = FIXED_NOW) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current


# =============================================================================
# Activity Builders
# =============================================================================


def task_lesson(
    lesson_id: str,
    *,
    score: float = 80,
    max_score: float = 100,
    task_kind: TaskKind | None = TaskKind.LISTENING,
    course_id: str | None = None,
    completed_at: datetime | None = FIXED_NOW,
    attempts: int = 1,
    time_spent_seconds: float = 600,
) -> TaskLessonActivity:
    """A task lesson, completed at ``completed_at`` unless it is None."""
    return TaskLessonActivity(
        lesson_id=lesson_id,
        course_id=course_id,
        task_kind=task_kind,
        started_at=(completed_at or FIXED_NOW) - timedelta(minutes=10),
        completed_at=completed_at,
        time_spent_seconds=time_spent_seconds,
        is_completed=completed_at is not None,
        attempts=attempts,
        task_stats=TaskStats(
            score=score,
            max_score=max_score,
            is_passed=score >= max_score * 0.6,
        ),
    )


def video_lesson(
    lesson_id: str,
    *,
    watched_seconds: float = 300,
    total_seconds: float = 600,
    watched_completely: bool = False,
    course_id: str | None = None,
    attempts: int = 1,
) -> VideoLessonActivity:
    return VideoLessonActivity(
        lesson_id=lesson_id,
        course_id=course_id,
        started_at=FIXED_NOW - timedelta(hours=1),
        completed_at=FIXED_NOW if watched_completely else None,
        time_spent_seconds=watched_seconds,
        is_completed=watched_completely,
        attempts=attempts,
        video_stats=VideoStats(
            watched_seconds=watched_seconds,
            total_seconds=total_seconds,
            watched_completely=watched_completely,
        ),
    )


def flashcard_session(
    studied_at: datetime = FIXED_NOW,
    *,
    cards_studied: int = 10,
    correct_answers: int = 8,
    duration_seconds: float = 300,
    content_id: str = "deck-1",
) -> FlashcardSession:
    return FlashcardSession(
        content_id=content_id,
        cards_studied=cards_studied,
        correct_answers=correct_answers,
        duration_seconds=duration_seconds,
        studied_at=studied_at,
    )


def card_review(
    card_id: str,
    *,
    is_correct: bool = True,
    mastery_level: MasteryLevel = MasteryLevel.LEARNING,
    reviewed_at: datetime = FIXED_NOW,
    flashcard_id: str = "deck-1",
    response_time_ms: float = 1500,
) -> CardReview:
    return CardReview(
        card_id=card_id,
        flashcard_id=flashcard_id,
        is_correct=is_correct,
        response_time_ms=response_time_ms,
        mastery_level=mastery_level,
        reviewed_at=reviewed_at,
    )


def daily(day: datetime, *, study_seconds: float = 1800) -> DailyLearning:
    return DailyLearning(date=day, total_study_time=study_seconds)


def course(
    course_id: str,
    *,
    completed: bool = False,
    started_at: datetime = FIXED_NOW - timedelta(days=10),
) -> CourseActivity:
    return CourseActivity(
        course_id=course_id,
        started_at=started_at,
        completed_at=FIXED_NOW if completed else None,
        is_completed=completed,
        last_accessed_at=FIXED_NOW,
    )


def activity_record(user_id: str = "user-1", **logs: list) -> ActivityRecord:
    return ActivityRecord(user_id=user_id, **logs)


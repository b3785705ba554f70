# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for activity models, events and the in-memory store."""

from datetime import datetime, timedelta, timezone

import pytest
from builders import (
    FIXED_NOW,
    activity_record,
    card_review,
    course,
    daily,
    flashcard_session,
    task_lesson,
    video_lesson,
)
from pydantic import ValidationError

from learning_insights.core.exceptions import InvalidActivityError
from learning_insights.domains.activity.events import (
    FlashcardSessionEvent,
    TaskResultEvent,
    VideoProgressEvent,
    event_time,
)
from learning_insights.domains.activity.models import (
    ActivityRecord,
    DailyLearning,
    TaskLessonActivity,
    TaskStats,
    VideoLessonActivity,
)
from learning_insights.domains.activity.store import InMemoryActivityStore


class TestActivityRecord:
    """Tests for ActivityRecord invariants."""

    def test_rejects_duplicate_lessons(self) -> None:
        with pytest.raises(ValidationError, match="lesson_id"):
            activity_record(lesson_activities=[task_lesson("l1"), video_lesson("l1")])

    def test_rejects_duplicate_courses(self) -> None:
        with pytest.raises(ValidationError, match="course_id"):
            activity_record(course_activities=[course("c1"), course("c1")])

    def test_rejects_two_rollups_on_one_day(self) -> None:
        with pytest.raises(ValidationError, match="calendar day"):
            activity_record(
                daily_learning=[
                    daily(FIXED_NOW.replace(hour=8)),
                    daily(FIXED_NOW.replace(hour=20)),
                ]
            )

    def test_rollup_days_use_record_timezone(self) -> None:
        # 20:30 and 21:30 UTC fall on different days in Istanbul (UTC+3)
        first = datetime(2025, 3, 9, 20, 30, tzinfo=timezone.utc)
        second = datetime(2025, 3, 9, 21, 30, tzinfo=timezone.utc)

        record = ActivityRecord(
            user_id="user-1",
            timezone="Europe/Istanbul",
            daily_learning=[DailyLearning(date=first), DailyLearning(date=second)],
        )

        assert len(record.daily_learning) == 2

    def test_lessons_parse_by_kind(self) -> None:
        record = ActivityRecord.model_validate(
            {
                "user_id": "user-1",
                "lesson_activities": [
                    {"kind": "video", "lesson_id": "v1", "started_at": "2025-03-10T10:00:00"},
                    {"kind": "task", "lesson_id": "t1", "started_at": "2025-03-10T10:00:00Z"},
                ],
            }
        )

        assert isinstance(record.lesson_activities[0], VideoLessonActivity)
        assert isinstance(record.lesson_activities[1], TaskLessonActivity)
        assert record.lesson_activities[0].started_at.tzinfo is not None

    def test_data_point_count(self) -> None:
        record = activity_record(
            lesson_activities=[task_lesson("l1"), video_lesson("v1")],
            flashcard_sessions=[flashcard_session()],
            card_learning=[card_review("c1"), card_review("c2")],
            daily_learning=[daily(FIXED_NOW)],
        )

        assert record.data_point_count == 6

    def test_completed_lesson_count(self) -> None:
        record = activity_record(
            lesson_activities=[
                task_lesson("l1"),
                task_lesson("l2", completed_at=None),
                video_lesson("v1", watched_completely=True),
            ]
        )

        assert record.completed_lesson_count == 2

    def test_find_lesson_and_course(self) -> None:
        record = activity_record(lesson_activities=[task_lesson("l1")], course_activities=[course("c1")])

        assert record.find_lesson("l1").lesson_id == "l1"
        assert record.find_lesson("missing") is None
        assert record.find_course("c1").course_id == "c1"

    def test_task_percentage(self) -> None:
        assert TaskStats(score=15, max_score=20).percentage == 75.0


class TestEvents:
    """Tests for activity event validation."""

    def test_video_requires_positive_duration(self) -> None:
        with pytest.raises(ValidationError):
            VideoProgressEvent(lesson_id="v1", total_seconds=0)

    def test_task_pass_mark(self) -> None:
        assert TaskResultEvent(lesson_id="t1", score=60).is_passed
        assert not TaskResultEvent(lesson_id="t1", score=59).is_passed
        assert TaskResultEvent(lesson_id="t1", score=6, max_score=10).is_passed

    def test_flashcard_correct_cannot_exceed_studied(self) -> None:
        with pytest.raises(ValidationError, match="correct_answers"):
            FlashcardSessionEvent(content_id="deck", cards_studied=5, correct_answers=6)

    def test_flashcard_requires_studied_cards(self) -> None:
        with pytest.raises(ValidationError):
            FlashcardSessionEvent(content_id="deck", cards_studied=0)

    def test_event_time_defaults_to_now(self) -> None:
        earlier = FIXED_NOW - timedelta(hours=1)

        assert event_time(None, FIXED_NOW) == FIXED_NOW
        assert event_time(earlier, FIXED_NOW) == earlier


class TestInMemoryActivityStore:
    """Tests for InMemoryActivityStore."""

    async def test_missing_user(self) -> None:
        store = InMemoryActivityStore()

        assert await store.get("nobody") is None
        assert await store.delete("nobody") is False

    async def test_get_returns_copy(self) -> None:
        store = InMemoryActivityStore()
        await store.save(activity_record(lesson_activities=[task_lesson("l1")]))

        loaded = await store.get("user-1")
        loaded.lesson_activities.clear()

        assert len((await store.get("user-1")).lesson_activities) == 1

    async def test_save_revalidates_mutated_record(self) -> None:
        store = InMemoryActivityStore()
        record = activity_record(lesson_activities=[task_lesson("l1")])
        record.lesson_activities.append(task_lesson("l1"))

        with pytest.raises(InvalidActivityError):
            await store.save(record)

        assert await store.get("user-1") is None

    async def test_delete(self) -> None:
        store = InMemoryActivityStore()
        await store.save(activity_record())

        assert await store.delete("user-1") is True
        assert await store.get("user-1") is None

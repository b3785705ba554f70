# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for mastery analysis and study pattern detection."""

from datetime import date, datetime, timedelta, timezone

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

from learning_insights.domains.activity.models import MasteryLevel, TaskKind
from learning_insights.domains.analytics.mastery import (
    calculate_course_progress,
    calculate_flashcard_mastery,
    calculate_lesson_mastery,
    calculate_skill_mastery,
    skill_level,
    weakest_skill,
)
from learning_insights.domains.analytics.patterns import (
    average_session_minutes,
    best_time_of_day,
    current_streak,
    longest_streak,
    preferred_content,
    time_of_day,
)
from learning_insights.domains.insights.models import (
    ContentKind,
    Skill,
    SkillLevel,
    SkillMastery,
    TimeOfDay,
)
from learning_insights.utils.datetime import get_timezone

UTC = timezone.utc


class TestSkillLevel:
    """Tests for the skill level formula."""

    def test_known_values(self) -> None:
        assert skill_level(80, 4) == 86
        assert skill_level(80, 0) == 80
        assert skill_level(0, 10) == 0

    def test_capped_at_100(self) -> None:
        assert skill_level(100, 10) == 100

    def test_non_decreasing_in_task_count(self) -> None:
        for average in (12.5, 47.0, 80.0, 95.0):
            levels = [skill_level(average, n) for n in range(0, 60)]

            assert levels == sorted(levels)


class TestSkillMastery:
    """Tests for per-skill mastery."""

    def test_running_average_per_skill(self) -> None:
        record = activity_record(
            lesson_activities=[
                task_lesson("r1", score=60, task_kind=TaskKind.READING, completed_at=FIXED_NOW - timedelta(days=2)),
                task_lesson("r2", score=90, task_kind=TaskKind.MULTIPLE_CHOICE, completed_at=FIXED_NOW),
                task_lesson("w1", score=40, task_kind=TaskKind.FILL_BLANK),
                task_lesson("n1", score=100, task_kind=None),
                task_lesson("p1", score=100, task_kind=TaskKind.SPEAKING, completed_at=None),
            ]
        )

        mastery = calculate_skill_mastery(record)

        assert mastery.reading.tasks_completed == 2
        assert mastery.reading.average_score == 75
        assert mastery.reading.level == 79
        assert mastery.reading.last_practiced == FIXED_NOW
        assert mastery.writing.tasks_completed == 1
        assert mastery.speaking.tasks_completed == 0
        assert mastery.speaking.last_practiced is None

    def test_weakest_skill_defaults_to_listening(self) -> None:
        assert weakest_skill(SkillMastery()) == Skill.LISTENING

    def test_weakest_skill_ties_go_to_earlier_skill(self) -> None:
        mastery = SkillMastery(
            listening=SkillLevel(level=70),
            speaking=SkillLevel(level=30),
            reading=SkillLevel(level=80),
            writing=SkillLevel(level=30),
        )

        assert weakest_skill(mastery) == Skill.SPEAKING


class TestLessonMastery:
    """Tests for video and task lesson mastery."""

    def test_videos(self) -> None:
        record = activity_record(
            lesson_activities=[
                video_lesson("v1", watched_seconds=300, total_seconds=600),
                video_lesson("v2", watched_seconds=600, total_seconds=600, watched_completely=True, attempts=3),
            ]
        )

        videos = calculate_lesson_mastery(record).video_lessons

        assert videos.average_watch_pct == 75
        assert videos.completion_rate == 50
        assert videos.average_rewatch == 2.0

    def test_tasks(self) -> None:
        record = activity_record(
            lesson_activities=[
                task_lesson("t1", score=50, attempts=3),
                task_lesson("t2", score=70, attempts=5),
                task_lesson("t3", score=90, attempts=1, completed_at=None),
            ]
        )

        tasks = calculate_lesson_mastery(record).task_lessons

        assert tasks.average_score == 70
        assert tasks.average_attempts == 3.0
        assert tasks.common_mistakes == ["t2", "t1"]

    def test_empty(self) -> None:
        mastery = calculate_lesson_mastery(activity_record())

        assert mastery.video_lessons.average_watch_pct == 0
        assert mastery.task_lessons.common_mistakes == []


class TestFlashcardMastery:
    """Tests for flashcard mastery."""

    def test_counts_latest_review_per_card(self) -> None:
        earlier = FIXED_NOW - timedelta(days=1)
        record = activity_record(
            card_learning=[
                card_review("c1", mastery_level=MasteryLevel.LEARNING, reviewed_at=earlier),
                card_review("c1", mastery_level=MasteryLevel.MASTERED),
                card_review("c2", mastery_level=MasteryLevel.REVIEWING),
                *[
                    card_review("c3", is_correct=False, reviewed_at=earlier - timedelta(hours=i))
                    for i in range(4)
                ],
            ]
        )

        mastery = calculate_flashcard_mastery(record, FIXED_NOW)

        assert mastery.mastered_cards == 1
        assert mastery.reviewing_cards == 1
        assert mastery.learning_cards == 1
        assert mastery.difficult_cards == 1
        assert mastery.average_response_ms == 1500

    def test_three_failures_are_not_difficult(self) -> None:
        record = activity_record(
            card_learning=[card_review("c1", is_correct=False) for _ in range(3)]
        )

        assert calculate_flashcard_mastery(record, FIXED_NOW).difficult_cards == 0

    def test_daily_retention_uses_last_24_hours(self) -> None:
        record = activity_record(
            flashcard_sessions=[
                flashcard_session(FIXED_NOW - timedelta(hours=1), correct_answers=9),
                flashcard_session(FIXED_NOW - timedelta(hours=23), correct_answers=5),
                flashcard_session(FIXED_NOW - timedelta(hours=30), correct_answers=0),
            ]
        )

        assert calculate_flashcard_mastery(record, FIXED_NOW).daily_retention_pct == 70


class TestCourseProgress:
    """Tests for course progress and struggling courses."""

    def test_struggling_courses(self) -> None:
        record = activity_record(
            lesson_activities=[
                task_lesson("a1", course_id="c1"),
                task_lesson("a2", course_id="c1", completed_at=None),
                video_lesson("a3", course_id="c1"),
                task_lesson("b1", course_id="c2"),
                task_lesson("b2", course_id="c2", completed_at=None),
            ],
            course_activities=[
                course("c1"),
                course("c2"),
                course("c3", completed=True),
                course("c4"),
            ],
        )

        progress = calculate_course_progress(record)

        assert progress.courses_in_progress == 3
        assert progress.average_completion_days == 10
        assert len(progress.struggling_courses) == 1
        struggling = progress.struggling_courses[0]
        assert struggling.course_id == "c1"
        assert struggling.progress_pct == 33
        assert struggling.stuck_at == "a2"


class TestTimeOfDay:
    """Tests for time-of-day buckets."""

    @pytest.mark.parametrize(
        ("hour", "expected"),
        [
            (0, TimeOfDay.NIGHT),
            (5, TimeOfDay.NIGHT),
            (6, TimeOfDay.MORNING),
            (11, TimeOfDay.MORNING),
            (12, TimeOfDay.AFTERNOON),
            (17, TimeOfDay.AFTERNOON),
            (18, TimeOfDay.EVENING),
            (21, TimeOfDay.EVENING),
            (22, TimeOfDay.NIGHT),
        ],
    )
    def test_buckets(self, hour: int, expected: TimeOfDay) -> None:
        assert time_of_day(hour) == expected

    def test_no_records_is_morning(self) -> None:
        assert best_time_of_day(activity_record(), UTC) == TimeOfDay.MORNING

    def test_ties_go_to_earliest_bucket(self) -> None:
        record = activity_record(
            daily_learning=[
                daily(datetime(2025, 3, 8, 20, 0, tzinfo=UTC)),
                daily(datetime(2025, 3, 9, 7, 0, tzinfo=UTC)),
            ]
        )

        assert best_time_of_day(record, UTC) == TimeOfDay.MORNING

    def test_most_frequent_bucket(self) -> None:
        record = activity_record(
            daily_learning=[
                daily(datetime(2025, 3, 7, 20, 0, tzinfo=UTC)),
                daily(datetime(2025, 3, 8, 19, 0, tzinfo=UTC)),
                daily(datetime(2025, 3, 9, 7, 0, tzinfo=UTC)),
            ]
        )

        assert best_time_of_day(record, UTC) == TimeOfDay.EVENING

    def test_buckets_use_timezone(self) -> None:
        record = activity_record(daily_learning=[daily(datetime(2025, 3, 9, 3, 0, tzinfo=UTC))])

        assert best_time_of_day(record, get_timezone("Europe/Istanbul")) == TimeOfDay.MORNING


class TestStreaks:
    """Tests for streak calculation."""

    def test_current_streak_ends_today(self) -> None:
        today = date(2025, 3, 10)
        days = [today - timedelta(days=offset) for offset in (4, 2, 1, 0)]

        assert current_streak(days, today) == 3

    def test_current_streak_is_zero_without_today(self) -> None:
        today = date(2025, 3, 10)

        assert current_streak([today - timedelta(days=1)], today) == 0

    def test_longest_streak(self) -> None:
        days = [date(2025, 3, d) for d in (1, 2, 3, 5, 6)]

        assert longest_streak(days) == 3
        assert longest_streak([]) == 0
        assert longest_streak([date(2025, 3, 1)]) == 1


class TestContentPatterns:
    """Tests for preferred content and session length."""

    def test_preferred_content_ties_go_to_video(self) -> None:
        record = activity_record(lesson_activities=[video_lesson("v1"), task_lesson("t1")])

        assert preferred_content(record) == ContentKind.VIDEO
        assert preferred_content(activity_record()) == ContentKind.VIDEO

    def test_preferred_content_flashcards(self) -> None:
        record = activity_record(
            lesson_activities=[task_lesson("t1")],
            flashcard_sessions=[flashcard_session(), flashcard_session()],
        )

        assert preferred_content(record) == ContentKind.FLASHCARD

    def test_average_session_minutes_ignores_empty_durations(self) -> None:
        record = activity_record(
            lesson_activities=[
                task_lesson("t1", time_spent_seconds=900),
                task_lesson("t2", time_spent_seconds=0),
            ],
            flashcard_sessions=[flashcard_session(duration_seconds=300)],
        )

        assert average_session_minutes(record) == 10

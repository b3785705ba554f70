# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Study pattern detection from daily rollups and content counts."""

from datetime import date, datetime, timedelta, tzinfo

from learning_insights.domains.activity.models import (
    ActivityRecord,
    TaskLessonActivity,
    VideoLessonActivity,
)
from learning_insights.domains.analytics.common import mean, round_int
from learning_insights.domains.analytics.performance import recent_study_days
from learning_insights.domains.insights.models import ContentKind, StudyPatterns, TimeOfDay
from learning_insights.utils.datetime import ensure_utc, normalize_day


def time_of_day(hour: int) -> TimeOfDay:
    """Bucket an hour: morning 06-12, afternoon 12-18, evening 18-22, night otherwise."""
    if 6 <= hour < 12:
        return TimeOfDay.MORNING
    if 12 <= hour < 18:
        return TimeOfDay.AFTERNOON
    if 18 <= hour < 22:
        return TimeOfDay.EVENING
    return TimeOfDay.NIGHT


def best_time_of_day(activity: ActivityRecord, tz: tzinfo) -> TimeOfDay:
    """Most frequent bucket of daily-record timestamps.

    Ties go to the earliest bucket; no records gives morning.
    """
    counts = {bucket: 0 for bucket in TimeOfDay}
    for daily in activity.daily_learning:
        counts[time_of_day(ensure_utc(daily.date).astimezone(tz).hour)] += 1
    return max(TimeOfDay, key=lambda bucket: counts[bucket])


def study_days(activity: ActivityRecord, tz: tzinfo) -> list[date]:
    """Distinct calendar days with a daily record, ascending."""
    return sorted({normalize_day(daily.date, tz) for daily in activity.daily_learning})


def current_streak(days: list[date], today: date) -> int:
    """Consecutive days with a record ending today."""
    present = set(days)
    streak = 0
    while today - timedelta(days=streak) in present:
        streak += 1
    return streak


def longest_streak(days: list[date]) -> int:
    """Longest run of consecutive days, for ascending distinct days."""
    if not days:
        return 0
    longest = run = 1
    for previous, current in zip(days, days[1:]):
        run = run + 1 if (current - previous).days == 1 else 1
        longest = max(longest, run)
    return longest


def preferred_content(activity: ActivityRecord) -> ContentKind:
    """Largest of video-lesson, task-lesson and flashcard-session counts.

    Ties go to video, then task.
    """
    counts = {
        ContentKind.VIDEO: sum(
            1 for lesson in activity.lesson_activities if isinstance(lesson, VideoLessonActivity)
        ),
        ContentKind.TASK: sum(
            1 for lesson in activity.lesson_activities if isinstance(lesson, TaskLessonActivity)
        ),
        ContentKind.FLASHCARD: len(activity.flashcard_sessions),
    }
    return max(ContentKind, key=lambda kind: counts[kind])


def average_session_minutes(activity: ActivityRecord) -> int:
    """Mean positive duration of flashcard sessions and lessons, in minutes."""
    durations = [s.duration_seconds for s in activity.flashcard_sessions] + [
        lesson.time_spent_seconds for lesson in activity.lesson_activities
    ]
    return round_int(mean(d for d in durations if d > 0) / 60)


def calculate_study_patterns(activity: ActivityRecord, now: datetime, tz: tzinfo) -> StudyPatterns:
    days = study_days(activity, tz)
    return StudyPatterns(
        best_time_of_day=best_time_of_day(activity, tz),
        avg_session_minutes=average_session_minutes(activity),
        weekly_frequency=recent_study_days(activity, now, tz),
        current_streak=current_streak(days, normalize_day(now, tz)),
        longest_streak=longest_streak(days),
        preferred_content_kind=preferred_content(activity),
    )

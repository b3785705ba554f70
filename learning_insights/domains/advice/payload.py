# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Snapshot of a user's learning state sent to the advice service."""

import math
from datetime import datetime
from typing import Any

from learning_insights.domains.activity.models import ActivityRecord, TaskKind, TaskLessonActivity
from learning_insights.domains.analytics.common import round_int
from learning_insights.domains.insights.models import InsightsRecord, Skill
from learning_insights.utils.datetime import ensure_utc, format_iso

DEFAULT_LESSON_MINUTES = 20
DEFAULT_SESSION_MINUTES = 30
DEFAULT_STUDY_FREQUENCY = 3
MAX_RECOMMENDATIONS = 5
MAX_AVAILABLE_LESSONS = 20
STUCK_ATTEMPTS = 3
STUCK_SCORE_RATIO = 0.6

SKILLS_BY_TASK_KIND: dict[TaskKind, list[str]] = {
    TaskKind.LISTENING: ["listening"],
    TaskKind.SPEAKING: ["speaking"],
    TaskKind.READING: ["reading"],
    TaskKind.MULTIPLE_CHOICE: ["reading"],
    TaskKind.FILL_BLANK: ["writing", "reading"],
    TaskKind.MATCHING: ["reading"],
}


def _skills(insights: InsightsRecord, now: datetime) -> dict[str, dict[str, Any]]:
    skills = {}
    for skill in Skill:
        level = insights.analysis.skill_mastery.get(skill)
        skills[skill.value] = {
            "level": level.level,
            "tasks_completed": level.tasks_completed,
            "average_score": level.average_score,
            "last_practiced": format_iso(level.last_practiced or now),
        }
    return skills


def _stuck_lesson(activity: ActivityRecord, course_id: str) -> str | None:
    """The most recent lesson of a course if it was failed repeatedly."""
    lessons = [lesson for lesson in activity.lesson_activities if lesson.course_id == course_id]
    if not lessons:
        return None
    last = max(lessons, key=lambda lesson: ensure_utc(lesson.completed_at or lesson.started_at))
    if (
        isinstance(last, TaskLessonActivity)
        and last.attempts >= STUCK_ATTEMPTS
        and last.task_stats.score / last.task_stats.max_score < STUCK_SCORE_RATIO
    ):
        return last.lesson_id
    return None


def _courses(activity: ActivityRecord, now: datetime) -> list[dict[str, Any]]:
    courses = []
    for course in activity.course_activities:
        lessons = [
            lesson for lesson in activity.lesson_activities if lesson.course_id == course.course_id
        ]
        completed = sum(1 for lesson in lessons if lesson.is_completed)
        progress = completed / len(lessons) * 100 if lessons else 0
        courses.append(
            {
                "course_id": course.course_id,
                "progress": round_int(progress),
                "avg_lesson_minutes": round_int(course.total_time_spent / 60)
                if course.total_time_spent
                else DEFAULT_LESSON_MINUTES,
                "stuck_at": _stuck_lesson(activity, course.course_id),
                "last_studied": format_iso(course.last_accessed_at or now),
            }
        )
    return courses


def _available_lessons(activity: ActivityRecord) -> list[dict[str, Any]]:
    available = []
    for lesson in activity.lesson_activities:
        if lesson.is_completed:
            continue
        task_kind = lesson.task_kind if isinstance(lesson, TaskLessonActivity) else None
        skills = SKILLS_BY_TASK_KIND.get(task_kind, ["reading"])
        available.append(
            {"lesson_id": lesson.lesson_id, "course_id": lesson.course_id, "skills": skills}
        )
        if len(available) == MAX_AVAILABLE_LESSONS:
            break
    return available


def study_duration_days(activity: ActivityRecord, now: datetime) -> int:
    """Whole days, rounded up, since the first daily record."""
    if not activity.daily_learning:
        return 0
    first = min(ensure_utc(daily.date) for daily in activity.daily_learning)
    return math.ceil(abs((now - first).total_seconds()) / 86400)


def build_advice_payload(
    insights: InsightsRecord,
    activity: ActivityRecord,
    now: datetime,
) -> dict[str, Any]:
    """Build the advice request body.

    Args:
        insights: The user's current insights.
        activity: The user's activity record.
        now: Reference time for durations and missing timestamps.

    Returns:
        JSON-serializable request body.
    """
    flashcards = insights.analysis.flashcard_mastery
    patterns = insights.study_patterns
    performance = insights.performance
    return {
        "user_id": insights.user_id,
        "overall_level": performance.overall_level.value,
        "weekly_progress": performance.weekly_progress_pct,
        "consistency": performance.consistency_pct,
        "retention": performance.retention_pct,
        "skills": _skills(insights, now),
        "courses": _courses(activity, now),
        "flashcards": {
            "total": flashcards.mastered_cards + flashcards.reviewing_cards + flashcards.learning_cards,
            "mastered": flashcards.mastered_cards,
            "learning": flashcards.learning_cards,
            "difficult": flashcards.difficult_cards,
        },
        "study_duration_days": study_duration_days(activity, now),
        "avg_session_minutes": patterns.avg_session_minutes or DEFAULT_SESSION_MINUTES,
        "study_frequency": patterns.weekly_frequency or DEFAULT_STUDY_FREQUENCY,
        "current_streak": patterns.current_streak,
        "available_lessons": _available_lessons(activity),
        "max_recommendations": MAX_RECOMMENDATIONS,
    }

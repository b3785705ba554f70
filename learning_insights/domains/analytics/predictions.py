# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Completion and skill-improvement predictions."""

import math
from datetime import datetime, timedelta, tzinfo

from learning_insights.domains.activity.models import ActivityRecord
from learning_insights.domains.analytics.common import clamp, mean, round_int
from learning_insights.domains.insights.models import (
    CourseCompletionEstimate,
    PerformanceSummary,
    Predictions,
    SkillImprovement,
    SkillMastery,
    StudyPlan,
)
from learning_insights.utils.datetime import normalize_day

DEFAULT_MINUTES_PER_LESSON = 20.0
MAX_COMPLETION_CONFIDENCE = 90
PROJECTION_WEEKS = 4
MAX_WEEKLY_RATE = 0.2
DEFAULT_WEEKLY_RATE = 0.05
LEVEL_STEP = 20


def minutes_per_week(activity: ActivityRecord, plan: StudyPlan, now: datetime, tz: tzinfo) -> float:
    """Study minutes of the last 7 calendar days, or the plan's weekly target."""
    today = normalize_day(now, tz)
    since = today - timedelta(days=6)
    seconds = sum(
        daily.total_study_time
        for daily in activity.daily_learning
        if since <= normalize_day(daily.date, tz) <= today
    )
    if seconds > 0:
        return seconds / 60
    return float(plan.daily_minutes * 7)


def estimate_course_completion(
    activity: ActivityRecord,
    performance: PerformanceSummary,
    plan: StudyPlan,
    now: datetime,
    tz: tzinfo,
) -> list[CourseCompletionEstimate]:
    """Completion date per in-progress course with remaining tracked lessons."""
    weekly_minutes = minutes_per_week(activity, plan, now, tz)
    confidence = round_int(min(performance.consistency_pct, MAX_COMPLETION_CONFIDENCE))

    estimates = []
    for course in activity.course_activities:
        if course.is_completed:
            continue
        lessons = [lesson for lesson in activity.lesson_activities if lesson.course_id == course.course_id]
        remaining = sum(1 for lesson in lessons if not lesson.is_completed)
        if remaining == 0:
            continue
        spent = [
            lesson.time_spent_seconds / 60
            for lesson in lessons
            if lesson.is_completed and lesson.time_spent_seconds > 0
        ]
        per_lesson = mean(spent) or DEFAULT_MINUTES_PER_LESSON
        days = math.ceil(remaining * per_lesson / weekly_minutes * 7)
        estimates.append(
            CourseCompletionEstimate(
                course_id=course.course_id,
                remaining_lessons=remaining,
                estimated_date=now + timedelta(days=days),
                confidence=confidence,
            )
        )
    return estimates


def project_skill_improvement(performance: PerformanceSummary, skills: SkillMastery) -> SkillImprovement:
    """Apply the clamped weekly progress rate to the current level over four weeks."""
    practiced = [
        level.level
        for level in (skills.listening, skills.speaking, skills.reading, skills.writing)
        if level.tasks_completed > 0
    ]
    current = round_int(mean(practiced))
    rate = clamp(performance.weekly_progress_pct / 100, -MAX_WEEKLY_RATE, MAX_WEEKLY_RATE)
    projected = int(clamp(round_int(current * (1 + rate) ** PROJECTION_WEEKS), 0, 100))

    if current >= 100:
        return SkillImprovement(current_level=current, projected_level=projected, time_to_next_level_days=0)

    threshold = min(100, (current // LEVEL_STEP + 1) * LEVEL_STEP)
    gain_rate = rate if rate > 0 else DEFAULT_WEEKLY_RATE
    weekly_gain = (current or 100) * gain_rate
    days = max(1, math.ceil((threshold - current) / weekly_gain * 7))

    return SkillImprovement(current_level=current, projected_level=projected, time_to_next_level_days=days)


def calculate_predictions(
    activity: ActivityRecord,
    performance: PerformanceSummary,
    skills: SkillMastery,
    plan: StudyPlan,
    now: datetime,
    tz: tzinfo,
) -> Predictions:
    return Predictions(
        course_completion_estimates=estimate_course_completion(activity, performance, plan, now, tz),
        skill_improvement=project_skill_improvement(performance, skills),
    )

# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Performance indicators: level, weekly progress, consistency, retention.

Scores blend two sources: the percentage of every completed task lesson and
the correct rate of every flashcard session that studied at least one card.
"""

from datetime import datetime, timedelta, tzinfo

from learning_insights.domains.activity.models import ActivityRecord
from learning_insights.domains.analytics.common import (
    clamp,
    completed_task_lessons,
    in_window,
    mean,
    round_int,
    session_rate,
)
from learning_insights.domains.insights.models import OverallLevel, PerformanceSummary
from learning_insights.utils.datetime import normalize_day

WEEK = timedelta(days=7)

INTERMEDIATE_THRESHOLD = 60
ADVANCED_THRESHOLD = 80


def blended_scores(
    activity: ActivityRecord,
    start: datetime | None = None,
    end: datetime | None = None,
    *,
    include_end: bool = False,
) -> list[float]:
    """Collect task percentages and flashcard session rates.

    Args:
        activity: The user's activity record.
        start: Window start, None for the full history.
        end: Window end, None for the full history.
        include_end: Whether the window end is inclusive.

    Returns:
        Score samples in percent.
    """

    def keep(ts: datetime) -> bool:
        if start is None or end is None:
            return True
        return in_window(ts, start, end, include_end=include_end)

    scores = [
        lesson.task_stats.percentage
        for lesson in completed_task_lessons(activity)
        if keep(lesson.completed_at)
    ]
    for session in activity.flashcard_sessions:
        rate = session_rate(session.correct_answers, session.cards_studied)
        if rate is not None and keep(session.studied_at):
            scores.append(rate)
    return scores


def overall_level(activity: ActivityRecord) -> OverallLevel:
    """Classify the learner from the average score over the full history."""
    average = mean(blended_scores(activity))
    if average < INTERMEDIATE_THRESHOLD:
        return OverallLevel.BEGINNER
    if average < ADVANCED_THRESHOLD:
        return OverallLevel.INTERMEDIATE
    return OverallLevel.ADVANCED


def weekly_progress(activity: ActivityRecord, now: datetime) -> float:
    """Percentage change of the average score, trailing week vs. the week before.

    Returns:
        A value in [-100, 100]. With no prior-week data, 100 when the
        current week has scores and 0 otherwise. A prior-week average of 0
        gives 100 when the current average is positive.
    """
    this_week = blended_scores(activity, now - WEEK, now, include_end=True)
    last_week = blended_scores(activity, now - 2 * WEEK, now - WEEK)

    this_avg = mean(this_week)
    last_avg = mean(last_week)

    if not last_week:
        return 100.0 if this_week else 0.0
    if last_avg == 0:
        return 100.0 if this_avg > 0 else 0.0

    return float(clamp(round_int((this_avg - last_avg) / last_avg * 100), -100, 100))


def recent_study_days(activity: ActivityRecord, now: datetime, tz: tzinfo) -> int:
    """Distinct calendar days among the last 7 (today included) with a daily record."""
    today = normalize_day(now, tz)
    window = {today - timedelta(days=offset) for offset in range(7)}
    return len({normalize_day(daily.date, tz) for daily in activity.daily_learning} & window)


def consistency(activity: ActivityRecord, now: datetime, tz: tzinfo) -> float:
    """Share of the last 7 calendar days with a daily record, in percent."""
    return recent_study_days(activity, now, tz) / 7 * 100


def retention(activity: ActivityRecord, now: datetime) -> float:
    """Correct-answer ratio across flashcard sessions of the trailing week."""
    sessions = [
        s
        for s in activity.flashcard_sessions
        if in_window(s.studied_at, now - WEEK, now, include_end=True)
    ]
    studied = sum(s.cards_studied for s in sessions)
    if studied == 0:
        return 0.0
    correct = sum(s.correct_answers for s in sessions)
    return min(100.0, correct / studied * 100)


def calculate_performance(activity: ActivityRecord, now: datetime, tz: tzinfo) -> PerformanceSummary:
    return PerformanceSummary(
        overall_level=overall_level(activity),
        weekly_progress_pct=weekly_progress(activity, now),
        consistency_pct=consistency(activity, now, tz),
        retention_pct=retention(activity, now),
    )

# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Analytics engine turning an activity record into derived insights.

The engine is pure: it reads one ActivityRecord and a reference time and
returns ComputedInsights without touching any store. Users below the data
sufficiency gate get the default insights instead of metrics computed from
one or two data points.

Usage:
    from learning_insights.domains.analytics import compute_insights

    computed = compute_insights(activity, now=utc_now())
    confidence = confidence_for(activity)
"""

import logging
from datetime import datetime, tzinfo

from learning_insights.domains.activity.models import ActivityRecord
from learning_insights.domains.analytics.mastery import calculate_analysis
from learning_insights.domains.analytics.patterns import calculate_study_patterns
from learning_insights.domains.analytics.performance import calculate_performance
from learning_insights.domains.analytics.predictions import calculate_predictions
from learning_insights.domains.analytics.recommendations import build_recommendations
from learning_insights.domains.insights.models import ComputedInsights
from learning_insights.utils.datetime import ensure_utc, get_timezone, normalize_day

logger = logging.getLogger(__name__)

MIN_COMPLETED_LESSONS = 3
MIN_FLASHCARD_SESSIONS = 2
MIN_CARD_REVIEWS = 10
MIN_STUDY_DAYS = 2


def has_sufficient_data(activity: ActivityRecord) -> bool:
    """Check whether the record backs meaningful metrics.

    True when any of: 3+ completed lessons, 2+ flashcard sessions,
    10+ card reviews, 2+ distinct study days.
    """
    tz = get_timezone(activity.timezone)
    study_days = {normalize_day(daily.date, tz) for daily in activity.daily_learning}
    return (
        activity.completed_lesson_count >= MIN_COMPLETED_LESSONS
        or len(activity.flashcard_sessions) >= MIN_FLASHCARD_SESSIONS
        or len(activity.card_learning) >= MIN_CARD_REVIEWS
        or len(study_days) >= MIN_STUDY_DAYS
    )


def confidence_for(activity: ActivityRecord | None) -> int:
    """100 when data is sufficient, otherwise 10 points per data point."""
    if activity is None:
        return 0
    if has_sufficient_data(activity):
        return 100
    return min(activity.data_point_count * 10, 100)


def compute_insights(
    activity: ActivityRecord,
    now: datetime,
    tz: tzinfo | None = None,
) -> ComputedInsights:
    """Derive performance, analysis, patterns, recommendations and predictions.

    Args:
        activity: The user's activity record.
        now: Reference time for every trailing window.
        tz: Timezone defining calendar days, defaults to the record's.

    Returns:
        The computed sections, or the defaults when data is insufficient.
    """
    if not has_sufficient_data(activity):
        logger.debug(
            "Insufficient data for user %s (%d data points), using defaults",
            activity.user_id,
            activity.data_point_count,
        )
        return ComputedInsights()

    now = ensure_utc(now)
    tz = tz or get_timezone(activity.timezone)

    performance = calculate_performance(activity, now, tz)
    analysis = calculate_analysis(activity, now)
    recommendations = build_recommendations(activity, performance, analysis.skill_mastery)

    return ComputedInsights(
        performance=performance,
        analysis=analysis,
        study_patterns=calculate_study_patterns(activity, now, tz),
        recommendations=recommendations,
        predictions=calculate_predictions(
            activity,
            performance,
            analysis.skill_mastery,
            recommendations.study_plan,
            now,
            tz,
        ),
    )

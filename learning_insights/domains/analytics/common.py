# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Numeric helpers shared by the analytics calculators.

Rounding is half-up (2.5 -> 3) at every documented rounding point so that
persisted values do not depend on banker's rounding.
"""

import math
from collections.abc import Iterable
from datetime import datetime

from learning_insights.domains.activity.models import ActivityRecord, TaskLessonActivity


def round_half_up(value: float, digits: int = 0) -> float:
    """Round a value half away from zero.

    Args:
        value: Value to round.
        digits: Number of decimal places to keep.

    Returns:
        The rounded value.
    """
    factor = 10**digits
    scaled = abs(value) * factor
    rounded = math.floor(scaled + 0.5) / factor
    return math.copysign(rounded, value) if rounded else 0.0


def round_int(value: float) -> int:
    """Round half-up to an int."""
    return int(round_half_up(value))


def mean(values: Iterable[float]) -> float:
    """Arithmetic mean, 0 for an empty iterable."""
    items = list(values)
    if not items:
        return 0.0
    return sum(items) / len(items)


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def in_window(ts: datetime, start: datetime, end: datetime, *, include_end: bool = False) -> bool:
    """Check start <= ts < end (or <= end)."""
    if include_end:
        return start <= ts <= end
    return start <= ts < end


def completed_task_lessons(activity: ActivityRecord) -> list[TaskLessonActivity]:
    """Task lessons with a completion timestamp, in record order."""
    return [
        lesson
        for lesson in activity.lesson_activities
        if isinstance(lesson, TaskLessonActivity) and lesson.completed_at is not None
    ]


def session_rate(correct: int, studied: int) -> float | None:
    """Flashcard session correct rate in percent, None when nothing was studied."""
    if studied <= 0:
        return None
    return correct / studied * 100

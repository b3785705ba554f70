# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Activity domain: per-user learning activity records and their storage.

The ActivityTracker lives in ``learning_insights.domains.activity.tracker``.
"""

from learning_insights.domains.activity.events import (
    ActivitySummary,
    CardReviewEvent,
    CourseAccessEvent,
    FlashcardSessionEvent,
    ReviewDifficulty,
    TaskResultEvent,
    VideoProgressEvent,
)
from learning_insights.domains.activity.models import (
    ActivityRecord,
    CardReview,
    CourseActivity,
    DailyLearning,
    FlashcardSession,
    LessonActivity,
    MasteryLevel,
    TaskKind,
    TaskLessonActivity,
    TaskStats,
    VideoLessonActivity,
    VideoStats,
)
from learning_insights.domains.activity.store import (
    ActivityStore,
    InMemoryActivityStore,
    SqlActivityStore,
)

__all__ = [
    "ActivityRecord",
    "ActivityStore",
    "ActivitySummary",
    "CardReview",
    "CardReviewEvent",
    "CourseAccessEvent",
    "FlashcardSessionEvent",
    "ReviewDifficulty",
    "TaskResultEvent",
    "VideoProgressEvent",
    "CourseActivity",
    "DailyLearning",
    "FlashcardSession",
    "InMemoryActivityStore",
    "LessonActivity",
    "MasteryLevel",
    "SqlActivityStore",
    "TaskKind",
    "TaskLessonActivity",
    "TaskStats",
    "VideoLessonActivity",
    "VideoStats",
]

# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Activity tracker service.

Folds activity events into a learner's ActivityRecord and asks the
insights pipeline for a debounced recompute after every write.

Every write:
1. Loads the record, creating an empty one for new learners
2. Applies the event to the lesson, flashcard or card log
3. Updates the rollup of the event's calendar day and the course access
4. Persists the record
5. Schedules a recompute; scheduling problems are logged and never fail
   the write

Usage:
    tracker = ActivityTracker(activity_store, pipeline)

    await tracker.track_task(user_id, TaskResultEvent(lesson_id="l1", score=80))
"""

import logging
from collections.abc import Callable
from datetime import datetime
from typing import TYPE_CHECKING

from learning_insights.domains.activity.events import (
    ActivitySummary,
    CardReviewEvent,
    CourseAccessEvent,
    FlashcardSessionEvent,
    ReviewDifficulty,
    TaskResultEvent,
    VideoProgressEvent,
    event_time,
)
from learning_insights.domains.activity.models import (
    ActivityRecord,
    CardReview,
    CourseActivity,
    DailyLearning,
    FlashcardSession,
    MasteryLevel,
    TaskLessonActivity,
    TaskStats,
    VideoLessonActivity,
    VideoStats,
)
from learning_insights.domains.activity.store import ActivityStore
from learning_insights.domains.analytics.patterns import current_streak
from learning_insights.utils.datetime import get_timezone, normalize_day, utc_now

if TYPE_CHECKING:
    from learning_insights.domains.insights.pipeline import InsightsPipeline

logger = logging.getLogger(__name__)


def card_mastery(event: CardReviewEvent) -> MasteryLevel:
    """Derive a card's mastery level from one review.

    Easy cards and cards answered correctly on their third review are
    mastered; a correct second review moves a card to reviewing.
    """
    if event.difficulty == ReviewDifficulty.EASY or (event.is_correct and event.review_count >= 3):
        return MasteryLevel.MASTERED
    if event.is_correct and event.review_count >= 2:
        return MasteryLevel.REVIEWING
    return MasteryLevel.LEARNING


class ActivityTracker:
    """Records learner activity and triggers insight recomputes."""

    def __init__(
        self,
        activity_store: ActivityStore,
        pipeline: "InsightsPipeline",
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = activity_store
        self._pipeline = pipeline
        self._clock = clock

    # =========================================================================
    # Writes
    # =========================================================================

    async def track_video(self, user_id: str, event: VideoProgressEvent) -> VideoLessonActivity:
        """Record watch progress of a video lesson.

        Repeat views add to the time spent and the attempt count, and keep
        the furthest watch position. A completed lesson stays completed.
        """
        now = self._clock()
        record = await self._load(user_id)
        completed_at = (
            event_time(event.completed_at, now) if event.watched_completely else None
        )

        lesson = record.find_lesson(event.lesson_id)
        if isinstance(lesson, VideoLessonActivity):
            lesson.course_id = event.course_id or lesson.course_id
            lesson.attempts += 1
            lesson.time_spent_seconds += event.watched_seconds
            lesson.video_stats = VideoStats(
                watched_seconds=max(lesson.video_stats.watched_seconds, event.watched_seconds),
                total_seconds=event.total_seconds,
                watched_completely=event.watched_completely,
            )
            lesson.is_completed = lesson.is_completed or event.watched_completely
            lesson.completed_at = lesson.completed_at or completed_at
        else:
            lesson = VideoLessonActivity(
                lesson_id=event.lesson_id,
                course_id=event.course_id,
                started_at=now,
                completed_at=completed_at,
                time_spent_seconds=event.watched_seconds,
                is_completed=event.watched_completely,
                video_stats=VideoStats(
                    watched_seconds=event.watched_seconds,
                    total_seconds=event.total_seconds,
                    watched_completely=event.watched_completely,
                ),
            )
            self._put_lesson(record, lesson)

        self._add_daily(
            record,
            now,
            study_seconds=event.watched_seconds,
            lessons_completed=1 if event.watched_completely else 0,
        )
        if event.course_id:
            self._touch_course(record, event.course_id, now, spent_seconds=event.watched_seconds)

        await self._persist(record)
        return lesson

    async def track_task(self, user_id: str, event: TaskResultEvent) -> TaskLessonActivity:
        """Record an attempt at a task lesson.

        The task counts as completed when the score reaches the pass mark.
        The latest attempt's result replaces the previous one, but a failed
        retry does not undo an earlier pass.
        """
        now = self._clock()
        record = await self._load(user_id)
        passed = event.is_passed
        completed_at = event_time(event.completed_at, now) if passed else None
        stats = TaskStats(
            score=event.score,
            max_score=event.max_score,
            correct_answers=event.correct_answers,
            total_questions=event.total_questions,
            is_passed=passed,
        )

        lesson = record.find_lesson(event.lesson_id)
        if isinstance(lesson, TaskLessonActivity):
            lesson.course_id = event.course_id or lesson.course_id
            lesson.task_kind = event.task_kind or lesson.task_kind
            lesson.attempts += 1
            lesson.time_spent_seconds += event.time_spent_seconds
            lesson.task_stats = stats
            lesson.is_completed = lesson.is_completed or passed
            lesson.completed_at = lesson.completed_at or completed_at
        else:
            lesson = TaskLessonActivity(
                lesson_id=event.lesson_id,
                course_id=event.course_id,
                task_kind=event.task_kind,
                started_at=now,
                completed_at=completed_at,
                time_spent_seconds=event.time_spent_seconds,
                is_completed=passed,
                task_stats=stats,
            )
            self._put_lesson(record, lesson)

        self._add_daily(
            record,
            now,
            study_seconds=event.time_spent_seconds,
            lessons_completed=1 if passed else 0,
        )
        if event.course_id:
            self._touch_course(record, event.course_id, now, spent_seconds=event.time_spent_seconds)

        await self._persist(record)
        return lesson

    async def track_flashcard_session(
        self, user_id: str, event: FlashcardSessionEvent
    ) -> FlashcardSession:
        """Append a flashcard session. Sessions never count as lessons."""
        now = self._clock()
        record = await self._load(user_id)
        session = FlashcardSession(
            content_id=event.content_id,
            cards_studied=event.cards_studied,
            correct_answers=event.correct_answers,
            duration_seconds=event.duration_seconds,
            studied_at=event_time(event.studied_at, now),
        )
        record.flashcard_sessions.append(session)

        self._add_daily(
            record,
            now,
            study_seconds=event.duration_seconds,
            cards_reviewed=event.cards_studied,
            correct_answers=event.correct_answers,
        )

        await self._persist(record)
        return session

    async def track_card(self, user_id: str, event: CardReviewEvent) -> CardReview:
        """Append a card review with its derived mastery level."""
        now = self._clock()
        record = await self._load(user_id)
        review = CardReview(
            card_id=event.card_id,
            flashcard_id=event.flashcard_id,
            is_correct=event.is_correct,
            response_time_ms=event.response_time_ms,
            mastery_level=card_mastery(event),
            reviewed_at=event_time(event.reviewed_at, now),
        )
        record.card_learning.append(review)

        self._add_daily(
            record,
            now,
            cards_learned=1 if review.mastery_level == MasteryLevel.MASTERED else 0,
        )

        await self._persist(record)
        return review

    async def track_course_access(self, user_id: str, event: CourseAccessEvent) -> CourseActivity:
        """Record that a course was opened, optionally marking it completed."""
        now = self._clock()
        record = await self._load(user_id)
        course = self._touch_course(record, event.course_id, now, completed=event.is_completed)

        await self._persist(record)
        return course

    async def clear_activity(self, user_id: str) -> bool:
        """Delete a learner's activity and insights and cancel their jobs.

        Returns:
            Whether an activity record existed.
        """
        existed = await self._store.delete(user_id)
        await self._pipeline.clear_user(user_id)
        logger.info("Cleared activity for user %s (existed=%s)", user_id, existed)
        return existed

    # =========================================================================
    # Reads
    # =========================================================================

    async def activity_summary(self, user_id: str) -> ActivitySummary:
        """Entry counts of a learner's activity; all zero for new learners."""
        record = await self._store.get(user_id)
        if record is None:
            return ActivitySummary()

        return ActivitySummary(
            total_lessons=len(record.lesson_activities),
            total_flashcard_sessions=len(record.flashcard_sessions),
            total_card_reviews=len(record.card_learning),
            total_days=len(record.daily_learning),
            total_time_spent=sum(day.total_study_time for day in record.daily_learning),
            courses_count=len(record.course_activities),
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _load(self, user_id: str) -> ActivityRecord:
        record = await self._store.get(user_id)
        return record if record is not None else ActivityRecord(user_id=user_id)

    async def _persist(self, record: ActivityRecord) -> None:
        await self._store.save(record)

        try:
            await self._pipeline.schedule_recompute(record.user_id)
        except Exception as e:
            # The activity is already stored
            logger.error(
                "Failed to schedule recompute for user %s: %s",
                record.user_id,
                str(e),
                exc_info=True,
            )

    @staticmethod
    def _put_lesson(record: ActivityRecord, lesson: VideoLessonActivity | TaskLessonActivity) -> None:
        """Insert a lesson, replacing an entry of the other kind in place."""
        for index, existing in enumerate(record.lesson_activities):
            if existing.lesson_id == lesson.lesson_id:
                lesson.attempts = existing.attempts + 1
                lesson.time_spent_seconds += existing.time_spent_seconds
                lesson.started_at = existing.started_at
                record.lesson_activities[index] = lesson
                return
        record.lesson_activities.append(lesson)

    @staticmethod
    def _add_daily(
        record: ActivityRecord,
        now: datetime,
        *,
        study_seconds: float = 0,
        lessons_completed: int = 0,
        cards_reviewed: int = 0,
        cards_learned: int = 0,
        correct_answers: int = 0,
    ) -> DailyLearning:
        """Add to the rollup of the current day, creating it if needed."""
        tz = get_timezone(record.timezone)
        today = normalize_day(now, tz)

        for daily in record.daily_learning:
            if normalize_day(daily.date, tz) == today:
                break
        else:
            days = [normalize_day(daily.date, tz) for daily in record.daily_learning]
            daily = DailyLearning(
                date=now,
                streak_days=current_streak([*days, today], today),
            )
            record.daily_learning.append(daily)

        if cards_reviewed:
            # Correct rate is averaged over all cards reviewed that day
            previous_correct = daily.correct_rate / 100 * daily.cards_reviewed
            daily.correct_rate = min(
                100.0,
                (previous_correct + correct_answers) / (daily.cards_reviewed + cards_reviewed) * 100,
            )

        daily.total_study_time += study_seconds
        daily.lessons_completed += lessons_completed
        daily.cards_reviewed += cards_reviewed
        daily.cards_learned += cards_learned
        return daily

    @staticmethod
    def _touch_course(
        record: ActivityRecord,
        course_id: str,
        now: datetime,
        *,
        spent_seconds: float = 0,
        completed: bool = False,
    ) -> CourseActivity:
        course = record.find_course(course_id)
        if course is None:
            course = CourseActivity(course_id=course_id, started_at=now, last_accessed_at=now)
            record.course_activities.append(course)

        course.last_accessed_at = now
        course.total_time_spent += spent_seconds
        if completed:
            course.is_completed = True
            course.completed_at = now
        return course

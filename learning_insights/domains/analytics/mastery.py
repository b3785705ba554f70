# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Learning analysis: course progress, lesson, flashcard and skill mastery."""

import math
from collections import Counter
from datetime import datetime, timedelta

from learning_insights.domains.activity.models import (
    ActivityRecord,
    CardReview,
    MasteryLevel,
    TaskKind,
    TaskLessonActivity,
    VideoLessonActivity,
)
from learning_insights.domains.analytics.common import (
    completed_task_lessons,
    mean,
    round_half_up,
    round_int,
    session_rate,
)
from learning_insights.domains.insights.models import (
    CourseProgress,
    FlashcardMastery,
    LearningAnalysis,
    LessonMastery,
    Skill,
    SkillLevel,
    SkillMastery,
    StrugglingCourse,
    TaskLessonMastery,
    VideoLessonMastery,
)

SKILL_BY_TASK_KIND: dict[TaskKind, Skill] = {
    TaskKind.LISTENING: Skill.LISTENING,
    TaskKind.SPEAKING: Skill.SPEAKING,
    TaskKind.READING: Skill.READING,
    TaskKind.FILL_BLANK: Skill.WRITING,
    TaskKind.MULTIPLE_CHOICE: Skill.READING,
    TaskKind.MATCHING: Skill.READING,
}

STRUGGLING_RATIO = 0.5
DIFFICULT_FAILURES = 3
MISTAKE_ATTEMPTS = 2
MAX_COMMON_MISTAKES = 5
UNKNOWN_LESSON = "unknown"


# =============================================================================
# Courses
# =============================================================================


def find_struggling_courses(activity: ActivityRecord) -> list[StrugglingCourse]:
    """Incomplete courses with fewer than half of their tracked lessons completed.

    The stuck point is the first incomplete lesson of the course in record
    order, which need not be the lesson attempted last.
    """
    struggling = []
    for course in activity.course_activities:
        if course.is_completed:
            continue
        lessons = [
            lesson for lesson in activity.lesson_activities if lesson.course_id == course.course_id
        ]
        if not lessons:
            continue
        completed = sum(1 for lesson in lessons if lesson.is_completed)
        ratio = completed / len(lessons)
        if ratio >= STRUGGLING_RATIO:
            continue
        stuck = next((lesson.lesson_id for lesson in lessons if not lesson.is_completed), None)
        struggling.append(
            StrugglingCourse(
                course_id=course.course_id,
                progress_pct=round_int(ratio * 100),
                stuck_at=stuck or UNKNOWN_LESSON,
            )
        )
    return struggling


def calculate_course_progress(activity: ActivityRecord) -> CourseProgress:
    courses = activity.course_activities
    durations = [
        (course.completed_at - course.started_at).total_seconds() / 86400
        for course in courses
        if course.is_completed and course.completed_at is not None
    ]
    return CourseProgress(
        courses_in_progress=sum(1 for course in courses if not course.is_completed),
        average_completion_days=round_int(mean(durations)),
        struggling_courses=find_struggling_courses(activity),
    )


# =============================================================================
# Lessons
# =============================================================================


def calculate_lesson_mastery(activity: ActivityRecord) -> LessonMastery:
    videos = [lesson for lesson in activity.lesson_activities if isinstance(lesson, VideoLessonActivity)]
    tasks = [lesson for lesson in activity.lesson_activities if isinstance(lesson, TaskLessonActivity)]

    video_mastery = VideoLessonMastery()
    if videos:
        # Videos without a known duration count as 0% watched
        watch_pcts = [
            v.video_stats.watched_seconds / v.video_stats.total_seconds * 100
            if v.video_stats.total_seconds > 0
            else 0.0
            for v in videos
        ]
        watched = sum(1 for v in videos if v.video_stats.watched_completely)
        video_mastery = VideoLessonMastery(
            average_watch_pct=round_int(mean(watch_pcts)),
            completion_rate=round_int(watched / len(videos) * 100),
            average_rewatch=round_half_up(mean(max(v.attempts, 1) for v in videos), 1),
        )

    task_mastery = TaskLessonMastery()
    if tasks:
        mistakes = sorted(
            (t for t in tasks if max(t.attempts, 1) > MISTAKE_ATTEMPTS),
            key=lambda t: t.attempts,
            reverse=True,
        )
        task_mastery = TaskLessonMastery(
            average_score=round_int(mean(t.task_stats.percentage for t in tasks)),
            average_attempts=round_half_up(mean(max(t.attempts, 1) for t in tasks), 1),
            common_mistakes=[t.lesson_id for t in mistakes[:MAX_COMMON_MISTAKES]],
        )

    return LessonMastery(video_lessons=video_mastery, task_lessons=task_mastery)


# =============================================================================
# Flashcards
# =============================================================================


def latest_reviews(reviews: list[CardReview]) -> dict[str, CardReview]:
    """Most recent review per card. Later entries win timestamp ties."""
    latest: dict[str, CardReview] = {}
    for review in reviews:
        current = latest.get(review.card_id)
        if current is None or review.reviewed_at >= current.reviewed_at:
            latest[review.card_id] = review
    return latest


def failure_counts(reviews: list[CardReview]) -> Counter[str]:
    """Incorrect reviews per card across the whole history."""
    return Counter(review.card_id for review in reviews if not review.is_correct)


def calculate_flashcard_mastery(activity: ActivityRecord, now: datetime) -> FlashcardMastery:
    levels = Counter(review.mastery_level for review in latest_reviews(activity.card_learning).values())
    failures = failure_counts(activity.card_learning)

    response_times = [r.response_time_ms for r in activity.card_learning if r.response_time_ms > 0]

    since = now - timedelta(hours=24)
    recent_rates = [
        session_rate(s.correct_answers, s.cards_studied) or 0.0
        for s in activity.flashcard_sessions
        if s.studied_at >= since
    ]

    return FlashcardMastery(
        mastered_cards=levels[MasteryLevel.MASTERED],
        reviewing_cards=levels[MasteryLevel.REVIEWING],
        learning_cards=levels[MasteryLevel.LEARNING],
        difficult_cards=sum(1 for count in failures.values() if count > DIFFICULT_FAILURES),
        average_response_ms=round_int(mean(response_times)),
        daily_retention_pct=round_int(mean(recent_rates)),
    )


# =============================================================================
# Skills
# =============================================================================


def skill_level(average_score: float, tasks_completed: int) -> int:
    """Level rewarding both accuracy and practice volume.

    ``min(100, round(avg * (1 + log10(n + 1) / 10)))``; non-decreasing in
    ``tasks_completed`` for a fixed average.
    """
    multiplier = 1 + math.log10(tasks_completed + 1) / 10
    return min(100, round_int(average_score * multiplier))


def calculate_skill_mastery(activity: ActivityRecord) -> SkillMastery:
    """Running-average score per skill over completed task lessons."""
    totals: dict[Skill, tuple[int, float, datetime | None]] = {
        skill: (0, 0.0, None) for skill in Skill
    }

    for lesson in completed_task_lessons(activity):
        if lesson.task_kind is None:
            continue
        skill = SKILL_BY_TASK_KIND[lesson.task_kind]
        count, average, last = totals[skill]
        count += 1
        average = (average * (count - 1) + lesson.task_stats.percentage) / count
        if last is None or lesson.completed_at > last:
            last = lesson.completed_at
        totals[skill] = (count, average, last)

    levels = {
        skill.value: SkillLevel(
            level=skill_level(average, count),
            tasks_completed=count,
            average_score=round_int(average),
            last_practiced=last,
        )
        for skill, (count, average, last) in totals.items()
    }
    return SkillMastery(**levels)


def weakest_skill(mastery: SkillMastery) -> Skill:
    """Skill with the lowest level. Ties go to the earlier skill."""
    return min(Skill, key=lambda skill: mastery.get(skill).level)


def calculate_analysis(activity: ActivityRecord, now: datetime) -> LearningAnalysis:
    return LearningAnalysis(
        course_progress=calculate_course_progress(activity),
        lesson_mastery=calculate_lesson_mastery(activity),
        flashcard_mastery=calculate_flashcard_mastery(activity, now),
        skill_mastery=calculate_skill_mastery(activity),
    )

# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Rule-based recommendations: next lessons, review cards and a study plan.

No external calls are made here. Lesson candidates are the uncompleted
lessons of the activity record, considered in record order:

1. up to 2 task lessons practicing the weakest skill (high priority)
2. up to 2 lessons from courses still in progress (medium priority)
3. any other uncompleted lesson until 5 are chosen (low priority)
"""

from learning_insights.domains.activity.models import ActivityRecord, TaskLessonActivity
from learning_insights.domains.analytics.mastery import (
    SKILL_BY_TASK_KIND,
    failure_counts,
    latest_reviews,
    weakest_skill,
)
from learning_insights.domains.insights.models import (
    ContentMix,
    LessonRecommendation,
    PerformanceSummary,
    RecommendationPriority,
    Recommendations,
    ReviewCard,
    SkillMastery,
    StudyPlan,
)

MAX_NEXT_LESSONS = 5
MAX_WEAK_SKILL_LESSONS = 2
MAX_COURSE_LESSONS = 2
MAX_REVIEW_CARDS = 10
MAX_URGENCY = 10

REASON_WEAK_SKILL = "improve_weak_skill"
REASON_CONTINUE_COURSE = "continue_course"
REASON_COMPLETE_LESSON = "complete_lesson"


def recommend_lessons(activity: ActivityRecord, skills: SkillMastery) -> list[LessonRecommendation]:
    pending = [lesson for lesson in activity.lesson_activities if not lesson.is_completed]
    weakest = weakest_skill(skills)
    open_courses = {c.course_id for c in activity.course_activities if not c.is_completed}

    chosen: list[LessonRecommendation] = []
    taken: set[str] = set()

    def pick(candidates, limit: int, priority: RecommendationPriority, reason: str) -> None:
        added = 0
        for lesson in candidates:
            if len(chosen) >= MAX_NEXT_LESSONS or added >= limit:
                return
            if lesson.lesson_id in taken:
                continue
            taken.add(lesson.lesson_id)
            chosen.append(
                LessonRecommendation(
                    lesson_id=lesson.lesson_id,
                    course_id=lesson.course_id,
                    priority=priority,
                    reason=reason,
                )
            )
            added += 1

    pick(
        (
            lesson
            for lesson in pending
            if isinstance(lesson, TaskLessonActivity)
            and lesson.task_kind is not None
            and SKILL_BY_TASK_KIND[lesson.task_kind] is weakest
        ),
        MAX_WEAK_SKILL_LESSONS,
        RecommendationPriority.HIGH,
        REASON_WEAK_SKILL,
    )
    pick(
        (lesson for lesson in pending if lesson.course_id in open_courses),
        MAX_COURSE_LESSONS,
        RecommendationPriority.MEDIUM,
        REASON_CONTINUE_COURSE,
    )
    pick(pending, MAX_NEXT_LESSONS, RecommendationPriority.LOW, REASON_COMPLETE_LESSON)
    return chosen


def rank_review_cards(activity: ActivityRecord) -> list[ReviewCard]:
    """Cards with failed reviews, most failures first, capped at 10."""
    failures = failure_counts(activity.card_learning)
    latest = latest_reviews(activity.card_learning)
    ranked = sorted(failures.items(), key=lambda item: item[1], reverse=True)
    return [
        ReviewCard(
            card_id=card_id,
            flashcard_id=latest[card_id].flashcard_id,
            urgency=min(count, MAX_URGENCY),
            failure_count=count,
            last_seen=latest[card_id].reviewed_at,
        )
        for card_id, count in ranked[:MAX_REVIEW_CARDS]
    ]


def build_study_plan(performance: PerformanceSummary) -> StudyPlan:
    if performance.consistency_pct < 30:
        daily_minutes = 20
    elif performance.consistency_pct > 70:
        daily_minutes = 45
    else:
        daily_minutes = 30

    if performance.retention_pct < 50:
        mix = ContentMix(new_lessons=20, review_cards=60, practice_tasks=20)
    elif performance.retention_pct > 80:
        mix = ContentMix(new_lessons=50, review_cards=30, practice_tasks=20)
    else:
        mix = ContentMix(new_lessons=40, review_cards=40, practice_tasks=20)

    return StudyPlan(daily_minutes=daily_minutes, content_mix=mix)


def build_recommendations(
    activity: ActivityRecord,
    performance: PerformanceSummary,
    skills: SkillMastery,
) -> Recommendations:
    return Recommendations(
        next_lessons=recommend_lessons(activity, skills),
        review_cards=rank_review_cards(activity),
        study_plan=build_study_plan(performance),
    )

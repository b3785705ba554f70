# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Data models for derived learning insights.

This module defines the per-user InsightsRecord:
- Performance, analysis and study pattern summaries
- Rule-based recommendations and completion predictions
- The AI advice fragment, written independently of the rest
- Metadata describing how much data backs the record

Every model has defaults equal to the conservative values reported for a
user without enough activity, so ``ComputedInsights()`` is the default
insights payload.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

INSIGHTS_VERSION = "1.0.0"


class OverallLevel(str, Enum):
    """Learner level derived from the average score."""

    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class TimeOfDay(str, Enum):
    """Time-of-day buckets, in tie-breaking order."""

    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"
    NIGHT = "night"


class ContentKind(str, Enum):
    """Content kinds, in tie-breaking order."""

    VIDEO = "video"
    TASK = "task"
    FLASHCARD = "flashcard"


class Skill(str, Enum):
    """Language skills, in tie-breaking order."""

    LISTENING = "listening"
    SPEAKING = "speaking"
    READING = "reading"
    WRITING = "writing"


class RecommendationPriority(str, Enum):
    """Priority of a recommended lesson."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class AdviceTone(str, Enum):
    """Tone of an AI advice message."""

    ENCOURAGING = "encouraging"
    MOTIVATING = "motivating"
    SUPPORTIVE = "supportive"
    CONSTRUCTIVE = "constructive"


# =============================================================================
# Performance and analysis
# =============================================================================


class PerformanceSummary(BaseModel):
    """Core performance indicators."""

    overall_level: OverallLevel = OverallLevel.BEGINNER
    weekly_progress_pct: float = Field(default=0, ge=-100, le=100)
    consistency_pct: float = Field(default=0, ge=0, le=100)
    retention_pct: float = Field(default=0, ge=0, le=100)


class StrugglingCourse(BaseModel):
    """An incomplete course with less than half of its lessons completed."""

    course_id: str
    progress_pct: float = Field(default=0, description="Completed share of tracked lessons")
    stuck_at: str = Field(description="First incomplete lesson, or 'unknown'")


class CourseProgress(BaseModel):
    courses_in_progress: int = 0
    average_completion_days: int = 0
    struggling_courses: list[StrugglingCourse] = Field(default_factory=list)


class VideoLessonMastery(BaseModel):
    average_watch_pct: float = 0
    completion_rate: float = 0
    average_rewatch: float = 0


class TaskLessonMastery(BaseModel):
    average_score: float = 0
    average_attempts: float = 0
    common_mistakes: list[str] = Field(
        default_factory=list,
        description="Lessons that needed more than two attempts",
    )


class LessonMastery(BaseModel):
    video_lessons: VideoLessonMastery = Field(default_factory=VideoLessonMastery)
    task_lessons: TaskLessonMastery = Field(default_factory=TaskLessonMastery)


class FlashcardMastery(BaseModel):
    """Card counts by latest mastery level plus review statistics."""

    mastered_cards: int = 0
    reviewing_cards: int = 0
    learning_cards: int = 0
    difficult_cards: int = Field(default=0, description="Cards with more than 3 failed reviews")
    average_response_ms: float = 0
    daily_retention_pct: float = 0


class SkillLevel(BaseModel):
    """Mastery of one skill."""

    level: int = Field(default=0, ge=0, le=100)
    tasks_completed: int = 0
    average_score: float = 0
    last_practiced: datetime | None = None


class SkillMastery(BaseModel):
    listening: SkillLevel = Field(default_factory=SkillLevel)
    speaking: SkillLevel = Field(default_factory=SkillLevel)
    reading: SkillLevel = Field(default_factory=SkillLevel)
    writing: SkillLevel = Field(default_factory=SkillLevel)

    def get(self, skill: Skill) -> SkillLevel:
        return getattr(self, skill.value)


class LearningAnalysis(BaseModel):
    course_progress: CourseProgress = Field(default_factory=CourseProgress)
    lesson_mastery: LessonMastery = Field(default_factory=LessonMastery)
    flashcard_mastery: FlashcardMastery = Field(default_factory=FlashcardMastery)
    skill_mastery: SkillMastery = Field(default_factory=SkillMastery)


class StudyPatterns(BaseModel):
    """Study habits derived from daily rollups and content counts."""

    best_time_of_day: TimeOfDay = TimeOfDay.MORNING
    avg_session_minutes: float = 0
    weekly_frequency: int = Field(default=0, ge=0, le=7)
    current_streak: int = 0
    longest_streak: int = 0
    preferred_content_kind: ContentKind = ContentKind.VIDEO


# =============================================================================
# Recommendations and predictions
# =============================================================================


class LessonRecommendation(BaseModel):
    lesson_id: str
    course_id: str | None = None
    priority: RecommendationPriority
    reason: str = Field(description="improve_weak_skill, continue_course or complete_lesson")


class ReviewCard(BaseModel):
    card_id: str
    flashcard_id: str
    urgency: int = Field(ge=1, le=10)
    failure_count: int = 0
    last_seen: datetime | None = None


class ContentMix(BaseModel):
    """Share of daily study time per activity, in percent."""

    new_lessons: int = 40
    review_cards: int = 40
    practice_tasks: int = 20


class StudyPlan(BaseModel):
    daily_minutes: int = 30
    content_mix: ContentMix = Field(default_factory=ContentMix)


class Recommendations(BaseModel):
    next_lessons: list[LessonRecommendation] = Field(default_factory=list, max_length=5)
    review_cards: list[ReviewCard] = Field(default_factory=list, max_length=10)
    study_plan: StudyPlan = Field(default_factory=StudyPlan)


class CourseCompletionEstimate(BaseModel):
    course_id: str
    remaining_lessons: int
    estimated_date: datetime
    confidence: int = Field(ge=0, le=90)


class SkillImprovement(BaseModel):
    current_level: int = 0
    projected_level: int = Field(default=0, description="Projected level in four weeks")
    time_to_next_level_days: int = 0


class Predictions(BaseModel):
    course_completion_estimates: list[CourseCompletionEstimate] = Field(default_factory=list)
    skill_improvement: SkillImprovement = Field(default_factory=SkillImprovement)


# =============================================================================
# Records
# =============================================================================


class ComputedInsights(BaseModel):
    """Everything the analytics engine derives from an activity record."""

    performance: PerformanceSummary = Field(default_factory=PerformanceSummary)
    analysis: LearningAnalysis = Field(default_factory=LearningAnalysis)
    study_patterns: StudyPatterns = Field(default_factory=StudyPatterns)
    recommendations: Recommendations = Field(default_factory=Recommendations)
    predictions: Predictions = Field(default_factory=Predictions)


class AIAdvice(BaseModel):
    """Short encouragement text produced by the advice worker."""

    message: str
    tone: AdviceTone = AdviceTone.ENCOURAGING
    generated_at: datetime
    is_fallback: bool = False


class InsightsMetadata(BaseModel):
    confidence_pct: int = Field(default=0, ge=0, le=100)
    data_point_count: int = Field(default=0, ge=0)
    last_updated: datetime
    last_synced_at: datetime
    version: str = INSIGHTS_VERSION


class InsightsRecord(ComputedInsights):
    """Latest insights of one user.

    Every section except ``ai_advice`` is replaced by each recompute.
    ``ai_advice`` is only written by the advice worker.
    """

    user_id: str
    ai_advice: AIAdvice | None = None
    metadata: InsightsMetadata

    @classmethod
    def default(cls, user_id: str, now: datetime) -> "InsightsRecord":
        """Conservative record for a user without any activity."""
        return cls(
            user_id=user_id,
            metadata=InsightsMetadata(last_updated=now, last_synced_at=now),
        )

    @classmethod
    def from_computed(
        cls,
        user_id: str,
        computed: ComputedInsights,
        metadata: InsightsMetadata,
        ai_advice: AIAdvice | None = None,
    ) -> "InsightsRecord":
        return cls(
            user_id=user_id,
            ai_advice=ai_advice,
            metadata=metadata,
            **{name: getattr(computed, name) for name in ComputedInsights.model_fields},
        )

    def computed(self) -> ComputedInsights:
        """The sections written by recompute."""
        return ComputedInsights(
            **{name: getattr(self, name) for name in ComputedInsights.model_fields}
        )

# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Activity tracking API endpoints.

Every tracking call stores the event and schedules a debounced insights
recompute for the user. A recompute that cannot be scheduled never fails
the call.

Endpoints:
- POST /{user_id}/video - Video watch progress
- POST /{user_id}/task - Task attempt result
- POST /{user_id}/flashcard-session - Finished flashcard session
- POST /{user_id}/card - Single card review
- POST /{user_id}/course-access - Course opened or completed
- GET /{user_id}/summary - Activity entry counts
- DELETE /{user_id} - Delete all activity and insights of a user
"""

import logging

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field

from learning_insights.api.dependencies import TrackerDep
from learning_insights.core.exceptions import InvalidActivityError, StoreError
from learning_insights.domains.activity.events import (
    ActivitySummary,
    CardReviewEvent,
    CourseAccessEvent,
    FlashcardSessionEvent,
    TaskResultEvent,
    VideoProgressEvent,
)
from learning_insights.domains.activity.models import MasteryLevel

logger = logging.getLogger(__name__)

router = APIRouter()


# ============================================================================
# Response Models
# ============================================================================


class TrackResponse(BaseModel):
    """Outcome of a tracking call."""

    success: bool = True
    message: str = Field(description="Human-readable outcome")


class TaskTrackResponse(TrackResponse):
    """Outcome of a task attempt."""

    passed: bool = Field(description="Whether the attempt reached the pass mark")


class CardTrackResponse(TrackResponse):
    """Outcome of a card review."""

    mastery_level: MasteryLevel = Field(description="Derived mastery of the card")


def _store_failure(user_id: str, error: Exception) -> HTTPException:
    if isinstance(error, InvalidActivityError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))
    logger.error("Activity store failed for user %s: %s", user_id, error)
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Activity could not be stored",
    )


# ============================================================================
# Tracking
# ============================================================================


@router.post("/{user_id}/video", response_model=TrackResponse)
async def track_video(user_id: str, event: VideoProgressEvent, tracker: TrackerDep) -> TrackResponse:
    """Track video watch progress."""
    try:
        await tracker.track_video(user_id, event)
    except (InvalidActivityError, StoreError) as e:
        raise _store_failure(user_id, e) from e
    return TrackResponse(message="Video activity tracked")


@router.post("/{user_id}/task", response_model=TaskTrackResponse)
async def track_task(user_id: str, event: TaskResultEvent, tracker: TrackerDep) -> TaskTrackResponse:
    """Track a task attempt."""
    try:
        lesson = await tracker.track_task(user_id, event)
    except (InvalidActivityError, StoreError) as e:
        raise _store_failure(user_id, e) from e
    return TaskTrackResponse(message="Task activity tracked", passed=lesson.task_stats.is_passed)


@router.post("/{user_id}/flashcard-session", response_model=TrackResponse)
async def track_flashcard_session(
    user_id: str,
    event: FlashcardSessionEvent,
    tracker: TrackerDep,
) -> TrackResponse:
    """Track a finished flashcard session."""
    try:
        await tracker.track_flashcard_session(user_id, event)
    except (InvalidActivityError, StoreError) as e:
        raise _store_failure(user_id, e) from e
    return TrackResponse(message="Flashcard session tracked")


@router.post("/{user_id}/card", response_model=CardTrackResponse)
async def track_card(user_id: str, event: CardReviewEvent, tracker: TrackerDep) -> CardTrackResponse:
    """Track a single card review."""
    try:
        review = await tracker.track_card(user_id, event)
    except (InvalidActivityError, StoreError) as e:
        raise _store_failure(user_id, e) from e
    return CardTrackResponse(message="Card learning tracked", mastery_level=review.mastery_level)


@router.post("/{user_id}/course-access", response_model=TrackResponse)
async def track_course_access(
    user_id: str,
    event: CourseAccessEvent,
    tracker: TrackerDep,
) -> TrackResponse:
    """Track that a course was opened or completed."""
    try:
        await tracker.track_course_access(user_id, event)
    except (InvalidActivityError, StoreError) as e:
        raise _store_failure(user_id, e) from e
    action = "completion" if event.is_completed else "access"
    return TrackResponse(message=f"Course {action} tracked")


# ============================================================================
# Summary and clearing
# ============================================================================


@router.get("/{user_id}/summary", response_model=ActivitySummary)
async def get_activity_summary(user_id: str, tracker: TrackerDep) -> ActivitySummary:
    """Entry counts of a user's activity record."""
    return await tracker.activity_summary(user_id)


@router.delete("/{user_id}", response_model=TrackResponse)
async def clear_activity(user_id: str, tracker: TrackerDep) -> TrackResponse:
    """Delete a user's activity and insights and cancel their pending jobs."""
    existed = await tracker.clear_activity(user_id)
    message = "User activity cleared" if existed else "No activity to clear"
    return TrackResponse(message=message)

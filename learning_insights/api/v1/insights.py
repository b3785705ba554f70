# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Insights API endpoints.

This module provides endpoints for reading insights and triggering work:
- GET /queues - Job counts of the recompute and advice queues
- GET /{user_id} - Latest insights of a user
- POST /{user_id}/recompute - Force an immediate recompute
- POST /{user_id}/advice - Force AI advice generation

Example:
    POST /api/v1/insights/user-1/recompute
"""

import logging
from typing import Any

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field

from learning_insights.api.dependencies import PipelineDep
from learning_insights.core.exceptions import QueueError
from learning_insights.domains.insights.models import InsightsRecord

logger = logging.getLogger(__name__)

router = APIRouter()


# ============================================================================
# Response Models
# ============================================================================


class TriggerResponse(BaseModel):
    """Result of a manual trigger."""

    user_id: str = Field(description="User the job was requested for")
    queued: bool = Field(description="Whether a new job was queued")
    message: str = Field(description="Human-readable outcome")


class QueueCounts(BaseModel):
    """Job counts of one queue."""

    name: str = Field(description="Queue name")
    waiting: int = 0
    delayed: int = 0
    active: int = 0
    completed: int = 0
    failed: int = 0
    total: int = 0


# ============================================================================
# Endpoints
# ============================================================================


@router.get(
    "/queues",
    response_model=dict[str, QueueCounts],
    summary="Get queue status",
)
async def get_queue_status(pipeline: PipelineDep) -> dict[str, Any]:
    """Job counts of the recompute and advice queues.

    Raises:
        HTTPException: 503 if a queue backend cannot be inspected.
    """
    try:
        return await pipeline.queue_status()
    except QueueError as e:
        logger.error("Failed to read queue status: %s", e)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Queue status unavailable",
        ) from e


@router.get(
    "/{user_id}",
    response_model=InsightsRecord,
    summary="Get user insights",
)
async def get_insights(user_id: str, pipeline: PipelineDep) -> InsightsRecord:
    """Latest insights of a user.

    Raises:
        HTTPException: 404 if no insights were computed for the user yet.
    """
    record = await pipeline.get_insights(user_id)
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No insights for user {user_id}",
        )
    return record


@router.post(
    "/{user_id}/recompute",
    response_model=TriggerResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Force insights recompute",
)
async def force_recompute(user_id: str, pipeline: PipelineDep) -> TriggerResponse:
    """Replace any pending recompute with an immediate one."""
    queued = await pipeline.force_recompute(user_id)
    return TriggerResponse(
        user_id=user_id,
        queued=queued,
        message="Recompute queued" if queued else "Recompute could not be queued",
    )


@router.post(
    "/{user_id}/advice",
    response_model=TriggerResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Force AI advice",
)
async def force_advice(user_id: str, pipeline: PipelineDep) -> TriggerResponse:
    """Generate advice now, unless advice for the user is in flight."""
    queued = await pipeline.force_advice(user_id)
    return TriggerResponse(
        user_id=user_id,
        queued=queued,
        message="Advice queued" if queued else "Advice already in progress",
    )

# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""FastAPI dependency injection definitions.

The insights pipeline and the activity tracker are created once per
application by the lifespan (or passed to create_app) and kept on
``app.state``.

Example:
    @router.get("/{user_id}")
    async def get_insights(
        user_id: str,
        pipeline: InsightsPipeline = Depends(get_pipeline),
    ):
        ...
"""

import logging
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from learning_insights.domains.activity.tracker import ActivityTracker
from learning_insights.domains.insights.pipeline import InsightsPipeline

logger = logging.getLogger(__name__)


def get_pipeline(request: Request) -> InsightsPipeline:
    """Get the application's insights pipeline.

    Raises:
        HTTPException: 503 if the pipeline is not initialized.
    """
    pipeline = getattr(request.app.state, "pipeline", None)
    if pipeline is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Insights pipeline not initialized",
        )
    return pipeline


def get_tracker(request: Request) -> ActivityTracker:
    """Get the application's activity tracker.

    Raises:
        HTTPException: 503 if the tracker is not initialized.
    """
    tracker = getattr(request.app.state, "tracker", None)
    if tracker is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Activity tracker not initialized",
        )
    return tracker


PipelineDep = Annotated[InsightsPipeline, Depends(get_pipeline)]
TrackerDep = Annotated[ActivityTracker, Depends(get_tracker)]

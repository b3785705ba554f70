# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""API v1 routes package.

Modules:
    activity: Activity tracking endpoints (video, task, flashcards, courses).
    insights: Insight reads and manual recompute/advice triggers.
"""

from fastapi import APIRouter

from learning_insights.api.v1 import activity, insights

# Create the main v1 router, mounted under settings.api.prefix
router = APIRouter()

# Include domain routers
router.include_router(activity.router, prefix="/activity", tags=["Activity"])
router.include_router(insights.router, prefix="/insights", tags=["Insights"])

__all__ = ["router"]

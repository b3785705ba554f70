# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Health check endpoints.

This module provides health and readiness endpoints for the API.
"""

import asyncio
import logging
import time
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from learning_insights import __version__
from learning_insights.core.config import get_settings
from learning_insights.infrastructure.cache import check_redis_connection
from learning_insights.infrastructure.database import check_database_connection
from learning_insights.utils.datetime import utc_now

logger = logging.getLogger(__name__)

router = APIRouter()

# Track server start time for uptime calculation
_server_start_time = time.time()


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str = Field(description="Overall health status")
    version: str = Field(description="API version")
    environment: str = Field(description="Deployment environment")
    uptime_seconds: int = Field(description="Server uptime in seconds")
    checked_at: datetime = Field(description="When health was checked")


class ReadinessResponse(BaseModel):
    """Readiness check response model."""

    ready: bool = Field(description="Whether the service is ready")
    checks: dict[str, Any] = Field(description="Individual check results")


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Liveness check."""
    settings = get_settings()
    return HealthResponse(
        status="healthy",
        version=__version__,
        environment=settings.environment,
        uptime_seconds=int(time.time() - _server_start_time),
        checked_at=utc_now(),
    )


@router.get("/ready", response_model=ReadinessResponse)
async def ready(request: Request) -> ReadinessResponse:
    """Readiness check of the pipeline and the backends it uses."""
    settings = get_settings()
    checks: dict[str, Any] = {
        "pipeline": getattr(request.app.state, "pipeline", None) is not None,
    }

    if settings.worker.storage_backend == "postgres":
        checks["database"] = await check_database_connection()
    if settings.worker.queue_backend == "dramatiq":
        checks["redis"] = await asyncio.to_thread(check_redis_connection)

    return ReadinessResponse(ready=all(checks.values()), checks=checks)

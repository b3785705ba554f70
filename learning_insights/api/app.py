# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""FastAPI Application Factory.

This module provides the application factory for the learning insights API.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI

from learning_insights import __version__
from learning_insights.api.routes import health
from learning_insights.api.v1 import router as v1_router
from learning_insights.core.config import get_settings
from learning_insights.domains.activity.tracker import ActivityTracker
from learning_insights.domains.insights.factory import build_pipeline
from learning_insights.domains.insights.pipeline import InsightsPipeline
from learning_insights.infrastructure.background import (
    setup_dramatiq,
    shutdown_dramatiq,
    start_scheduler,
    stop_scheduler,
)
from learning_insights.infrastructure.cache import close_redis_client, init_redis_client
from learning_insights.infrastructure.database import close_database, init_database
from learning_insights.utils.logging import setup_logging

logger = logging.getLogger(__name__)


def _attach_pipeline(app: FastAPI, pipeline: InsightsPipeline) -> None:
    app.state.pipeline = pipeline
    app.state.tracker = ActivityTracker(pipeline.activity_store, pipeline)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Initializes and cleans up:
    - Database connections (postgres storage)
    - Redis client and Dramatiq broker (dramatiq queues)
    - The insights pipeline and its in-process queue workers
    - APScheduler for the stale insights refresh

    A pipeline passed to create_app is started and stopped, but its
    backends are left to the caller.

    Args:
        app: The FastAPI application instance.

    Yields:
        None during application runtime.
    """
    settings = get_settings()
    setup_logging(settings)
    logger.info(
        "Starting learning insights API (environment=%s, queues=%s, storage=%s)",
        settings.environment,
        settings.worker.queue_backend,
        settings.worker.storage_backend,
    )

    # =========================================================================
    # Startup
    # =========================================================================

    owns_pipeline = getattr(app.state, "pipeline", None) is None
    if owns_pipeline:
        if settings.worker.storage_backend == "postgres":
            await init_database(settings)
            logger.info("Database connections initialized")

        if settings.worker.queue_backend == "dramatiq":
            init_redis_client(settings)
            setup_dramatiq()
            logger.info("Redis client and Dramatiq broker initialized")

        _attach_pipeline(app, build_pipeline(settings))

    pipeline: InsightsPipeline = app.state.pipeline
    await pipeline.start()

    try:
        await start_scheduler(pipeline, settings)
        logger.info("Scheduler started")
    except Exception as e:
        logger.warning("Failed to start scheduler: %s", str(e))

    yield

    # =========================================================================
    # Shutdown
    # =========================================================================

    # Stop scheduler first (it may schedule recomputes)
    try:
        await stop_scheduler()
        logger.info("Scheduler stopped")
    except Exception as e:
        logger.warning("Error stopping scheduler: %s", str(e))

    try:
        await pipeline.close()
        logger.info("Insights pipeline closed")
    except Exception as e:
        logger.warning("Error closing insights pipeline: %s", str(e))

    if owns_pipeline:
        if settings.worker.queue_backend == "dramatiq":
            try:
                shutdown_dramatiq()
                close_redis_client()
                logger.info("Dramatiq broker and Redis client shut down")
            except Exception as e:
                logger.warning("Error shutting down Dramatiq: %s", str(e))

        if settings.worker.storage_backend == "postgres":
            try:
                await close_database()
                logger.info("Database connections closed")
            except Exception as e:
                logger.warning("Error closing database connections: %s", str(e))

        app.state.pipeline = None
        app.state.tracker = None

    logger.info("Shutting down learning insights API")


def create_app(pipeline: Optional[InsightsPipeline] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        pipeline: A ready pipeline to serve. When omitted, the lifespan
            builds one from settings.

    Returns:
        Configured FastAPI application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title="Learning Insights API",
        description="Learner activity tracking and learning insights",
        version=__version__,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
        redirect_slashes=False,
    )

    # =========================================================================
    # State
    # =========================================================================
    app.state.pipeline = None
    app.state.tracker = None
    if pipeline is not None:
        _attach_pipeline(app, pipeline)

    # =========================================================================
    # Routes
    # =========================================================================
    app.include_router(health.router, tags=["Health"])
    app.include_router(v1_router, prefix=settings.api.prefix)

    return app

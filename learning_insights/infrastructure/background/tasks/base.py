# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Base utilities for Dramatiq tasks.

Thread-Local Event Loop Management:
    Dramatiq workers use multiple threads (--threads N) to process tasks
    concurrently. SQLAlchemy async engines and asyncpg connections are
    bound to the event loop that created them and cannot be used from
    another one.

    Every worker thread therefore keeps:
    1. A persistent event loop, reused for all tasks in that thread
    2. Its own InsightsPipeline, with its own database engine

    When a thread's loop has to be recreated, its pipeline is dropped and
    rebuilt on the next task.
"""

import asyncio
import logging
import threading
from typing import TYPE_CHECKING, Any, Coroutine, TypeVar

if TYPE_CHECKING:
    from learning_insights.domains.insights.pipeline import InsightsPipeline

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Thread-local storage for event loops and pipelines
_thread_local = threading.local()


def _clear_thread_pipeline() -> None:
    """Forget the current thread's pipeline and engine."""
    _thread_local.pipeline = None
    _thread_local.engine = None


def _get_thread_event_loop() -> asyncio.AbstractEventLoop:
    """Get or create a persistent event loop for the current thread.

    Returns:
        Event loop for current thread.
    """
    loop = getattr(_thread_local, "event_loop", None)

    if loop is None or loop.is_closed():
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        _thread_local.event_loop = loop

        # Pipelines from a previous loop hold connections bound to it
        _clear_thread_pipeline()

        logger.debug(
            "Created new event loop for thread %s",
            threading.current_thread().name,
        )

    return loop


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run async coroutine in sync Dramatiq worker context.

    Args:
        coro: Coroutine to run.

    Returns:
        Result of coroutine.

    Example:
        @dramatiq.actor
        def my_task(user_id: str):
            async def _process():
                pipeline = get_worker_pipeline()
                await pipeline.run_recompute(user_id)
            return run_async(_process())
    """
    loop = _get_thread_event_loop()
    return loop.run_until_complete(coro)


def get_worker_pipeline() -> "InsightsPipeline":
    """Get the current worker thread's pipeline, building it on first use.

    Must be called from inside run_async, so that the database engine is
    created on the thread's loop. Scheduling from a worker (e.g. advice
    after a recompute) always goes through Dramatiq.

    Returns:
        The thread's InsightsPipeline.
    """
    pipeline = getattr(_thread_local, "pipeline", None)
    if pipeline is not None:
        return pipeline

    from learning_insights.core.config import get_settings
    from learning_insights.domains.insights.factory import build_pipeline
    from learning_insights.infrastructure.database import create_engine, create_sessionmaker

    settings = get_settings()
    sessionmaker = None
    if settings.worker.storage_backend == "postgres":
        engine = create_engine(settings)
        _thread_local.engine = engine
        sessionmaker = create_sessionmaker(engine)

    pipeline = build_pipeline(settings, sessionmaker=sessionmaker, queue_backend="dramatiq")
    _thread_local.pipeline = pipeline

    logger.debug(
        "Built insights pipeline for thread %s",
        threading.current_thread().name,
    )
    return pipeline

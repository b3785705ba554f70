# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Wiring of InsightsPipeline from settings.

Backends are chosen by WorkerSettings:

- storage_backend "memory": in-process stores
- storage_backend "postgres": SQLAlchemy stores on the given sessionmaker,
  or on the module-level one created by init_database()
- queue_backend "memory": asyncio queues consumed in this process
- queue_backend "dramatiq": Dramatiq actors plus the Redis job registry,
  consumed by worker processes, with Redis-backed advice rate limiting
"""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Literal, Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from learning_insights.core.config.settings import Settings
from learning_insights.domains.activity.store import (
    ActivityStore,
    InMemoryActivityStore,
    SqlActivityStore,
)
from learning_insights.domains.advice.client import AdviceClient
from learning_insights.domains.advice.service import AdviceService
from learning_insights.domains.insights.pipeline import InsightsPipeline
from learning_insights.domains.insights.store import (
    InMemoryInsightsStore,
    InsightsStore,
    SqlInsightsStore,
)
from learning_insights.infrastructure.background.broker import Queues
from learning_insights.infrastructure.background.memory_queue import InMemoryJobQueue
from learning_insights.infrastructure.background.queue import KeyedJobQueue, RetryPolicy
from learning_insights.infrastructure.background.utils import (
    InMemoryTimestampStore,
    RedisTimestampStore,
    TaskRateLimiter,
)
from learning_insights.utils.datetime import utc_now

logger = logging.getLogger(__name__)

ADVICE_LIMITER_PREFIX = "advice"


def build_stores(
    settings: Settings,
    sessionmaker: Optional[async_sessionmaker[AsyncSession]] = None,
) -> tuple[ActivityStore, InsightsStore]:
    """Create the activity and insights stores."""
    if settings.worker.storage_backend == "postgres":
        if sessionmaker is None:
            from learning_insights.infrastructure.database import get_sessionmaker

            sessionmaker = get_sessionmaker()
        return SqlActivityStore(sessionmaker), SqlInsightsStore(sessionmaker)
    return InMemoryActivityStore(), InMemoryInsightsStore()


def _memory_queues(settings: Settings) -> tuple[KeyedJobQueue, KeyedJobQueue, TaskRateLimiter]:
    recompute = InMemoryJobQueue(
        Queues.INSIGHTS,
        concurrency=settings.recompute.concurrency,
        retry=RetryPolicy(settings.recompute.max_attempts, settings.recompute.backoff_seconds),
    )
    advice = InMemoryJobQueue(
        Queues.ADVICE,
        concurrency=settings.advice.concurrency,
        retry=RetryPolicy(settings.advice.max_attempts, settings.advice.backoff_seconds),
    )
    limiter = TaskRateLimiter(
        key_prefix=ADVICE_LIMITER_PREFIX,
        window=timedelta(seconds=settings.advice.min_interval_seconds),
        store=InMemoryTimestampStore(),
    )
    return recompute, advice, limiter


def _dramatiq_queues(settings: Settings) -> tuple[KeyedJobQueue, KeyedJobQueue, TaskRateLimiter]:
    # Importing the actors sets up the broker
    from learning_insights.infrastructure.background.dramatiq_queue import DramatiqJobQueue
    from learning_insights.infrastructure.background.registry import get_job_registry
    from learning_insights.infrastructure.background.tasks.insights import (
        generate_advice,
        generate_advice_now,
        recompute_insights,
        recompute_insights_now,
    )
    from learning_insights.infrastructure.cache import get_redis_client

    client = get_redis_client()
    recompute = DramatiqJobQueue(
        Queues.INSIGHTS,
        actor=recompute_insights,
        priority_actor=recompute_insights_now,
        registry=get_job_registry(Queues.INSIGHTS, client),
        max_attempts=settings.recompute.max_attempts,
    )
    advice = DramatiqJobQueue(
        Queues.ADVICE,
        actor=generate_advice,
        priority_actor=generate_advice_now,
        registry=get_job_registry(Queues.ADVICE, client),
        max_attempts=settings.advice.max_attempts,
    )
    limiter = TaskRateLimiter(
        key_prefix=ADVICE_LIMITER_PREFIX,
        window=timedelta(seconds=settings.advice.min_interval_seconds),
        store=RedisTimestampStore(client),
    )
    return recompute, advice, limiter


def build_pipeline(
    settings: Settings,
    *,
    sessionmaker: Optional[async_sessionmaker[AsyncSession]] = None,
    queue_backend: Optional[Literal["memory", "dramatiq"]] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    clock: Callable[[], datetime] = utc_now,
) -> InsightsPipeline:
    """Create an InsightsPipeline from settings.

    Args:
        settings: Application settings.
        sessionmaker: Sessionmaker for the postgres stores.
        queue_backend: Overrides settings.worker.queue_backend.
        transport: HTTP transport of the advice client (tests).
        clock: Source of the current time.

    Returns:
        A pipeline whose queues are bound but not started.
    """
    backend = queue_backend or settings.worker.queue_backend
    activity_store, insights_store = build_stores(settings, sessionmaker)

    if backend == "dramatiq":
        recompute_queue, advice_queue, limiter = _dramatiq_queues(settings)
    else:
        recompute_queue, advice_queue, limiter = _memory_queues(settings)

    advice_service = AdviceService(
        AdviceClient(settings.ai_service, transport=transport),
        activity_store,
        insights_store,
        clock=clock,
    )

    logger.info(
        "Built insights pipeline (storage=%s, queues=%s)",
        settings.worker.storage_backend,
        backend,
    )
    return InsightsPipeline(
        activity_store=activity_store,
        insights_store=insights_store,
        advice_service=advice_service,
        recompute_queue=recompute_queue,
        advice_queue=advice_queue,
        advice_limiter=limiter,
        settings=settings,
        clock=clock,
    )

# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Insight recompute and AI advice background tasks.

Tasks:
    - recompute_insights: Debounced recompute of one user's insights
    - recompute_insights_now: Forced recompute on the high priority queue
    - generate_advice: Rate-limited AI advice for one user
    - generate_advice_now: Forced AI advice on the high priority queue
    - refresh_stale_insights: Schedules recomputes for outdated insights

Recompute and advice messages are sent by DramatiqJobQueue, which tracks
them in the job registry; JobRegistryMiddleware skips superseded ones.
Failures propagate so that the Retries middleware backs off and retries
them up to the configured number of attempts.
"""

import logging

import dramatiq

from learning_insights.core.config import get_settings
from learning_insights.infrastructure.background.broker import Priority, Queues, setup_dramatiq
from learning_insights.infrastructure.background.tasks.base import get_worker_pipeline, run_async

# Setup broker before defining actors
setup_dramatiq()

logger = logging.getLogger(__name__)

_settings = get_settings()

RECOMPUTE_OPTIONS = {
    "max_retries": _settings.recompute.max_attempts - 1,
    "min_backoff": int(_settings.recompute.backoff_seconds * 1000),
    "time_limit": 60000,  # 1 minute
}

ADVICE_OPTIONS = {
    "max_retries": _settings.advice.max_attempts - 1,
    "min_backoff": int(_settings.advice.backoff_seconds * 1000),
    "time_limit": int((_settings.ai_service.timeout + 30) * 1000),
}


def _recompute(user_id: str) -> None:
    async def _run() -> None:
        await get_worker_pipeline().run_recompute(user_id)

    run_async(_run())


def _advice(user_id: str) -> None:
    async def _run() -> None:
        await get_worker_pipeline().run_advice(user_id)

    run_async(_run())


@dramatiq.actor(queue_name=Queues.INSIGHTS, priority=Priority.NORMAL, **RECOMPUTE_OPTIONS)
def recompute_insights(user_id: str) -> None:
    """Recompute a user's insights from their activity record.

    Args:
        user_id: User whose insights are recomputed.
    """
    _recompute(user_id)


@dramatiq.actor(queue_name=Queues.HIGH_PRIORITY, priority=Priority.HIGH, **RECOMPUTE_OPTIONS)
def recompute_insights_now(user_id: str) -> None:
    """Forced recompute, consumed from the high priority queue."""
    _recompute(user_id)


@dramatiq.actor(queue_name=Queues.ADVICE, priority=Priority.LOW, **ADVICE_OPTIONS)
def generate_advice(user_id: str, kind: str = "auto") -> None:
    """Generate AI advice for a user and merge it into their insights.

    Args:
        user_id: User to advise.
        kind: "auto" or "forced", part of the job key.
    """
    _advice(user_id)


@dramatiq.actor(queue_name=Queues.HIGH_PRIORITY, priority=Priority.HIGH, **ADVICE_OPTIONS)
def generate_advice_now(user_id: str, kind: str = "forced") -> None:
    """Forced advice, consumed from the high priority queue."""
    _advice(user_id)


@dramatiq.actor(
    queue_name=Queues.MAINTENANCE,
    max_retries=0,
    time_limit=300000,  # 5 minutes
    priority=Priority.LOW,
)
def refresh_stale_insights() -> int:
    """Schedule recomputes for insights not updated within the stale window.

    Returns:
        Number of recomputes scheduled.
    """

    async def _run() -> int:
        return await get_worker_pipeline().refresh_stale()

    scheduled = run_async(_run())
    logger.info("Stale insight refresh scheduled %d recomputes", scheduled)
    return scheduled


def get_insights_actors() -> list:
    """Get all insight actors."""
    return [
        recompute_insights,
        recompute_insights_now,
        generate_advice,
        generate_advice_now,
        refresh_stale_insights,
    ]

# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Background task actors.

Usage:
    from learning_insights.infrastructure.background.tasks import get_all_actors

    actors = get_all_actors()

Running Workers:
    dramatiq learning_insights.infrastructure.background.worker --processes 2 --threads 4
"""

from learning_insights.infrastructure.background.tasks.base import get_worker_pipeline, run_async
from learning_insights.infrastructure.background.tasks.insights import (
    generate_advice,
    generate_advice_now,
    get_insights_actors,
    recompute_insights,
    recompute_insights_now,
    refresh_stale_insights,
)

__all__ = [
    # Insights
    "recompute_insights",
    "recompute_insights_now",
    "generate_advice",
    "generate_advice_now",
    "refresh_stale_insights",
    # Utilities
    "run_async",
    "get_worker_pipeline",
    "get_all_actors",
]


def get_all_actors() -> list:
    """Get list of all defined actors."""
    return get_insights_actors()


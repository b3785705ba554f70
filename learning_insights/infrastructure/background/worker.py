# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Dramatiq worker entry point.

Configures logging and registers every actor with the broker.

Running Workers:
    # Recompute pool (RECOMPUTE_CONCURRENCY threads)
    dramatiq learning_insights.infrastructure.background.worker \\
        --queues insights high_priority maintenance --threads 5

    # Advice pool (ADVICE_CONCURRENCY threads)
    dramatiq learning_insights.infrastructure.background.worker \\
        --queues advice --threads 2
"""

from learning_insights.core.config import get_settings
from learning_insights.utils.logging import setup_logging

setup_logging(get_settings())

from learning_insights.infrastructure.background.tasks import get_all_actors  # noqa: E402

__all__ = ["get_all_actors"]

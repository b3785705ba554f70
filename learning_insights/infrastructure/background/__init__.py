# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Background job infrastructure for the insights pipeline.

Provides keyed, deduplicated job queues with two backends:
- InMemoryJobQueue: asyncio workers in the current process
- DramatiqJobQueue: Dramatiq actors on a Redis broker, tracked in a Redis
  job registry so that at most one job per key is waiting

Quick Start:
    # Setup broker (call once at startup)
    from learning_insights.infrastructure.background import setup_dramatiq
    setup_dramatiq()

Running Workers:
    dramatiq learning_insights.infrastructure.background.worker --processes 2 --threads 4

Scheduler:
    from learning_insights.infrastructure.background import start_scheduler, stop_scheduler

    await start_scheduler(pipeline, settings)
    await stop_scheduler()
"""

# Re-export from broker module
from learning_insights.infrastructure.background.broker import (
    BrokerManager,
    Priority,
    Queues,
    get_broker,
    get_broker_manager,
    setup_dramatiq,
    shutdown_dramatiq,
)
from learning_insights.infrastructure.background.memory_queue import InMemoryJobQueue
from learning_insights.infrastructure.background.queue import (
    Job,
    JobState,
    KeyedJobQueue,
    QueueStats,
    RetryPolicy,
)

# Re-export from scheduler module
from learning_insights.infrastructure.background.scheduler import (
    PeriodicScheduler,
    ScheduledTask,
    get_scheduler,
    start_scheduler,
    stop_scheduler,
)

# Task actors are imported from learning_insights.infrastructure.background.tasks,
# which sets up the broker on import

__all__ = [
    # Broker
    "BrokerManager",
    "Priority",
    "Queues",
    "get_broker",
    "get_broker_manager",
    "setup_dramatiq",
    "shutdown_dramatiq",
    # Queues
    "InMemoryJobQueue",
    "Job",
    "JobState",
    "KeyedJobQueue",
    "QueueStats",
    "RetryPolicy",
    # Scheduler
    "PeriodicScheduler",
    "ScheduledTask",
    "get_scheduler",
    "start_scheduler",
    "stop_scheduler",
]

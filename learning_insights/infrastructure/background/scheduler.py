# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Scheduler for periodic maintenance jobs.

Uses APScheduler to run coroutine functions on an interval inside the API
process. With the Dramatiq backend the job only sends an actor message and
the work itself runs on a worker.

Example:
    from learning_insights.infrastructure.background.scheduler import get_scheduler

    scheduler = get_scheduler()
    await scheduler.start()

    # Add interval job (runs every hour)
    scheduler.add_interval_task(
        name="Stale Insights Refresh",
        func=pipeline.refresh_stale,
        minutes=60,
    )
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any
from uuid import uuid4

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from learning_insights.utils.datetime import utc_now

if TYPE_CHECKING:
    from learning_insights.core.config.settings import Settings
    from learning_insights.domains.insights.pipeline import InsightsPipeline

logger = logging.getLogger(__name__)

STALE_REFRESH_TASK = "Stale Insights Refresh"


@dataclass
class ScheduledTask:
    """Configuration for a periodic job.

    Attributes:
        id: Unique task identifier.
        name: Human-readable task name.
        func: Coroutine function called on every run.
        enabled: Whether the task is enabled.
        last_run: Last run timestamp.
        last_result: Return value of the last successful run.
        run_count: Total number of runs.
        error_count: Number of failed runs.
    """

    name: str
    func: Callable[[], Awaitable[Any]]
    id: str = field(default_factory=lambda: str(uuid4()))
    enabled: bool = True
    last_run: datetime | None = None
    last_result: Any = None
    run_count: int = 0
    error_count: int = 0


class PeriodicScheduler:
    """Runs ScheduledTasks on APScheduler interval triggers.

    Tasks added before start() are registered with APScheduler when the
    scheduler starts.

    Attributes:
        _scheduler: APScheduler instance.
        _tasks: Dictionary of scheduled tasks.
        _running: Whether scheduler is running.
    """

    def __init__(self) -> None:
        """Initialize the scheduler."""
        self._scheduler: AsyncIOScheduler | None = None
        self._tasks: dict[str, ScheduledTask] = {}
        self._triggers: dict[str, tuple[IntervalTrigger, bool]] = {}
        self._running = False

    @property
    def is_running(self) -> bool:
        """Check if scheduler is running."""
        return self._running

    def add_interval_task(
        self,
        name: str,
        func: Callable[[], Awaitable[Any]],
        seconds: int = 0,
        minutes: int = 0,
        hours: int = 0,
        enabled: bool = True,
        start_immediately: bool = False,
    ) -> ScheduledTask:
        """Add an interval-scheduled task.

        Args:
            name: Task name.
            func: Coroutine function to run.
            seconds: Interval seconds.
            minutes: Interval minutes.
            hours: Interval hours.
            enabled: Whether task is enabled.
            start_immediately: Run immediately on start.

        Returns:
            Created ScheduledTask.

        Raises:
            ValueError: If the interval is empty.
        """
        if seconds + minutes * 60 + hours * 3600 <= 0:
            raise ValueError(f"Interval of task {name!r} must be positive")

        task = ScheduledTask(name=name, func=func, enabled=enabled)
        self._tasks[task.id] = task
        self._triggers[task.id] = (
            IntervalTrigger(seconds=seconds, minutes=minutes, hours=hours),
            start_immediately,
        )

        if self._scheduler and enabled:
            self._register(task.id)

        logger.info(
            "Added interval task: %s (every %dh %dm %ds)",
            name,
            hours,
            minutes,
            seconds,
        )
        return task

    def _register(self, task_id: str) -> None:
        trigger, start_immediately = self._triggers[task_id]
        options: dict[str, Any] = {}
        if start_immediately:
            options["next_run_time"] = utc_now()
        self._scheduler.add_job(
            self.run_task,
            trigger=trigger,
            args=[task_id],
            id=task_id,
            name=self._tasks[task_id].name,
            **options,
        )

    async def run_task(self, task_id: str) -> None:
        """Execute a scheduled task once.

        Failures are counted and logged; the task keeps its schedule.

        Args:
            task_id: ID of the task to execute.
        """
        task = self._tasks.get(task_id)
        if not task or not task.enabled:
            return

        logger.debug("Executing scheduled task: %s", task.name)

        try:
            task.last_result = await task.func()
            task.last_run = utc_now()
            task.run_count += 1
        except Exception as e:
            task.error_count += 1
            logger.error("Scheduled task %s failed: %s", task.name, str(e), exc_info=True)

    def list_tasks(self) -> list[ScheduledTask]:
        """List all scheduled tasks."""
        return list(self._tasks.values())

    async def start(self) -> None:
        """Start the scheduler."""
        if self._running:
            return

        self._scheduler = AsyncIOScheduler()
        for task_id, task in self._tasks.items():
            if task.enabled:
                self._register(task_id)
        self._scheduler.start()
        self._running = True

        logger.info("Periodic scheduler started")

    async def stop(self) -> None:
        """Stop the scheduler."""
        if not self._running:
            return

        if self._scheduler:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None

        self._running = False
        logger.info("Periodic scheduler stopped")


# Singleton instance
_scheduler: PeriodicScheduler | None = None


def get_scheduler() -> PeriodicScheduler:
    """Get the singleton scheduler instance.

    Returns:
        PeriodicScheduler instance.
    """
    global _scheduler
    if _scheduler is None:
        _scheduler = PeriodicScheduler()
    return _scheduler


def stale_refresh_job(
    pipeline: "InsightsPipeline", settings: "Settings"
) -> Callable[[], Awaitable[Any]]:
    """The coroutine function that refreshes stale insights.

    With the Dramatiq backend the refresh actor is sent to the maintenance
    queue; otherwise the pipeline refreshes in this process.
    """
    if settings.worker.queue_backend != "dramatiq":
        return pipeline.refresh_stale

    async def send_refresh() -> None:
        from learning_insights.infrastructure.background.tasks import refresh_stale_insights

        refresh_stale_insights.send()

    return send_refresh


async def start_scheduler(pipeline: "InsightsPipeline", settings: "Settings") -> PeriodicScheduler:
    """Start the scheduler and register the stale insights refresh.

    Returns:
        Started scheduler instance.
    """
    scheduler = get_scheduler()
    if not any(task.name == STALE_REFRESH_TASK for task in scheduler.list_tasks()):
        scheduler.add_interval_task(
            name=STALE_REFRESH_TASK,
            func=stale_refresh_job(pipeline, settings),
            minutes=settings.recompute.stale_sweep_minutes,
        )
    await scheduler.start()
    return scheduler


async def stop_scheduler() -> None:
    """Stop the scheduler and forget its tasks."""
    global _scheduler
    if _scheduler is not None:
        await _scheduler.stop()
        _scheduler = None

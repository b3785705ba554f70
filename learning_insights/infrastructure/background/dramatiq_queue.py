# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Keyed job queue on Dramatiq and Redis.

Messages are durable in the Redis broker; the RedisJobRegistry adds the
one-pending-job-per-key rule on top. Cancelling a job only drops it from
the registry, and the orphaned message is skipped by JobRegistryMiddleware
when a worker receives it.

Jobs run in ``dramatiq`` worker processes, not in the process that adds
them, so ``bind`` and ``start`` are no-ops here.

Example:
    queue = DramatiqJobQueue(
        Queues.INSIGHTS,
        actor=recompute_insights,
        priority_actor=recompute_insights_now,
        registry=get_job_registry(Queues.INSIGHTS),
    )
    await queue.add({"user_id": "u1"}, key="u1", delay=5.0)
"""

import logging
from datetime import timedelta
from typing import Any, Optional

import dramatiq
from dramatiq.errors import DramatiqError
from redis.exceptions import RedisError as BaseRedisError

from learning_insights.core.exceptions import QueueError
from learning_insights.infrastructure.background.broker import Priority
from learning_insights.infrastructure.background.middleware import JOB_KEY, JOB_QUEUE
from learning_insights.infrastructure.background.queue import (
    Job,
    JobState,
    KeyedJobQueue,
    QueueStats,
)
from learning_insights.infrastructure.background.registry import RedisJobRegistry
from learning_insights.infrastructure.cache.redis_client import RedisError
from learning_insights.utils.datetime import utc_now

logger = logging.getLogger(__name__)


class DramatiqJobQueue(KeyedJobQueue):
    """Keyed job queue sending Dramatiq messages.

    Attributes:
        name: Logical queue name, also the registry name.
    """

    def __init__(
        self,
        name: str,
        *,
        actor: dramatiq.Actor,
        priority_actor: Optional[dramatiq.Actor] = None,
        registry: RedisJobRegistry,
        max_attempts: int = 1,
    ) -> None:
        """Initialize the queue.

        Args:
            name: Logical queue name.
            actor: Actor executing normal jobs.
            priority_actor: Actor on the high priority queue, used for jobs
                with Priority.HIGH or better.
            registry: Job registry for this queue.
            max_attempts: Attempts allowed per job, reported in job info.
        """
        super().__init__(name)
        self._actor = actor
        self._priority_actor = priority_actor or actor
        self._registry = registry
        self._max_attempts = max_attempts

    async def add(
        self,
        payload: dict[str, Any],
        *,
        key: Optional[str] = None,
        delay: float = 0.0,
        priority: int = Priority.NORMAL,
    ) -> Optional[Job]:
        actor = self._priority_actor if priority <= Priority.HIGH else self._actor
        message = actor.message_with_options(
            kwargs=dict(payload),
            **{JOB_KEY: key, JOB_QUEUE: self.name},
        )

        job = Job(
            id=message.message_id,
            queue=self.name,
            payload=dict(payload),
            key=key,
            priority=priority,
            state=JobState.DELAYED if delay > 0 else JobState.WAITING,
            max_attempts=self._max_attempts,
            run_at=utc_now() + timedelta(seconds=delay) if delay > 0 else None,
        )

        if key is not None:
            try:
                claimed = self._registry.claim(job)
            except RedisError as e:
                raise QueueError(f"Failed to register job on {self.name}", e) from e
            if not claimed:
                logger.debug("Job already pending for key %s on %s", key, self.name)
                return None

        try:
            actor.broker.enqueue(message, delay=int(delay * 1000) if delay > 0 else None)
        except (DramatiqError, BaseRedisError) as e:
            if key is not None:
                self._registry.release(key, job.id)
            raise QueueError(f"Failed to enqueue job on {self.name}", e) from e

        logger.debug("Queued job %s on %s (key=%s, delay=%.1fs)", job.id, self.name, key, delay)
        return job

    async def remove(self, key: str) -> bool:
        try:
            removed = self._registry.remove_pending(key)
        except RedisError as e:
            raise QueueError(f"Failed to remove job for {key} on {self.name}", e) from e
        if removed:
            logger.debug("Removed pending job for key %s on %s", key, self.name)
        return removed

    async def get_job(self, key: str) -> Optional[Job]:
        try:
            return self._registry.get(key)
        except RedisError as e:
            raise QueueError(f"Failed to read job for {key} on {self.name}", e) from e

    async def stats(self) -> QueueStats:
        try:
            return self._registry.stats()
        except RedisError as e:
            raise QueueError(f"Failed to read stats of {self.name}", e) from e

    async def failed_jobs(self, limit: int = 50) -> list[Job]:
        try:
            return self._registry.failed_jobs(limit)
        except RedisError as e:
            raise QueueError(f"Failed to read failed jobs of {self.name}", e) from e

    async def clear_pending(self) -> int:
        try:
            cleared = self._registry.clear_pending()
        except RedisError as e:
            raise QueueError(f"Failed to clear {self.name}", e) from e
        if cleared:
            logger.info("Cleared %d pending jobs from %s", cleared, self.name)
        return cleared

# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""In-process keyed job queue on asyncio.

Delayed jobs wait on loop timers, runnable jobs sit in a priority queue and
a fixed number of worker tasks drain it. Failed attempts are retried with
exponential backoff; jobs that exhaust their attempts are kept in a bounded
failed list for inspection.

Used by tests and single-process deployments. State is not shared with
other processes.

Example:
    queue = InMemoryJobQueue("insights", concurrency=5, retry=RetryPolicy(3, 2.0))
    queue.bind(handle_recompute)
    await queue.start()
    await queue.add({"user_id": "u1"}, key="u1", delay=5.0)
"""

import asyncio
import itertools
import logging
from collections import deque
from datetime import timedelta
from typing import Any, Optional
from uuid import uuid4

from learning_insights.core.exceptions import QueueError
from learning_insights.infrastructure.background.broker import Priority
from learning_insights.infrastructure.background.queue import (
    Job,
    JobState,
    KeyedJobQueue,
    QueueStats,
    RetryPolicy,
)
from learning_insights.utils.datetime import utc_now
from learning_insights.utils.logging import bind_context, clear_context

logger = logging.getLogger(__name__)


class InMemoryJobQueue(KeyedJobQueue):
    """Keyed job queue running inside the current event loop.

    Attributes:
        name: Queue name used in logs and stats.
        concurrency: Number of worker tasks.
    """

    def __init__(
        self,
        name: str,
        *,
        concurrency: int = 1,
        retry: RetryPolicy = RetryPolicy(),
        keep_failed: int = 1000,
    ) -> None:
        super().__init__(name)
        self.concurrency = concurrency
        self._retry = retry
        self._jobs: dict[str, Job] = {}
        self._keys: dict[str, str] = {}
        self._timers: dict[str, asyncio.TimerHandle] = {}
        self._ready: asyncio.PriorityQueue[tuple[int, int, str]] = asyncio.PriorityQueue()
        self._sequence = itertools.count()
        self._workers: list[asyncio.Task] = []
        self._failed: deque[Job] = deque(maxlen=keep_failed)
        self._completed = 0
        self._idle = asyncio.Event()
        self._idle.set()

    # -------------------------------------------------------------------------
    # Producer side
    # -------------------------------------------------------------------------

    async def add(
        self,
        payload: dict[str, Any],
        *,
        key: Optional[str] = None,
        delay: float = 0.0,
        priority: int = Priority.NORMAL,
    ) -> Optional[Job]:
        if key is not None:
            existing = self._registered(key)
            if existing is not None and existing.state.is_pending:
                logger.debug("Job %s already pending for key %s on %s", existing.id, key, self.name)
                return None

        job = Job(
            id=uuid4().hex,
            queue=self.name,
            payload=dict(payload),
            key=key,
            priority=priority,
            max_attempts=self._retry.max_attempts,
        )
        self._jobs[job.id] = job
        if key is not None:
            self._keys[key] = job.id
        self._idle.clear()

        if delay > 0:
            self._schedule(job, delay)
        else:
            self._enqueue(job)

        logger.debug("Queued job %s on %s (key=%s, delay=%.1fs)", job.id, self.name, key, delay)
        return job

    async def remove(self, key: str) -> bool:
        job = self._registered(key)
        if job is None or not job.state.is_pending:
            return False
        self._discard(job)
        logger.debug("Removed pending job %s for key %s on %s", job.id, key, self.name)
        return True

    async def get_job(self, key: str) -> Optional[Job]:
        return self._registered(key)

    async def stats(self) -> QueueStats:
        stats = QueueStats(name=self.name, completed=self._completed, failed=len(self._failed))
        for job in self._jobs.values():
            if job.state == JobState.WAITING:
                stats.waiting += 1
            elif job.state == JobState.DELAYED:
                stats.delayed += 1
            elif job.state == JobState.ACTIVE:
                stats.active += 1
        return stats

    async def failed_jobs(self, limit: int = 50) -> list[Job]:
        return list(self._failed)[-limit:][::-1]

    async def clear_pending(self) -> int:
        pending = [job for job in self._jobs.values() if job.state.is_pending]
        for job in pending:
            self._discard(job)
        if pending:
            logger.info("Cleared %d pending jobs from %s", len(pending), self.name)
        return len(pending)

    async def join(self, timeout: Optional[float] = None) -> None:
        """Wait until no job is pending or running.

        Raises:
            QueueError: If the queue is not idle within the timeout.
        """
        try:
            await asyncio.wait_for(self._idle.wait(), timeout)
        except asyncio.TimeoutError as e:
            raise QueueError(f"Queue {self.name} did not drain within {timeout}s", e) from e

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        if self._workers:
            return
        if self._handler is None:
            raise QueueError(f"Queue {self.name} has no handler bound")
        self._workers = [
            asyncio.create_task(self._work(), name=f"{self.name}-worker-{i}")
            for i in range(self.concurrency)
        ]
        logger.info("Started %d workers for %s", self.concurrency, self.name)

    async def close(self) -> None:
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()

        for worker in self._workers:
            worker.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        logger.info("Closed queue %s", self.name)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _registered(self, key: str) -> Optional[Job]:
        job_id = self._keys.get(key)
        return self._jobs.get(job_id) if job_id else None

    def _owns_key(self, job: Job) -> bool:
        return job.key is None or self._keys.get(job.key) == job.id

    def _schedule(self, job: Job, delay: float) -> None:
        job.state = JobState.DELAYED
        job.run_at = utc_now() + timedelta(seconds=delay)
        loop = asyncio.get_running_loop()
        self._timers[job.id] = loop.call_later(delay, self._promote, job.id)

    def _promote(self, job_id: str) -> None:
        self._timers.pop(job_id, None)
        job = self._jobs.get(job_id)
        if job is not None and job.state == JobState.DELAYED:
            self._enqueue(job)

    def _enqueue(self, job: Job) -> None:
        job.state = JobState.WAITING
        job.run_at = None
        self._ready.put_nowait((job.priority, next(self._sequence), job.id))

    def _discard(self, job: Job) -> None:
        timer = self._timers.pop(job.id, None)
        if timer is not None:
            timer.cancel()
        self._release(job)

    def _release(self, job: Job) -> None:
        self._jobs.pop(job.id, None)
        # A newer job may already own the key
        if job.key is not None and self._keys.get(job.key) == job.id:
            del self._keys[job.key]
        if not self._jobs:
            self._idle.set()

    async def _work(self) -> None:
        while True:
            _, _, job_id = await self._ready.get()
            try:
                job = self._jobs.get(job_id)
                if job is None or job.state != JobState.WAITING:
                    continue
                await self._run(job)
            finally:
                self._ready.task_done()

    async def _run(self, job: Job) -> None:
        job.state = JobState.ACTIVE
        job.attempts += 1
        bind_context(queue=self.name, job_id=job.id, **job.payload)
        try:
            await self._handler(job.payload)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            job.error = str(e)
            if not self._owns_key(job):
                logger.info(
                    "Job %s on %s failed and was superseded by a newer job for key %s: %s",
                    job.id,
                    self.name,
                    job.key,
                    e,
                )
                job.finished_at = utc_now()
                self._release(job)
            elif job.attempts < job.max_attempts:
                delay = self._retry.delay_for(job.attempts)
                logger.warning(
                    "Job %s on %s failed (attempt %d/%d), retrying in %.1fs: %s",
                    job.id,
                    self.name,
                    job.attempts,
                    job.max_attempts,
                    delay,
                    e,
                )
                self._schedule(job, delay)
            else:
                logger.error(
                    "Job %s on %s failed after %d attempts: %s",
                    job.id,
                    self.name,
                    job.attempts,
                    e,
                )
                job.state = JobState.FAILED
                job.finished_at = utc_now()
                self._failed.append(job)
                self._release(job)
        else:
            job.state = JobState.COMPLETED
            job.finished_at = utc_now()
            self._completed += 1
            self._release(job)
        finally:
            clear_context()

# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Keyed job queue abstraction.

A KeyedJobQueue holds at most one pending (waiting or delayed) job per key.
Adding a job under a key that already has a pending job is a no-op, which
is what turns a burst of triggers into a single unit of work. A job that is
already running does not block a new one from being queued behind it.

Implementations:
- InMemoryJobQueue: asyncio delays and worker tasks in the current loop
- DramatiqJobQueue: Dramatiq messages plus a Redis job registry

Example:
    job = await queue.add({"user_id": user_id}, key=user_id, delay=5.0)
    if job is None:
        logger.debug("Job already pending for %s", user_id)
"""

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from learning_insights.infrastructure.background.broker import Priority
from learning_insights.utils.datetime import utc_now

JobHandler = Callable[[dict[str, Any]], Awaitable[Any]]


class JobState(str, Enum):
    """Lifecycle states of a job."""

    WAITING = "waiting"
    DELAYED = "delayed"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_pending(self) -> bool:
        return self in (JobState.WAITING, JobState.DELAYED)


@dataclass
class Job:
    """A unit of work in a keyed queue.

    Attributes:
        id: Unique job identifier.
        queue: Name of the owning queue.
        payload: Keyword arguments for the handler.
        key: Dedup key, None for unkeyed jobs.
        priority: Lower runs first.
        state: Current lifecycle state.
        attempts: Attempts started so far.
        max_attempts: Attempts allowed before the job fails.
        run_at: When a delayed job becomes runnable.
        error: Last error message.
    """

    id: str
    queue: str
    payload: dict[str, Any]
    key: Optional[str] = None
    priority: int = Priority.NORMAL
    state: JobState = JobState.WAITING
    attempts: int = 0
    max_attempts: int = 1
    run_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utc_now)
    finished_at: Optional[datetime] = None
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "queue": self.queue,
            "payload": self.payload,
            "key": self.key,
            "priority": self.priority,
            "state": self.state.value,
            "attempts": self.attempts,
            "max_attempts": self.max_attempts,
            "run_at": self.run_at.isoformat() if self.run_at else None,
            "created_at": self.created_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Job":
        """Rebuild a job from its to_dict form."""
        return cls(
            id=data["id"],
            queue=data["queue"],
            payload=data.get("payload") or {},
            key=data.get("key"),
            priority=data.get("priority", Priority.NORMAL),
            state=JobState(data.get("state", JobState.WAITING.value)),
            attempts=data.get("attempts", 0),
            max_attempts=data.get("max_attempts", 1),
            run_at=datetime.fromisoformat(data["run_at"]) if data.get("run_at") else None,
            created_at=datetime.fromisoformat(data["created_at"])
            if data.get("created_at")
            else utc_now(),
            finished_at=datetime.fromisoformat(data["finished_at"])
            if data.get("finished_at")
            else None,
            error=data.get("error"),
        )


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff.

    Attributes:
        max_attempts: Total attempts, the first one included.
        backoff_seconds: Delay before the second attempt; doubles afterwards.
    """

    max_attempts: int = 3
    backoff_seconds: float = 2.0

    def delay_for(self, attempt: int) -> float:
        """Delay before retrying after the given (1-based) failed attempt."""
        return self.backoff_seconds * 2 ** (attempt - 1)


@dataclass
class QueueStats:
    """Job counts of one queue."""

    name: str
    waiting: int = 0
    delayed: int = 0
    active: int = 0
    completed: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        """Jobs not yet finished."""
        return self.waiting + self.delayed + self.active

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "waiting": self.waiting,
            "delayed": self.delayed,
            "active": self.active,
            "completed": self.completed,
            "failed": self.failed,
            "total": self.total,
        }


class KeyedJobQueue(ABC):
    """Delayed job queue with replace-if-pending semantics per key."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._handler: Optional[JobHandler] = None

    def bind(self, handler: JobHandler) -> None:
        """Set the coroutine executing job payloads in this process."""
        self._handler = handler

    @abstractmethod
    async def add(
        self,
        payload: dict[str, Any],
        *,
        key: Optional[str] = None,
        delay: float = 0.0,
        priority: int = Priority.NORMAL,
    ) -> Optional[Job]:
        """Enqueue a job.

        Args:
            payload: Keyword arguments for the handler.
            key: Dedup key.
            delay: Seconds before the job becomes runnable.
            priority: Lower runs first.

        Returns:
            The new job, or None if a job with the key is already pending.

        Raises:
            QueueError: If the job could not be enqueued.
        """

    @abstractmethod
    async def remove(self, key: str) -> bool:
        """Cancel the pending job for a key. Running jobs are not touched.

        Returns:
            True if a pending job was cancelled.
        """

    @abstractmethod
    async def get_job(self, key: str) -> Optional[Job]:
        """The unfinished (pending or active) job registered for a key."""

    async def has_pending(self, key: str) -> bool:
        """Whether an unfinished job exists for the key."""
        return await self.get_job(key) is not None

    @abstractmethod
    async def stats(self) -> QueueStats:
        """Counts per job state."""

    @abstractmethod
    async def failed_jobs(self, limit: int = 50) -> list[Job]:
        """Most recent jobs that exhausted their attempts."""

    @abstractmethod
    async def clear_pending(self) -> int:
        """Cancel every pending job. Returns how many were cancelled."""

    async def start(self) -> None:
        """Start consuming jobs in this process, if the backend does so."""

    async def close(self) -> None:
        """Stop consuming and release resources."""

# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the in-process keyed job queue."""

import asyncio
from typing import Any

import pytest

from learning_insights.core.exceptions import QueueError
from learning_insights.infrastructure.background.broker import Priority
from learning_insights.infrastructure.background.memory_queue import InMemoryJobQueue
from learning_insights.infrastructure.background.queue import Job, JobState, QueueStats, RetryPolicy

NO_BACKOFF = RetryPolicy(max_attempts=3, backoff_seconds=0.0)


class Recorder:
    """Job handler recording payloads, optionally failing the first calls."""

    def __init__(self, failures: int = 0) -> None:
        self.payloads: list[dict[str, Any]] = []
        self.failures = failures

    async def __call__(self, payload: dict[str, Any]) -> None:
        self.payloads.append(payload)
        if len(self.payloads) <= self.failures:
            raise RuntimeError(f"boom {len(self.payloads)}")


@pytest.fixture
async def queue():
    queue = InMemoryJobQueue("insights", retry=NO_BACKOFF)
    yield queue
    await queue.close()


class TestJobModel:
    """Tests for job value types."""

    def test_pending_states(self) -> None:
        assert JobState.WAITING.is_pending
        assert JobState.DELAYED.is_pending
        assert not JobState.ACTIVE.is_pending
        assert not JobState.FAILED.is_pending

    def test_job_dict_round_trip(self) -> None:
        job = Job(id="j1", queue="insights", payload={"user_id": "u1"}, key="u1", attempts=2)

        assert Job.from_dict(job.to_dict()) == job

    def test_backoff_doubles(self) -> None:
        policy = RetryPolicy(max_attempts=3, backoff_seconds=2.0)

        assert [policy.delay_for(a) for a in (1, 2, 3)] == [2.0, 4.0, 8.0]

    def test_stats_total(self) -> None:
        stats = QueueStats(name="insights", waiting=1, delayed=2, active=3, completed=9, failed=4)

        assert stats.total == 6
        assert stats.to_dict()["total"] == 6
        assert stats.to_dict()["name"] == "insights"


class TestKeyedDedup:
    """Tests for one pending job per key."""

    async def test_second_add_is_noop_while_pending(self, queue: InMemoryJobQueue) -> None:
        first = await queue.add({"user_id": "u1"}, key="u1", delay=60)
        second = await queue.add({"user_id": "u1"}, key="u1", delay=60)

        assert first is not None
        assert first.state == JobState.DELAYED
        assert second is None
        assert await queue.has_pending("u1")
        assert (await queue.stats()).delayed == 1

    async def test_other_keys_are_independent(self, queue: InMemoryJobQueue) -> None:
        await queue.add({"user_id": "u1"}, key="u1", delay=60)

        assert await queue.add({"user_id": "u2"}, key="u2", delay=60) is not None
        assert (await queue.stats()).delayed == 2

    async def test_remove_pending(self, queue: InMemoryJobQueue) -> None:
        await queue.add({"user_id": "u1"}, key="u1", delay=60)

        assert await queue.remove("u1") is True
        assert await queue.remove("u1") is False
        assert await queue.get_job("u1") is None
        assert await queue.add({"user_id": "u1"}, key="u1") is not None

    async def test_burst_runs_once(self, queue: InMemoryJobQueue) -> None:
        handler = Recorder()
        queue.bind(handler)
        await queue.start()

        for _ in range(5):
            await queue.add({"user_id": "u1"}, key="u1", delay=0.05)
        await queue.join(timeout=2)

        assert handler.payloads == [{"user_id": "u1"}]
        assert (await queue.stats()).completed == 1

    async def test_active_job_does_not_block_next(self, queue: InMemoryJobQueue) -> None:
        release = asyncio.Event()
        calls = []

        async def handler(payload: dict[str, Any]) -> None:
            calls.append(payload)
            await release.wait()

        queue.bind(handler)
        await queue.start()
        first = await queue.add({"user_id": "u1"}, key="u1")
        while first.state != JobState.ACTIVE:
            await asyncio.sleep(0)

        second = await queue.add({"user_id": "u1"}, key="u1", delay=0.01)

        assert second is not None
        assert await queue.get_job("u1") is second
        assert await queue.remove("u1") is True
        third = await queue.add({"user_id": "u1"}, key="u1")
        release.set()
        await queue.join(timeout=2)

        assert len(calls) == 2
        assert third.state == JobState.COMPLETED
        assert await queue.get_job("u1") is None

    async def test_failed_job_is_not_retried_once_superseded(self, queue: InMemoryJobQueue) -> None:
        release = asyncio.Event()

        async def handler(payload: dict[str, Any]) -> None:
            await release.wait()
            raise RuntimeError("db down")

        queue.bind(handler)
        await queue.start()
        first = await queue.add({"user_id": "u1"}, key="u1")
        while first.state != JobState.ACTIVE:
            await asyncio.sleep(0)
        second = await queue.add({"user_id": "u1"}, key="u1", delay=60)

        release.set()
        while first.finished_at is None:
            await asyncio.sleep(0)

        stats = await queue.stats()
        assert stats.delayed == 1
        assert stats.waiting == 0
        assert stats.failed == 0
        assert first.attempts == 1
        assert await queue.get_job("u1") is second


class TestExecution:
    """Tests for ordering, retries and failures."""

    async def test_priority_order(self, queue: InMemoryJobQueue) -> None:
        handler = Recorder()
        queue.bind(handler)
        await queue.add({"name": "normal"})
        await queue.add({"name": "low"}, priority=Priority.LOW)
        await queue.add({"name": "high"}, priority=Priority.HIGH)
        assert (await queue.stats()).waiting == 3

        await queue.start()
        await queue.join(timeout=2)

        assert [p["name"] for p in handler.payloads] == ["high", "normal", "low"]

    async def test_retries_until_success(self, queue: InMemoryJobQueue) -> None:
        handler = Recorder(failures=2)
        queue.bind(handler)
        await queue.start()

        job = await queue.add({"user_id": "u1"}, key="u1")
        await queue.join(timeout=2)

        assert len(handler.payloads) == 3
        assert job.state == JobState.COMPLETED
        assert job.attempts == 3
        stats = await queue.stats()
        assert stats.completed == 1
        assert stats.failed == 0

    async def test_exhausted_job_is_kept_as_failed(self, queue: InMemoryJobQueue) -> None:
        handler = Recorder(failures=10)
        queue.bind(handler)
        await queue.start()

        await queue.add({"user_id": "u1"}, key="u1")
        await queue.join(timeout=2)

        failed = await queue.failed_jobs()
        assert len(failed) == 1
        assert failed[0].state == JobState.FAILED
        assert failed[0].attempts == 3
        assert failed[0].error == "boom 3"
        assert failed[0].finished_at is not None
        assert not await queue.has_pending("u1")
        assert (await queue.stats()).failed == 1

    async def test_failed_jobs_newest_first(self) -> None:
        queue = InMemoryJobQueue("advice", retry=RetryPolicy(max_attempts=1, backoff_seconds=0.0), keep_failed=2)
        queue.bind(Recorder(failures=10))
        await queue.start()

        for key in ("a", "b", "c"):
            await queue.add({"user_id": key}, key=key)
            await queue.join(timeout=2)

        assert [job.key for job in await queue.failed_jobs()] == ["c", "b"]
        assert [job.key for job in await queue.failed_jobs(limit=1)] == ["c"]
        await queue.close()

    async def test_concurrency(self) -> None:
        queue = InMemoryJobQueue("insights", concurrency=3, retry=NO_BACKOFF)
        running = 0
        peak = 0

        async def handler(payload: dict[str, Any]) -> None:
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.01)
            running -= 1

        queue.bind(handler)
        await queue.start()
        for i in range(6):
            await queue.add({"user_id": f"u{i}"}, key=f"u{i}")
        await queue.join(timeout=2)
        await queue.close()

        assert peak == 3


class TestLifecycle:
    """Tests for start, join and clearing."""

    async def test_start_requires_handler(self, queue: InMemoryJobQueue) -> None:
        with pytest.raises(QueueError, match="no handler"):
            await queue.start()

    async def test_join_timeout(self, queue: InMemoryJobQueue) -> None:
        await queue.add({"user_id": "u1"}, key="u1", delay=60)

        with pytest.raises(QueueError, match="did not drain"):
            await queue.join(timeout=0.01)

    async def test_join_returns_when_empty(self, queue: InMemoryJobQueue) -> None:
        await queue.join(timeout=0.01)

    async def test_clear_pending(self, queue: InMemoryJobQueue) -> None:
        await queue.add({"user_id": "u1"}, key="u1", delay=60)
        await queue.add({"user_id": "u2"}, key="u2")

        assert await queue.clear_pending() == 2
        assert (await queue.stats()).total == 0
        await queue.join(timeout=0.01)

# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the task rate limiter and its timestamp stores."""

from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from learning_insights.infrastructure.background.utils.rate_limiter import (
    InMemoryTimestampStore,
    RedisTimestampStore,
    TaskRateLimiter,
    TimestampStore,
)
from learning_insights.infrastructure.cache.redis_client import RedisError


class Tick:
    """Settable wall clock in seconds."""

    def __init__(self, now: float = 1_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def tick() -> Tick:
    return Tick()


@pytest.fixture
def limiter(tick: Tick) -> TaskRateLimiter:
    return TaskRateLimiter("advice", window=timedelta(hours=1), clock=tick)


class TestTaskRateLimiter:
    """Tests for TaskRateLimiter."""

    def test_once_per_window(self, limiter: TaskRateLimiter, tick: Tick) -> None:
        assert limiter.allow("u1") is True
        assert limiter.allow("u1") is False

        tick.now += 3599
        assert limiter.allow("u1") is False

        tick.now += 1
        assert limiter.allow("u1") is True

    def test_entities_are_independent(self, limiter: TaskRateLimiter) -> None:
        assert limiter.allow("u1")
        assert limiter.allow("u2")

    def test_remaining_seconds(self, limiter: TaskRateLimiter, tick: Tick) -> None:
        assert limiter.remaining_seconds("u1") == 0

        limiter.allow("u1")
        tick.now += 600

        assert limiter.remaining_seconds("u1") == 3000

    def test_touch_starts_window(self, limiter: TaskRateLimiter) -> None:
        limiter.touch("u1")

        assert limiter.allow("u1") is False

    def test_reset(self, limiter: TaskRateLimiter) -> None:
        limiter.allow("u1")
        limiter.reset("u1")

        assert limiter.allow("u1") is True

    def test_store_keys(self, tick: Tick) -> None:
        store = MagicMock(spec=TimestampStore)
        store.set_if_elapsed.return_value = True
        limiter = TaskRateLimiter("advice", window=timedelta(hours=1), store=store, clock=tick)

        limiter.allow("u1")

        store.set_if_elapsed.assert_called_once_with("ratelimit:advice:u1", tick.now, 3600.0, 3601)


class TestStoreFailures:
    """Limiter behaviour when the store is unreachable."""

    @pytest.fixture
    def broken(self, tick: Tick) -> TaskRateLimiter:
        store = MagicMock(spec=TimestampStore)
        error = RedisError("redis down")
        store.get.side_effect = error
        store.set.side_effect = error
        store.set_if_elapsed.side_effect = error
        return TaskRateLimiter("advice", window=timedelta(hours=1), store=store, clock=tick)

    def test_allow_fails_closed(self, broken: TaskRateLimiter) -> None:
        assert broken.allow("u1") is False

    def test_touch_does_not_raise(self, broken: TaskRateLimiter) -> None:
        broken.touch("u1")

    def test_remaining_is_full_window(self, broken: TaskRateLimiter) -> None:
        assert broken.remaining_seconds("u1") == 3600


class TestInMemoryTimestampStore:
    """Tests for InMemoryTimestampStore."""

    def test_set_if_elapsed(self) -> None:
        store = InMemoryTimestampStore()

        assert store.set_if_elapsed("k", 100.0, 60, 120)
        assert not store.set_if_elapsed("k", 159.0, 60, 120)
        assert store.set_if_elapsed("k", 160.0, 60, 120)
        assert store.get("k") == 160.0

    def test_expired_entries_are_ignored(self) -> None:
        store = InMemoryTimestampStore()
        store.set("k", 100.0, ttl_seconds=0)

        assert store.get("k") is None
        assert store.set_if_elapsed("k", 101.0, 60, 120)

    def test_delete(self) -> None:
        store = InMemoryTimestampStore()
        store.set("k", 1.0, 60)
        store.delete("k")
        store.delete("missing")

        assert store.get("k") is None


class TestRedisTimestampStore:
    """Tests for RedisTimestampStore against a mocked client."""

    @pytest.fixture
    def client(self) -> MagicMock:
        client = MagicMock()
        client.register_script.return_value = MagicMock(return_value=1)
        return client

    def test_set_if_elapsed_runs_script(self, client: MagicMock) -> None:
        store = RedisTimestampStore(client)

        assert store.set_if_elapsed("k", 100.5, 3600.0, 3601) is True

        script = client.register_script.return_value
        script.assert_called_once_with(keys=["k"], args=["100.5", "3600.0", 3601])

    def test_script_refusal(self, client: MagicMock) -> None:
        client.register_script.return_value.return_value = 0

        assert RedisTimestampStore(client).set_if_elapsed("k", 100.0, 60.0, 61) is False

    def test_get_parses_float(self, client: MagicMock) -> None:
        client.get.return_value = b"123.25"

        assert RedisTimestampStore(client).get("k") == 123.25

    def test_set_uses_ttl(self, client: MagicMock) -> None:
        RedisTimestampStore(client).set("k", 5.0, 61)

        client.set.assert_called_once_with("k", "5.0", ex=61)

    def test_errors_are_wrapped(self, client: MagicMock) -> None:
        client.get.side_effect = RedisConnectionError("refused")
        client.delete.side_effect = RedisConnectionError("refused")
        store = RedisTimestampStore(client)

        with pytest.raises(RedisError):
            store.get("k")
        with pytest.raises(RedisError):
            store.delete("k")

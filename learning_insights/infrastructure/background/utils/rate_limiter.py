# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Rate limiting utilities for background task dispatching.

Limits how often a background task may be dispatched for the same entity,
for example one automatic advice request per user per hour. State is a
key -> last-request-timestamp map held by a pluggable TimestampStore:

- InMemoryTimestampStore: process-local, for tests and single-process runs
- RedisTimestampStore: shared by every API and worker process

The check and the update happen in one atomic step, so two processes can
never both pass the limit for the same entity.

Example:
    from learning_insights.infrastructure.background.utils import TaskRateLimiter

    limiter = TaskRateLimiter(key_prefix="advice", window=timedelta(hours=1))

    if limiter.allow(user_id):
        advice_queue.add(...)
    else:
        logger.debug("Rate limited, skipping advice")
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import timedelta
from typing import Optional

import redis
from redis.exceptions import RedisError as BaseRedisError

from learning_insights.infrastructure.cache.redis_client import RedisError

logger = logging.getLogger(__name__)


class TimestampStore(ABC):
    """Key -> last-request-timestamp map."""

    @abstractmethod
    def get(self, key: str) -> Optional[float]:
        """Return the stored timestamp, None if absent or expired."""

    @abstractmethod
    def set(self, key: str, timestamp: float, ttl_seconds: int) -> None:
        """Store a timestamp unconditionally."""

    @abstractmethod
    def set_if_elapsed(self, key: str, timestamp: float, interval_seconds: float, ttl_seconds: int) -> bool:
        """Store the timestamp only if the previous one is older than the interval.

        Returns:
            True if the timestamp was stored.
        """

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove a timestamp."""


class InMemoryTimestampStore(TimestampStore):
    """Thread-safe timestamp map for a single process."""

    def __init__(self) -> None:
        self._values: dict[str, tuple[float, float]] = {}
        self._lock = threading.Lock()

    def _expired(self, expires_at: float) -> bool:
        return expires_at <= time.monotonic()

    def get(self, key: str) -> Optional[float]:
        with self._lock:
            entry = self._values.get(key)
            if entry is None or self._expired(entry[1]):
                return None
            return entry[0]

    def set(self, key: str, timestamp: float, ttl_seconds: int) -> None:
        with self._lock:
            self._values[key] = (timestamp, time.monotonic() + ttl_seconds)

    def set_if_elapsed(self, key: str, timestamp: float, interval_seconds: float, ttl_seconds: int) -> bool:
        with self._lock:
            entry = self._values.get(key)
            if entry is not None and not self._expired(entry[1]):
                if timestamp - entry[0] < interval_seconds:
                    return False
            self._values[key] = (timestamp, time.monotonic() + ttl_seconds)
            return True

    def delete(self, key: str) -> None:
        with self._lock:
            self._values.pop(key, None)


# KEYS[1] = key, ARGV = timestamp, interval, ttl
_SET_IF_ELAPSED = """
local previous = redis.call('GET', KEYS[1])
if previous and (tonumber(ARGV[1]) - tonumber(previous)) < tonumber(ARGV[2]) then
    return 0
end
redis.call('SET', KEYS[1], ARGV[1], 'EX', ARGV[3])
return 1
"""


class RedisTimestampStore(TimestampStore):
    """Timestamp map shared through Redis.

    set_if_elapsed runs as a Lua script, so the compare and the write are
    atomic across processes.
    """

    def __init__(self, client: redis.Redis) -> None:
        self._client = client
        self._set_if_elapsed = client.register_script(_SET_IF_ELAPSED)

    def get(self, key: str) -> Optional[float]:
        try:
            value = self._client.get(key)
        except BaseRedisError as e:
            raise RedisError(f"Failed to read rate limit key {key}", e) from e
        return float(value) if value is not None else None

    def set(self, key: str, timestamp: float, ttl_seconds: int) -> None:
        try:
            self._client.set(key, repr(timestamp), ex=ttl_seconds)
        except BaseRedisError as e:
            raise RedisError(f"Failed to write rate limit key {key}", e) from e

    def set_if_elapsed(self, key: str, timestamp: float, interval_seconds: float, ttl_seconds: int) -> bool:
        try:
            stored = self._set_if_elapsed(
                keys=[key],
                args=[repr(timestamp), repr(interval_seconds), ttl_seconds],
            )
        except BaseRedisError as e:
            raise RedisError(f"Failed to check rate limit key {key}", e) from e
        return bool(int(stored))

    def delete(self, key: str) -> None:
        try:
            self._client.delete(key)
        except BaseRedisError as e:
            raise RedisError(f"Failed to delete rate limit key {key}", e) from e


class TaskRateLimiter:
    """Minimum-interval rate limiter for background task dispatching.

    Each entity may pass ``allow`` once per window. ``touch`` records a
    dispatch that bypassed the check, so the next ``allow`` waits a full
    window from it.

    Unlike a counter, the limiter fails closed: when the store is
    unreachable ``allow`` returns False and the task is simply not
    dispatched this time.

    Attributes:
        key_prefix: Key prefix for this limiter.
        window_seconds: Minimum seconds between two dispatches.

    Example:
        limiter = TaskRateLimiter(
            key_prefix="advice",
            window=timedelta(hours=1),
            store=RedisTimestampStore(get_redis_client()),
        )
    """

    def __init__(
        self,
        key_prefix: str,
        window: timedelta = timedelta(hours=1),
        store: Optional[TimestampStore] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize rate limiter.

        Args:
            key_prefix: Key prefix for this limiter.
            window: Minimum interval between dispatches per entity.
            store: Timestamp store, process-local when omitted.
            clock: Source of wall-clock seconds.
        """
        self.key_prefix = key_prefix
        self.window_seconds = window.total_seconds()
        self._ttl = max(1, int(self.window_seconds) + 1)
        self._store = store or InMemoryTimestampStore()
        self._clock = clock

    def _get_key(self, entity_id: str) -> str:
        return f"ratelimit:{self.key_prefix}:{entity_id}"

    def allow(self, entity_id: str) -> bool:
        """Check and record a dispatch for the entity.

        Args:
            entity_id: Entity identifier (e.g., user id).

        Returns:
            True if the dispatch is allowed, False if rate limited.
        """
        try:
            allowed = self._store.set_if_elapsed(
                self._get_key(entity_id), self._clock(), self.window_seconds, self._ttl
            )
        except RedisError as e:
            logger.warning("Rate limit check failed for %s: %s", entity_id, e)
            return False

        if not allowed:
            logger.debug("Rate limited: %s:%s", self.key_prefix, entity_id)
        return allowed

    def touch(self, entity_id: str) -> None:
        """Record a dispatch that bypassed the limit."""
        try:
            self._store.set(self._get_key(entity_id), self._clock(), self._ttl)
        except RedisError as e:
            logger.warning("Rate limit update failed for %s: %s", entity_id, e)

    def remaining_seconds(self, entity_id: str) -> float:
        """Seconds until the entity may pass ``allow`` again."""
        try:
            last = self._store.get(self._get_key(entity_id))
        except RedisError as e:
            logger.warning("Rate limit read failed for %s: %s", entity_id, e)
            return self.window_seconds
        if last is None:
            return 0.0
        return max(0.0, self.window_seconds - (self._clock() - last))

    def reset(self, entity_id: str) -> None:
        """Reset rate limit for entity.

        Useful for admin operations or testing.
        """
        self._store.delete(self._get_key(entity_id))
        logger.debug("Rate limit reset for: %s:%s", self.key_prefix, entity_id)

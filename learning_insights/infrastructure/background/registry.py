# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Redis job registry for Dramatiq-backed keyed queues.

Dramatiq has no notion of "one pending message per key", so the registry
keeps it next to the broker. For every queue it holds:

- ``insights:jobs:{queue}``: hash of key -> current job (JSON)
- ``insights:jobs:{queue}:stats``: hash of completed / failed counters
- ``insights:jobs:{queue}:failed``: list of the most recent failed jobs

A key is owned by exactly one message id at a time. Messages whose id no
longer owns their key (cancelled or replaced) are skipped by
JobRegistryMiddleware when a worker picks them up.

Every state change that depends on the current owner runs as a Lua script,
so API processes and worker threads can race freely.
"""

import json
import logging
from typing import Any, Optional

import redis
from redis.exceptions import RedisError as BaseRedisError

from learning_insights.infrastructure.background.queue import Job, JobState, QueueStats
from learning_insights.infrastructure.cache.redis_client import RedisError
from learning_insights.utils.datetime import utc_now

logger = logging.getLogger(__name__)

KEEP_FAILED = 1000

# KEYS[1] = jobs hash, ARGV = key, entry
_CLAIM = """
local current = redis.call('HGET', KEYS[1], ARGV[1])
if current then
    local state = cjson.decode(current)['state']
    if state == 'waiting' or state == 'delayed' then
        return 0
    end
end
redis.call('HSET', KEYS[1], ARGV[1], ARGV[2])
return 1
"""

# KEYS[1] = jobs hash, ARGV = key, job id, entry
_UPDATE_IF_OWNER = """
local current = redis.call('HGET', KEYS[1], ARGV[1])
if not current or cjson.decode(current)['id'] ~= ARGV[2] then
    return 0
end
redis.call('HSET', KEYS[1], ARGV[1], ARGV[3])
return 1
"""

# KEYS[1] = jobs hash, ARGV = key, job id
_RELEASE = """
local current = redis.call('HGET', KEYS[1], ARGV[1])
if current and cjson.decode(current)['id'] == ARGV[2] then
    redis.call('HDEL', KEYS[1], ARGV[1])
    return 1
end
return 0
"""

# KEYS[1] = jobs hash, ARGV = key
_REMOVE_PENDING = """
local current = redis.call('HGET', KEYS[1], ARGV[1])
if current then
    local state = cjson.decode(current)['state']
    if state == 'waiting' or state == 'delayed' then
        redis.call('HDEL', KEYS[1], ARGV[1])
        return 1
    end
end
return 0
"""


class RedisJobRegistry:
    """Per-queue registry of keyed jobs stored in Redis.

    Attributes:
        queue: Name of the queue this registry tracks.
    """

    def __init__(self, client: redis.Redis, queue: str) -> None:
        self._client = client
        self.queue = queue
        self._jobs_key = f"insights:jobs:{queue}"
        self._stats_key = f"{self._jobs_key}:stats"
        self._failed_key = f"{self._jobs_key}:failed"
        self._claim = client.register_script(_CLAIM)
        self._update_if_owner = client.register_script(_UPDATE_IF_OWNER)
        self._release = client.register_script(_RELEASE)
        self._remove_pending = client.register_script(_REMOVE_PENDING)

    # -------------------------------------------------------------------------
    # Ownership
    # -------------------------------------------------------------------------

    def claim(self, job: Job) -> bool:
        """Register a job unless its key already has a pending one.

        Returns:
            True if the job now owns its key.
        """
        stored = self._call(self._claim, [job.key, self._encode(job)], f"claim {job.key}")
        return bool(int(stored))

    def replace(self, job: Job) -> None:
        """Register a job, taking the key over from whatever owned it."""
        try:
            self._client.hset(self._jobs_key, job.key, self._encode(job))
        except BaseRedisError as e:
            raise RedisError(f"Failed to register job {job.id}", e) from e

    def update(self, job: Job) -> bool:
        """Store a job's new state if it still owns its key.

        Returns:
            False if the key has been cancelled or replaced.
        """
        stored = self._call(
            self._update_if_owner, [job.key, job.id, self._encode(job)], f"update {job.key}"
        )
        return bool(int(stored))

    def release(self, key: str, job_id: str) -> bool:
        """Drop the key if the given job still owns it."""
        return bool(int(self._call(self._release, [key, job_id], f"release {key}")))

    def remove_pending(self, key: str) -> bool:
        """Drop the key if its job has not started yet."""
        return bool(int(self._call(self._remove_pending, [key], f"remove {key}")))

    def get(self, key: str) -> Optional[Job]:
        """The job currently owning a key."""
        try:
            raw = self._client.hget(self._jobs_key, key)
        except BaseRedisError as e:
            raise RedisError(f"Failed to read job for {key}", e) from e
        return Job.from_dict(json.loads(raw)) if raw else None

    def is_current(self, key: str, job_id: str) -> bool:
        """Whether the given job still owns its key."""
        job = self.get(key)
        return job is not None and job.id == job_id

    # -------------------------------------------------------------------------
    # Outcomes
    # -------------------------------------------------------------------------

    def record_completed(self, job: Job) -> None:
        """Count a completed job and release its key."""
        try:
            self._client.hincrby(self._stats_key, "completed", 1)
        except BaseRedisError as e:
            raise RedisError(f"Failed to record completion of {job.id}", e) from e
        self.release(job.key, job.id)

    def record_failed(self, job: Job) -> None:
        """Keep a failed job for inspection and release its key."""
        job.state = JobState.FAILED
        job.finished_at = utc_now()
        try:
            pipe = self._client.pipeline()
            pipe.hincrby(self._stats_key, "failed", 1)
            pipe.lpush(self._failed_key, self._encode(job))
            pipe.ltrim(self._failed_key, 0, KEEP_FAILED - 1)
            pipe.execute()
        except BaseRedisError as e:
            raise RedisError(f"Failed to record failure of {job.id}", e) from e
        self.release(job.key, job.id)

    # -------------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------------

    def stats(self) -> QueueStats:
        """Counts of registered jobs per state plus lifetime outcomes."""
        try:
            entries = self._client.hvals(self._jobs_key)
            counters = self._client.hgetall(self._stats_key)
        except BaseRedisError as e:
            raise RedisError(f"Failed to read stats of {self.queue}", e) from e

        stats = QueueStats(
            name=self.queue,
            completed=int(counters.get("completed", 0)),
            failed=int(counters.get("failed", 0)),
        )
        for raw in entries:
            state = json.loads(raw).get("state")
            if state == JobState.WAITING.value:
                stats.waiting += 1
            elif state == JobState.DELAYED.value:
                stats.delayed += 1
            elif state == JobState.ACTIVE.value:
                stats.active += 1
        return stats

    def failed_jobs(self, limit: int = 50) -> list[Job]:
        """Most recent failed jobs, newest first."""
        try:
            entries = self._client.lrange(self._failed_key, 0, limit - 1)
        except BaseRedisError as e:
            raise RedisError(f"Failed to read failed jobs of {self.queue}", e) from e
        return [Job.from_dict(json.loads(raw)) for raw in entries]

    def clear_pending(self) -> int:
        """Drop every job that has not started. Returns how many were dropped."""
        try:
            keys = self._client.hkeys(self._jobs_key)
        except BaseRedisError as e:
            raise RedisError(f"Failed to list jobs of {self.queue}", e) from e
        return sum(1 for key in keys if self.remove_pending(key))

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _call(self, script: Any, args: list[Any], action: str) -> Any:
        try:
            return script(keys=[self._jobs_key], args=args)
        except BaseRedisError as e:
            raise RedisError(f"Failed to {action} on {self.queue}", e) from e

    @staticmethod
    def _encode(job: Job) -> str:
        return json.dumps(job.to_dict())


_registries: dict[str, RedisJobRegistry] = {}


def get_job_registry(queue: str, client: Optional[redis.Redis] = None) -> RedisJobRegistry:
    """Get the registry of a queue, creating it on first use.

    Args:
        queue: Queue name.
        client: Redis client, the shared one when omitted.
    """
    registry = _registries.get(queue)
    if registry is None:
        if client is None:
            from learning_insights.infrastructure.cache import get_redis_client

            client = get_redis_client()
        registry = RedisJobRegistry(client, queue)
        _registries[queue] = registry
    return registry


def reset_job_registries() -> None:
    """Forget cached registries (tests and client reinitialization)."""
    _registries.clear()

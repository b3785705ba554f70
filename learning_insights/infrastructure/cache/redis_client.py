# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Redis client for shared scheduling state.

Redis holds the state that must be consistent across API and worker
processes: the advice rate-limit timestamps and the Dramatiq job registry.

A sync client is used on purpose: every call is a single command or Lua
script that completes in well under a millisecond, and Dramatiq middleware
hooks run outside any event loop.

Example:
    from learning_insights.infrastructure.cache import get_redis_client

    client = get_redis_client()
    client.hget("insights:jobs:insights", "user-1")
"""

import logging
from typing import TYPE_CHECKING, Optional

import redis
from redis.exceptions import RedisError as BaseRedisError

from learning_insights.core.exceptions import InsightsError

if TYPE_CHECKING:
    from learning_insights.core.config.settings import Settings

logger = logging.getLogger(__name__)

# Module-level state
_redis_client: Optional[redis.Redis] = None


class RedisError(InsightsError):
    """Exception raised for Redis operation failures."""


def init_redis_client(settings: "Settings") -> redis.Redis:
    """Create the shared client from settings.

    Args:
        settings: Application settings containing Redis configuration.

    Returns:
        The shared Redis client.
    """
    global _redis_client

    pool = redis.ConnectionPool.from_url(
        settings.redis.url,
        max_connections=settings.redis.max_connections,
        decode_responses=True,
    )
    _redis_client = redis.Redis(connection_pool=pool)
    logger.info("Redis client initialized (url: %s)", settings.redis.url.split("@")[-1])
    return _redis_client


def get_redis_client() -> redis.Redis:
    """Get the shared Redis client, creating it from settings on first use.

    Returns:
        The shared Redis client.
    """
    if _redis_client is None:
        from learning_insights.core.config import get_settings

        return init_redis_client(get_settings())
    return _redis_client


def close_redis_client() -> None:
    """Close the shared client and its connection pool."""
    global _redis_client

    if _redis_client is not None:
        _redis_client.close()
        _redis_client.connection_pool.disconnect()
        _redis_client = None


def check_redis_connection(client: Optional[redis.Redis] = None) -> bool:
    """Check if Redis is reachable.

    Returns:
        True if Redis answered PING, False otherwise.
    """
    try:
        return bool((client or get_redis_client()).ping())
    except BaseRedisError as e:
        logger.warning("Redis health check failed: %s", e)
        return False

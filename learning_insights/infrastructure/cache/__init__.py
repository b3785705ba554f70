# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Redis client for shared scheduling state."""

from learning_insights.infrastructure.cache.redis_client import (
    RedisError,
    check_redis_connection,
    close_redis_client,
    get_redis_client,
    init_redis_client,
)

__all__ = [
    "RedisError",
    "init_redis_client",
    "get_redis_client",
    "close_redis_client",
    "check_redis_connection",
]

# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Background task utilities."""

from learning_insights.infrastructure.background.utils.rate_limiter import (
    InMemoryTimestampStore,
    RedisTimestampStore,
    TaskRateLimiter,
    TimestampStore,
)

__all__ = [
    "TaskRateLimiter",
    "TimestampStore",
    "InMemoryTimestampStore",
    "RedisTimestampStore",
]

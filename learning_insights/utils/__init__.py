# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Utility functions and helpers.

This package contains cross-cutting utilities:
- logging: Structured logging with structlog
- datetime: Timezone-aware datetime and calendar-day operations
"""

from learning_insights.utils.datetime import (
    day_start,
    days_ago,
    days_between,
    ensure_utc,
    format_iso,
    get_timezone,
    normalize_day,
    utc_now,
)
from learning_insights.utils.logging import bind_context, clear_context, get_logger, setup_logging

__all__ = [
    # Logging
    "setup_logging",
    "get_logger",
    "bind_context",
    "clear_context",
    # Datetime
    "utc_now",
    "ensure_utc",
    "get_timezone",
    "normalize_day",
    "day_start",
    "days_between",
    "days_ago",
    "format_iso",
]

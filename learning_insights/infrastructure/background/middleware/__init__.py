# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Background processing middleware.

This module provides custom Dramatiq middleware for:
- Keyed job registry bookkeeping (dedup, outcomes, skip of superseded messages)
"""

from learning_insights.infrastructure.background.middleware.registry import (
    JOB_KEY,
    JOB_QUEUE,
    JobRegistryMiddleware,
)

__all__ = [
    "JOB_KEY",
    "JOB_QUEUE",
    "JobRegistryMiddleware",
]

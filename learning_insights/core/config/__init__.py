# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Configuration package for the learning insights pipeline.

Example:
    >>> from learning_insights.core.config import get_settings
    >>> settings = get_settings()
    >>> print(settings.environment)
    'development'
"""

from learning_insights.core.config.settings import (
    AdviceSettings,
    AIServiceSettings,
    APISettings,
    DatabaseSettings,
    RecomputeSettings,
    RedisSettings,
    Settings,
    WorkerSettings,
    clear_settings_cache,
    get_settings,
)

__all__ = [
    # Settings
    "Settings",
    "get_settings",
    "clear_settings_cache",
    # Subsettings
    "DatabaseSettings",
    "RedisSettings",
    "RecomputeSettings",
    "AdviceSettings",
    "AIServiceSettings",
    "WorkerSettings",
    "APISettings",
]

# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pytest configuration and shared fixtures.

This module provides fixtures used across all test types:
- Unit tests
- Integration tests
"""

import os
from collections.abc import Generator
from datetime import datetime, timedelta

import pytest

# Actors set up a broker on import; tests never talk to a real one
os.environ.setdefault("DRAMATIQ_TEST_MODE", "true")

from builders import FIXED_NOW, FakeClock, activity_record, task_lesson  # noqa: E402

from learning_insights.core.config import Settings, clear_settings_cache  # noqa: E402
from learning_insights.domains.activity.models import ActivityRecord  # noqa: E402


# =============================================================================
# Marker Configuration
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test (requires services)"
    )


# =============================================================================
# Environment Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def reset_settings_cache() -> Generator[None, None, None]:
    """Make every test read settings from its own environment."""
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def settings() -> Settings:
    """Settings for in-process queues and stores with no debounce."""
    return Settings(
        environment="development",
        recompute={"debounce_seconds": 0.0, "backoff_seconds": 0.0},
        advice={"backoff_seconds": 0.0},
        worker={"queue_backend": "memory", "storage_backend": "memory"},
    )


@pytest.fixture
def now() -> datetime:
    """A fixed reference time: Monday 2025-03-10 12:00 UTC."""
    return FIXED_NOW


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# =============================================================================
# Activity Fixtures
# =============================================================================


@pytest.fixture
def listening_activity() -> ActivityRecord:
    """Four completed listening tasks scored 80/100 in the last week."""
    return activity_record(
        lesson_activities=[
            task_lesson(f"listen-{i}", completed_at=FIXED_NOW - timedelta(days=i))
            for i in range(4)
        ],
    )

# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Insights domain: per-user insight records and their storage.

The recompute pipeline lives in ``learning_insights.domains.insights.pipeline``
and is imported from there, since it depends on the queue infrastructure.
"""

from learning_insights.domains.insights.models import (
    INSIGHTS_VERSION,
    AIAdvice,
    ComputedInsights,
    InsightsMetadata,
    InsightsRecord,
)
from learning_insights.domains.insights.store import (
    InMemoryInsightsStore,
    InsightsStore,
    SqlInsightsStore,
)

__all__ = [
    "INSIGHTS_VERSION",
    "AIAdvice",
    "ComputedInsights",
    "InMemoryInsightsStore",
    "InsightsMetadata",
    "InsightsRecord",
    "InsightsStore",
    "SqlInsightsStore",
]

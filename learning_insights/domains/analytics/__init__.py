# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Analytics engine package.

Pure calculators over one user's activity record:
- performance: level, weekly progress, consistency, retention
- mastery: course progress, lesson, flashcard and skill mastery
- patterns: study time, streaks, preferred content
- recommendations: next lessons, review cards, study plan
- predictions: course completion dates, skill projection
"""

from learning_insights.domains.analytics.engine import (
    compute_insights,
    confidence_for,
    has_sufficient_data,
)
from learning_insights.domains.analytics.mastery import skill_level

__all__ = [
    "compute_insights",
    "confidence_for",
    "has_sufficient_data",
    "skill_level",
]

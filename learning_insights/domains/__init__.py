# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Domain layer of the learning insights service.

Domains:
    activity: Raw learning activity records, their store and the tracker.
    analytics: Pure calculators deriving insights from activity.
    insights: Insight records, their store and the recompute pipeline.
    advice: AI advice generation with fallbacks.
"""

# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""HTTP API for activity tracking and insights.

Example:
    uvicorn learning_insights.api.app:create_app --factory
"""

# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Learning insights recomputation pipeline.

Activity writes schedule a debounced per-user recompute. A worker pool runs
the analytics engine over the user's activity record and persists the
derived insights. Advice-worthy users are handed to a second, rate-limited
queue that asks an external AI service for a short encouragement message.
"""

__version__ = "1.0.0"

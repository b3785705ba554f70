# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""AI advice domain: payload building, the service client and fallbacks."""

from learning_insights.domains.advice.client import AdviceClient, AdviceResponse
from learning_insights.domains.advice.payload import build_advice_payload
from learning_insights.domains.advice.service import (
    FALLBACK_MESSAGES,
    AdviceService,
    coerce_tone,
)

__all__ = [
    "AdviceClient",
    "AdviceResponse",
    "AdviceService",
    "FALLBACK_MESSAGES",
    "build_advice_payload",
    "coerce_tone",
]

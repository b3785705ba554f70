# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""AI advice generation.

Turns a user's insights into a short encouragement message by asking the
external advice service. The service is best-effort: when it is down,
slow, or says it could not help, a generic encouragement is stored instead,
so advice generation never fails because of the AI side. Store failures
still propagate to the queue's retry.
"""

import logging
import random
from collections.abc import Callable
from datetime import datetime

from learning_insights.core.exceptions import AdviceServiceError
from learning_insights.domains.activity.store import ActivityStore
from learning_insights.domains.advice.client import AdviceClient
from learning_insights.domains.advice.payload import build_advice_payload
from learning_insights.domains.insights.models import AIAdvice, AdviceTone
from learning_insights.domains.insights.store import InsightsStore
from learning_insights.utils.datetime import utc_now

logger = logging.getLogger(__name__)

DEFAULT_MESSAGE = "Keep up the great work!"

FALLBACK_MESSAGES = (
    "Keep up the great work! Consistency is key to success.",
    "You're making excellent progress! Keep learning every day.",
    "Great job on your learning journey! Stay motivated.",
    "Your dedication is impressive! Continue at your own pace.",
    "Well done! Every step forward counts.",
)


def coerce_tone(value: str | None) -> AdviceTone:
    """Map a tone string to a known tone, encouraging when unknown."""
    try:
        return AdviceTone((value or "").strip().lower())
    except ValueError:
        return AdviceTone.ENCOURAGING


class AdviceService:
    """Generates and stores AI advice for users.

    Attributes:
        client: Client of the advice endpoint.

    Example:
        service = AdviceService(client, activity_store, insights_store)
        advice = await service.generate_and_store(user_id)
    """

    def __init__(
        self,
        client: AdviceClient,
        activity_store: ActivityStore,
        insights_store: InsightsStore,
        clock: Callable[[], datetime] = utc_now,
        choose: Callable[[tuple[str, ...]], str] = random.choice,
    ) -> None:
        self.client = client
        self._activity_store = activity_store
        self._insights_store = insights_store
        self._clock = clock
        self._choose = choose

    def fallback(self) -> AIAdvice:
        """A generic encouragement used whenever the service cannot help."""
        return AIAdvice(
            message=self._choose(FALLBACK_MESSAGES),
            tone=AdviceTone.ENCOURAGING,
            generated_at=self._clock(),
            is_fallback=True,
        )

    async def generate(self, user_id: str) -> AIAdvice:
        """Ask the advice service for a message.

        Args:
            user_id: User to advise.

        Returns:
            The service's advice, or fallback advice.

        Raises:
            StoreError: If the user's records could not be loaded.
        """
        activity = await self._activity_store.get(user_id)
        insights = await self._insights_store.get(user_id)
        if activity is None or insights is None:
            logger.warning("Not enough data to advise user %s, using fallback", user_id)
            return self.fallback()

        payload = build_advice_payload(insights, activity, self._clock())

        try:
            response = await self.client.request_advice(payload)
        except AdviceServiceError as e:
            logger.warning("Advice service failed for user %s: %s", user_id, e)
            return self.fallback()

        if not response.success:
            logger.warning("Advice service returned unsuccessful response for user %s", user_id)
            return self.fallback()

        logger.info("Generated AI advice for user %s", user_id)
        return AIAdvice(
            message=response.message or DEFAULT_MESSAGE,
            tone=coerce_tone(response.tone),
            generated_at=self._clock(),
        )

    async def generate_and_store(self, user_id: str) -> AIAdvice:
        """Generate advice and merge it into the user's insights.

        Only ``ai_advice`` and ``metadata.last_synced_at`` are written, so a
        recompute finishing at the same time is not overwritten.

        Returns:
            The generated advice.
        """
        advice = await self.generate(user_id)
        stored = await self._insights_store.merge_advice(user_id, advice, self._clock())
        if not stored:
            logger.warning("No insights record for user %s, advice not stored", user_id)
        return advice

    async def close(self) -> None:
        await self.client.close()

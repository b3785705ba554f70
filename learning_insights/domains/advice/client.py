# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""HTTP client for the external learning advice service.

The service receives a normalized snapshot of a user's insights and answers
with a short encouragement text:

    POST {base_url}/api/learning-advice
    -> {"success": true, "message": "...", "tone": "encouraging"}

Every failure mode (transport error, timeout, non-2xx, malformed body) is
raised as AdviceServiceError; deciding what to do about it is up to
AdviceService.
"""

import asyncio
import logging
from typing import Any

import httpx
from pydantic import BaseModel, ValidationError

from learning_insights.core.config.settings import AIServiceSettings
from learning_insights.core.exceptions import AdviceServiceError

logger = logging.getLogger(__name__)


class AdviceResponse(BaseModel):
    """Body returned by the advice endpoint."""

    success: bool = False
    message: str | None = None
    tone: str | None = None


class AdviceClient:
    """Async client for the advice endpoint.

    Attributes:
        url: Full URL of the advice endpoint.
        timeout: Hard limit of one request, connection included.

    Example:
        client = AdviceClient(settings.ai_service)
        response = await client.request_advice(payload)
        await client.close()
    """

    def __init__(
        self,
        settings: AIServiceSettings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            settings: AI service settings.
            transport: Optional transport, e.g. httpx.MockTransport in tests.
        """
        self.url = settings.advice_url
        self.timeout = settings.timeout
        headers = {"Content-Type": "application/json"}
        if settings.api_key is not None:
            headers["Authorization"] = f"Bearer {settings.api_key.get_secret_value()}"
        self._client = httpx.AsyncClient(
            timeout=settings.timeout,
            headers=headers,
            transport=transport,
        )

    async def request_advice(self, payload: dict[str, Any]) -> AdviceResponse:
        """Send a snapshot and return the parsed answer.

        Args:
            payload: Normalized user snapshot.

        Returns:
            The parsed response body.

        Raises:
            AdviceServiceError: On timeout, transport error, non-2xx status
                or an unparseable body.
        """
        try:
            response = await asyncio.wait_for(
                self._client.post(self.url, json=payload),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise AdviceServiceError(
                f"Advice service did not answer within {self.timeout}s", original_error=e
            ) from e
        except httpx.HTTPError as e:
            raise AdviceServiceError(f"Advice service request failed: {e}", original_error=e) from e

        if not response.is_success:
            raise AdviceServiceError(
                f"Advice service returned {response.status_code}",
                status_code=response.status_code,
            )

        try:
            return AdviceResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise AdviceServiceError(
                "Advice service returned an invalid body",
                status_code=response.status_code,
                original_error=e,
            ) from e

    async def close(self) -> None:
        """Close the underlying connection pool."""
        await self._client.aclose()

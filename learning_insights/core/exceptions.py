# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Custom exceptions for the learning insights pipeline.

This module defines the exception hierarchy:
- InsightsError: Base exception for all pipeline errors
- StoreError: Transient activity/insights store failures (retried by queues)
- QueueError: Broker or job registry failures while enqueueing
- AdviceServiceError: External AI service failures (replaced by fallback advice)
- InvalidActivityError: Activity events rejected at the store boundary
"""


class InsightsError(Exception):
    """Base exception for all learning insights errors.

    Attributes:
        message: Human-readable error description.
        original_error: The underlying exception, if any.
    """

    def __init__(self, message: str, original_error: Exception | None = None) -> None:
        """Initialize the error.

        Args:
            message: Human-readable error description.
            original_error: The underlying exception that caused this error.
        """
        super().__init__(message)
        self.message = message
        self.original_error = original_error

    def __str__(self) -> str:
        """Return string representation of the error."""
        if self.original_error:
            return f"{self.message}: {self.original_error}"
        return self.message


class StoreError(InsightsError):
    """A store could not read or write a record.

    Raised from inside queue workers, where it propagates to the queue's
    retry mechanism.
    """


class QueueError(InsightsError):
    """A job could not be enqueued, removed or inspected."""


class AdviceServiceError(InsightsError):
    """The external AI advice service failed.

    Attributes:
        status_code: HTTP status code when the service answered.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message, original_error)
        self.status_code = status_code


class InvalidActivityError(InsightsError):
    """An activity event failed validation."""

# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Dramatiq broker for the insight and advice workers.

Messages travel over Redis. Next to the broker, the job registry keeps
one pending job per user and queue; JobRegistryMiddleware consults it
before any actor body runs.

Example:
    from learning_insights.infrastructure.background.broker import setup_dramatiq

    # Importing the task modules calls this, API processes included
    broker = setup_dramatiq()
"""

import logging
import os
from typing import TYPE_CHECKING, Optional

import dramatiq
from dramatiq.brokers.redis import RedisBroker
from dramatiq.brokers.stub import StubBroker
from dramatiq.middleware import Retries

if TYPE_CHECKING:
    from learning_insights.core.config import Settings

logger = logging.getLogger(__name__)


class Queues:
    """Dramatiq queue names.

    Debounced recomputes go to INSIGHTS and automatic advice to ADVICE, so
    the two pools can be sized separately. Forced work from users and
    operators skips both through HIGH_PRIORITY.
    """

    INSIGHTS = "insights"
    ADVICE = "advice"
    HIGH_PRIORITY = "high_priority"
    MAINTENANCE = "maintenance"

    @classmethod
    def all(cls) -> tuple[str, ...]:
        return (cls.INSIGHTS, cls.ADVICE, cls.HIGH_PRIORITY, cls.MAINTENANCE)


class Priority:
    """Job priorities shared by both queue backends (lower runs first)."""

    HIGH = 1
    NORMAL = 3
    LOW = 5


def _use_stub_broker() -> bool:
    return os.getenv("DRAMATIQ_TEST_MODE", "false").lower() == "true"


class BrokerManager:
    """Creates the process-wide broker once and tears it down.

    Attributes:
        _broker: The Dramatiq broker instance.
    """

    def __init__(self) -> None:
        self._broker: Optional[dramatiq.Broker] = None

    @property
    def broker(self) -> dramatiq.Broker:
        """The configured broker.

        Raises:
            RuntimeError: If setup() has not run.
        """
        if self._broker is None:
            raise RuntimeError("Broker not initialized. Call setup() first.")
        return self._broker

    def setup(self, settings: Optional["Settings"] = None) -> dramatiq.Broker:
        """Create the broker and make it the global Dramatiq broker.

        A StubBroker replaces Redis when DRAMATIQ_TEST_MODE=true.

        Args:
            settings: Settings to read the Redis URL from, the cached
                ones when omitted.

        Returns:
            The broker, unchanged on repeated calls.
        """
        if self._broker is not None:
            return self._broker

        if _use_stub_broker():
            broker: dramatiq.Broker = StubBroker()
            broker.emit_after("process_boot")
            logger.info("Using StubBroker for testing")
        else:
            if settings is None:
                from learning_insights.core.config import get_settings

                settings = get_settings()
            broker = RedisBroker(url=settings.redis.url)
            logger.info("Redis broker initialized (url: %s)", settings.redis.url.split("@")[-1])

        # Before Retries, so that its after_process_message hook sees
        # whether Retries gave up on the message
        from learning_insights.infrastructure.background.middleware import JobRegistryMiddleware

        broker.add_middleware(JobRegistryMiddleware(), before=Retries)
        for queue in Queues.all():
            broker.declare_queue(queue)

        dramatiq.set_broker(broker)
        self._broker = broker
        return broker

    def shutdown(self) -> None:
        """Close the broker connection."""
        if self._broker is not None:
            self._broker.close()
            self._broker = None
            logger.info("Broker shutdown complete")


_broker_manager: Optional[BrokerManager] = None


def get_broker_manager() -> BrokerManager:
    """Get the process-wide broker manager."""
    global _broker_manager
    if _broker_manager is None:
        _broker_manager = BrokerManager()
    return _broker_manager


def setup_dramatiq(settings: Optional["Settings"] = None) -> dramatiq.Broker:
    """Set up the global Dramatiq broker.

    Returns:
        Configured broker.
    """
    return get_broker_manager().setup(settings)


def get_broker() -> dramatiq.Broker:
    """Get the current Dramatiq broker.

    Raises:
        RuntimeError: If the broker is not set up.
    """
    return get_broker_manager().broker


def shutdown_dramatiq() -> None:
    """Shut down the Dramatiq broker at process exit."""
    global _broker_manager
    if _broker_manager is not None:
        _broker_manager.shutdown()
        _broker_manager = None

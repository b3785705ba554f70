# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Job registry middleware for keyed Dramatiq messages.

Keeps the Redis job registry in step with message processing. Messages
sent through DramatiqJobQueue carry two options:

- ``job_key``: the dedup key (user id, or user id + advice kind)
- ``job_queue``: the logical queue whose registry tracks the key

Messages without a ``job_key`` pass through untouched.
"""

import logging
from typing import Any

import dramatiq
from dramatiq import Message, Middleware
from dramatiq.middleware import SkipMessage

from learning_insights.infrastructure.background.queue import Job, JobState
from learning_insights.infrastructure.background.registry import get_job_registry
from learning_insights.utils.logging import bind_context, clear_context

logger = logging.getLogger(__name__)

JOB_KEY = "job_key"
JOB_QUEUE = "job_queue"


def _message_job(message: Message, queue: str, key: str) -> Job:
    return Job(
        id=message.message_id,
        queue=queue,
        payload=dict(message.kwargs),
        key=key,
        state=JobState.ACTIVE,
    )


class JobRegistryMiddleware(Middleware):
    """Skips superseded messages and records job outcomes.

    Must run its after hook after Retries, so it is added to the broker
    with ``before=Retries`` (after hooks run in reverse order).

    Usage:
        broker.add_middleware(JobRegistryMiddleware(), before=Retries)
    """

    def before_process_message(
        self,
        broker: dramatiq.Broker,
        message: Message,
    ) -> None:
        """Skip the message unless it still owns its key, else mark it active.

        Raises:
            SkipMessage: If the job was cancelled or replaced.
        """
        key = message.options.get(JOB_KEY)
        if key is None:
            return

        queue = message.options.get(JOB_QUEUE, message.queue_name)
        registry = get_job_registry(queue)
        job = registry.get(key)
        if job is None or job.id != message.message_id:
            logger.debug(
                "Skipping superseded message %s for key %s on %s",
                message.message_id,
                key,
                queue,
            )
            raise SkipMessage()

        job.state = JobState.ACTIVE
        job.attempts += 1
        job.run_at = None
        registry.update(job)

        bind_context(queue=queue, job_id=job.id, **job.payload)

    def after_process_message(
        self,
        broker: dramatiq.Broker,
        message: Message,
        *,
        result: Any = None,
        exception: BaseException | None = None,
    ) -> None:
        """Complete, fail or re-delay the job of a processed message.

        Args:
            broker: The broker instance.
            message: The processed message.
            result: The result of processing.
            exception: Any exception that occurred.
        """
        key = message.options.get(JOB_KEY)
        if key is None:
            return

        queue = message.options.get(JOB_QUEUE, message.queue_name)
        registry = get_job_registry(queue)
        try:
            job = registry.get(key)
            if job is None or job.id != message.message_id:
                # Key was taken over while this message ran
                job = _message_job(message, queue, key)

            if exception is None:
                job.state = JobState.COMPLETED
                registry.record_completed(job)
            elif message.failed:
                job.error = str(exception)
                registry.record_failed(job)
                logger.error(
                    "Job %s on %s failed after %d attempts: %s",
                    job.id,
                    queue,
                    job.attempts,
                    exception,
                )
            else:
                job.state = JobState.DELAYED
                job.error = str(exception)
                registry.update(job)
                logger.warning(
                    "Job %s on %s failed (attempt %d), retry scheduled: %s",
                    job.id,
                    queue,
                    job.attempts,
                    exception,
                )
        finally:
            clear_context()

    def after_skip_message(
        self,
        broker: dramatiq.Broker,
        message: Message,
    ) -> None:
        """Clear job context after skipping message."""
        clear_context()

# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Insights recompute pipeline.

Connects activity writes to insight recomputation and AI advice:

    activity write -> schedule_recompute (debounced, one job per user)
                   -> run_recompute (analytics engine, store)
                   -> schedule_advice (rate limited, one job per user)
                   -> run_advice (AI service or fallback, merged into store)

Scheduling calls never raise. They return False when nothing was queued,
either because an equivalent job is already pending, the advice interval
has not elapsed, or the queue backend failed (which is logged).

Worker entry points (run_recompute, run_advice) propagate store errors so
the queue retries them.

Example:
    pipeline = build_pipeline(settings)
    await pipeline.start()

    await pipeline.schedule_recompute(user_id)
    record = await pipeline.get_insights(user_id)
"""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any, Optional

from learning_insights.core.config.settings import Settings
from learning_insights.core.exceptions import QueueError
from learning_insights.domains.activity.store import ActivityStore
from learning_insights.domains.advice.service import AdviceService
from learning_insights.domains.analytics import compute_insights, confidence_for, has_sufficient_data
from learning_insights.domains.insights.models import InsightsMetadata, InsightsRecord
from learning_insights.domains.insights.store import InsightsStore
from learning_insights.infrastructure.background.broker import Priority
from learning_insights.infrastructure.background.queue import KeyedJobQueue
from learning_insights.infrastructure.background.utils import TaskRateLimiter
from learning_insights.infrastructure.cache.redis_client import RedisError
from learning_insights.utils.datetime import ensure_utc, utc_now

logger = logging.getLogger(__name__)

ADVICE_AUTO = "auto"
ADVICE_FORCED = "forced"
ADVICE_KINDS = (ADVICE_AUTO, ADVICE_FORCED)


def advice_key(user_id: str, kind: str) -> str:
    """Dedup key of an advice job."""
    return f"{user_id}:{kind}"


class InsightsPipeline:
    """Schedules and runs insight recomputes and advice generation.

    Attributes:
        recompute_queue: Keyed queue of recompute jobs, keyed by user id.
        advice_queue: Keyed queue of advice jobs, keyed by user id and kind.
    """

    def __init__(
        self,
        activity_store: ActivityStore,
        insights_store: InsightsStore,
        advice_service: AdviceService,
        recompute_queue: KeyedJobQueue,
        advice_queue: KeyedJobQueue,
        advice_limiter: TaskRateLimiter,
        settings: Settings,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.activity_store = activity_store
        self.insights_store = insights_store
        self.advice_service = advice_service
        self.recompute_queue = recompute_queue
        self.advice_queue = advice_queue
        self.advice_limiter = advice_limiter
        self._settings = settings
        self._clock = clock

        recompute_queue.bind(self._handle_recompute)
        advice_queue.bind(self._handle_advice)

    # -------------------------------------------------------------------------
    # Recompute scheduling
    # -------------------------------------------------------------------------

    async def schedule_recompute(self, user_id: str) -> bool:
        """Queue a debounced recompute for a user.

        A no-op while a recompute for the user is waiting or delayed, so a
        burst of activity leads to a single recompute. A recompute that is
        already running does not block a new one.

        Returns:
            True if a new job was queued.
        """
        try:
            job = await self.recompute_queue.add(
                {"user_id": user_id},
                key=user_id,
                delay=self._settings.recompute.debounce_seconds,
            )
        except QueueError as e:
            logger.error("Failed to schedule recompute for user %s: %s", user_id, e)
            return False

        if job is None:
            logger.debug("Recompute already pending for user %s", user_id)
            return False
        logger.debug("Scheduled recompute %s for user %s", job.id, user_id)
        return True

    async def force_recompute(self, user_id: str) -> bool:
        """Replace any pending recompute with an immediate high priority one.

        Running recomputes are never cancelled.

        Returns:
            True if a new job was queued.
        """
        try:
            await self.recompute_queue.remove(user_id)
            job = await self.recompute_queue.add(
                {"user_id": user_id},
                key=user_id,
                delay=0,
                priority=Priority.HIGH,
            )
        except QueueError as e:
            logger.error("Failed to force recompute for user %s: %s", user_id, e)
            return False

        if job is None:
            logger.warning("Forced recompute for user %s lost a race, job already pending", user_id)
            return False
        logger.info("Forced recompute %s for user %s", job.id, user_id)
        return True

    # -------------------------------------------------------------------------
    # Advice scheduling
    # -------------------------------------------------------------------------

    async def _advice_in_flight(self, user_id: str) -> bool:
        for kind in ADVICE_KINDS:
            if await self.advice_queue.has_pending(advice_key(user_id, kind)):
                return True
        return False

    async def schedule_advice(self, user_id: str) -> bool:
        """Queue advice generation, at most once per interval per user.

        Returns:
            True if a new job was queued; False if advice is already in
            flight, the interval has not elapsed, or queueing failed.
        """
        try:
            if await self._advice_in_flight(user_id):
                logger.debug("Advice already in flight for user %s", user_id)
                return False

            if not self.advice_limiter.allow(user_id):
                logger.debug(
                    "Advice rate limited for user %s (%.0fs remaining)",
                    user_id,
                    self.advice_limiter.remaining_seconds(user_id),
                )
                return False
        except QueueError as e:
            logger.error("Failed to schedule advice for user %s: %s", user_id, e)
            return False

        try:
            job = await self.advice_queue.add(
                {"user_id": user_id, "kind": ADVICE_AUTO},
                key=advice_key(user_id, ADVICE_AUTO),
            )
        except QueueError as e:
            logger.error("Failed to schedule advice for user %s: %s", user_id, e)
            job = None

        if job is None:
            # Nothing was queued, so the request does not count
            self._release_advice_slot(user_id)
            return False
        logger.info("Scheduled advice %s for user %s", job.id, user_id)
        return True

    def _release_advice_slot(self, user_id: str) -> None:
        try:
            self.advice_limiter.reset(user_id)
        except RedisError as e:
            logger.warning("Failed to release advice rate limit for user %s: %s", user_id, e)

    async def force_advice(self, user_id: str) -> bool:
        """Queue advice generation now, ignoring the interval.

        Still a no-op while advice for the user is in flight. Records the
        request, so the next scheduled advice waits a full interval.

        Returns:
            True if a new job was queued.
        """
        try:
            if await self._advice_in_flight(user_id):
                logger.debug("Advice already in flight for user %s", user_id)
                return False

            job = await self.advice_queue.add(
                {"user_id": user_id, "kind": ADVICE_FORCED},
                key=advice_key(user_id, ADVICE_FORCED),
                priority=Priority.HIGH,
            )
        except QueueError as e:
            logger.error("Failed to force advice for user %s: %s", user_id, e)
            return False

        if job is None:
            return False
        self.advice_limiter.touch(user_id)
        logger.info("Forced advice %s for user %s", job.id, user_id)
        return True

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get_insights(self, user_id: str) -> Optional[InsightsRecord]:
        """Latest stored insights of a user."""
        return await self.insights_store.get(user_id)

    async def queue_status(self) -> dict[str, dict[str, Any]]:
        """Job counts of both queues.

        Raises:
            QueueError: If a queue backend cannot be inspected.
        """
        status = {}
        for queue in (self.recompute_queue, self.advice_queue):
            stats = await queue.stats()
            status[queue.name] = stats.to_dict()
        return status

    async def clear_user(self, user_id: str) -> bool:
        """Cancel a user's pending jobs and delete their insights.

        Returns:
            Whether an insights record existed.
        """
        try:
            await self.recompute_queue.remove(user_id)
            for kind in ADVICE_KINDS:
                await self.advice_queue.remove(advice_key(user_id, kind))
        except QueueError as e:
            logger.warning("Failed to cancel pending jobs for user %s: %s", user_id, e)
        try:
            self.advice_limiter.reset(user_id)
        except RedisError as e:
            logger.warning("Failed to reset advice rate limit for user %s: %s", user_id, e)
        return await self.insights_store.delete(user_id)

    # -------------------------------------------------------------------------
    # Workers
    # -------------------------------------------------------------------------

    async def run_recompute(self, user_id: str) -> InsightsRecord:
        """Recompute and store a user's insights.

        Users without activity get the default record. Every section except
        ai_advice is replaced. Afterwards advice is scheduled when the user
        has enough data and their advice is missing or outdated.

        Raises:
            StoreError: If loading or saving fails.
        """
        now = self._clock()
        activity = await self.activity_store.get(user_id)

        if activity is None:
            record = InsightsRecord.default(user_id, now)
            await self.insights_store.save(record)
            logger.info("Stored default insights for user %s without activity", user_id)
            return record

        existing = await self.insights_store.get(user_id)
        computed = compute_insights(activity, now)
        record = InsightsRecord.from_computed(
            user_id,
            computed,
            InsightsMetadata(
                confidence_pct=confidence_for(activity),
                data_point_count=activity.data_point_count,
                last_updated=now,
                last_synced_at=now,
            ),
            ai_advice=existing.ai_advice if existing else None,
        )
        await self.insights_store.save(record)
        logger.info(
            "Recomputed insights for user %s (confidence %d%%, %d data points)",
            user_id,
            record.metadata.confidence_pct,
            record.metadata.data_point_count,
        )

        if self._advice_due(record, has_sufficient_data(activity), now):
            await self.schedule_advice(user_id)
        return record

    def _advice_due(self, record: InsightsRecord, sufficient: bool, now: datetime) -> bool:
        if not sufficient:
            return False
        if record.metadata.data_point_count < self._settings.advice.min_data_points:
            return False
        if record.ai_advice is None:
            return True
        max_age = timedelta(hours=self._settings.advice.max_age_hours)
        return now - ensure_utc(record.ai_advice.generated_at) > max_age

    async def run_advice(self, user_id: str) -> None:
        """Generate advice for a user and merge it into their insights.

        Raises:
            StoreError: If loading or merging fails.
        """
        advice = await self.advice_service.generate_and_store(user_id)
        logger.info(
            "Advice for user %s stored (fallback=%s, tone=%s)",
            user_id,
            advice.is_fallback,
            advice.tone.value,
        )

    async def refresh_stale(self) -> int:
        """Schedule recomputes for insights older than the stale window.

        Returns:
            Number of recomputes scheduled.
        """
        before = self._clock() - timedelta(days=self._settings.recompute.stale_after_days)
        user_ids = await self.insights_store.list_stale(before)
        scheduled = 0
        for user_id in user_ids:
            if await self.schedule_recompute(user_id):
                scheduled += 1
        if user_ids:
            logger.info("Scheduled %d of %d stale insight refreshes", scheduled, len(user_ids))
        return scheduled

    async def _handle_recompute(self, payload: dict[str, Any]) -> None:
        await self.run_recompute(payload["user_id"])

    async def _handle_advice(self, payload: dict[str, Any]) -> None:
        await self.run_advice(payload["user_id"])

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        """Start consuming both queues in this process, if they do so."""
        await self.recompute_queue.start()
        await self.advice_queue.start()

    async def close(self) -> None:
        """Stop both queues and close the advice client."""
        await self.recompute_queue.close()
        await self.advice_queue.close()
        await self.advice_service.close()

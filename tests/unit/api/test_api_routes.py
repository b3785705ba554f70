# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the HTTP API on an in-process pipeline.

The pipeline's queues are not started, so scheduled jobs stay pending and
can be inspected.
"""

from unittest.mock import AsyncMock

import httpx
import pytest
from builders import FakeClock

from learning_insights.api.app import create_app
from learning_insights.core.config import Settings
from learning_insights.core.exceptions import InvalidActivityError, QueueError, StoreError
from learning_insights.domains.insights.factory import build_pipeline
from learning_insights.domains.insights.pipeline import InsightsPipeline


@pytest.fixture
async def pipeline(settings: Settings, clock: FakeClock):
    pipeline = build_pipeline(settings, clock=clock)
    yield pipeline
    await pipeline.close()


@pytest.fixture
async def client(pipeline: InsightsPipeline):
    app = create_app(pipeline)
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client


class TestHealth:
    """Tests for liveness and readiness."""

    async def test_health(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["uptime_seconds"] >= 0

    async def test_ready(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/ready")

        assert response.status_code == 200
        assert response.json() == {"ready": True, "checks": {"pipeline": True}}

    async def test_not_ready_without_pipeline(self) -> None:
        app = create_app()
        async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
            ready = await client.get("/ready")
            insights = await client.get("/api/v1/insights/user-1")

        assert ready.json()["ready"] is False
        assert insights.status_code == 503


class TestActivityRoutes:
    """Tests for /api/v1/activity."""

    async def test_track_video_schedules_recompute(
        self,
        client: httpx.AsyncClient,
        pipeline: InsightsPipeline,
    ) -> None:
        response = await client.post(
            "/api/v1/activity/user-1/video",
            json={"lesson_id": "v1", "total_seconds": 600, "watched_seconds": 120},
        )

        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "Video activity tracked"}
        assert await pipeline.recompute_queue.has_pending("user-1")

    async def test_track_task(self, client: httpx.AsyncClient) -> None:
        response = await client.post(
            "/api/v1/activity/user-1/task",
            json={"lesson_id": "t1", "task_kind": "reading", "score": 45},
        )

        assert response.status_code == 200
        assert response.json()["passed"] is False

    async def test_track_card(self, client: httpx.AsyncClient) -> None:
        response = await client.post(
            "/api/v1/activity/user-1/card",
            json={"card_id": "c1", "flashcard_id": "deck", "is_correct": True, "review_count": 3},
        )

        assert response.json()["mastery_level"] == "mastered"

    async def test_track_course_completion(self, client: httpx.AsyncClient) -> None:
        response = await client.post(
            "/api/v1/activity/user-1/course-access",
            json={"course_id": "c1", "is_completed": True},
        )

        assert response.json()["message"] == "Course completion tracked"

    async def test_invalid_event_is_rejected(self, client: httpx.AsyncClient) -> None:
        response = await client.post(
            "/api/v1/activity/user-1/flashcard-session",
            json={"content_id": "deck", "cards_studied": 5, "correct_answers": 9},
        )

        assert response.status_code == 422

    async def test_store_errors(self, client: httpx.AsyncClient, pipeline: InsightsPipeline) -> None:
        event = {"content_id": "deck", "cards_studied": 5, "correct_answers": 3}

        pipeline.activity_store.save = AsyncMock(side_effect=InvalidActivityError("bad record"))
        rejected = await client.post("/api/v1/activity/user-1/flashcard-session", json=event)

        pipeline.activity_store.save = AsyncMock(side_effect=StoreError("db down"))
        unavailable = await client.post("/api/v1/activity/user-1/flashcard-session", json=event)

        assert rejected.status_code == 400
        assert unavailable.status_code == 503

    async def test_summary_and_clear(self, client: httpx.AsyncClient) -> None:
        await client.post(
            "/api/v1/activity/user-1/task",
            json={"lesson_id": "t1", "score": 80, "time_spent_seconds": 60},
        )

        summary = await client.get("/api/v1/activity/user-1/summary")
        assert summary.json()["total_lessons"] == 1
        assert summary.json()["total_time_spent"] == 60

        cleared = await client.delete("/api/v1/activity/user-1")
        assert cleared.json()["message"] == "User activity cleared"

        again = await client.delete("/api/v1/activity/user-1")
        assert again.json()["message"] == "No activity to clear"


class TestInsightsRoutes:
    """Tests for /api/v1/insights."""

    async def test_missing_insights(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/api/v1/insights/user-1")

        assert response.status_code == 404

    async def test_get_insights(self, client: httpx.AsyncClient, pipeline: InsightsPipeline) -> None:
        await pipeline.run_recompute("user-1")

        response = await client.get("/api/v1/insights/user-1")

        assert response.status_code == 200
        body = response.json()
        assert body["user_id"] == "user-1"
        assert body["metadata"]["confidence_pct"] == 0
        assert body["ai_advice"] is None
        assert body["performance"]["overall_level"] == "beginner"

    async def test_force_recompute(self, client: httpx.AsyncClient, pipeline: InsightsPipeline) -> None:
        response = await client.post("/api/v1/insights/user-1/recompute")

        assert response.status_code == 202
        assert response.json() == {"user_id": "user-1", "queued": True, "message": "Recompute queued"}
        assert await pipeline.recompute_queue.has_pending("user-1")

    async def test_force_advice_once_in_flight(self, client: httpx.AsyncClient) -> None:
        first = await client.post("/api/v1/insights/user-1/advice")
        second = await client.post("/api/v1/insights/user-1/advice")

        assert first.status_code == 202
        assert first.json()["queued"] is True
        assert second.json() == {
            "user_id": "user-1",
            "queued": False,
            "message": "Advice already in progress",
        }

    async def test_queue_status(self, client: httpx.AsyncClient) -> None:
        await client.post("/api/v1/insights/user-1/recompute")

        response = await client.get("/api/v1/insights/queues")

        assert response.status_code == 200
        body = response.json()
        assert set(body) == {"insights", "advice"}
        assert body["insights"]["waiting"] == 1
        assert body["insights"]["total"] == 1

    async def test_queue_status_unavailable(self, client: httpx.AsyncClient, pipeline: InsightsPipeline) -> None:
        pipeline.queue_status = AsyncMock(side_effect=QueueError("redis down"))

        response = await client.get("/api/v1/insights/queues")

        assert response.status_code == 503

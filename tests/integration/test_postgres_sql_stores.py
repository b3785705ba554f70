# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Integration tests for the PostgreSQL activity and insights stores.

These tests require a running PostgreSQL instance.
Run with: pytest tests/integration/test_postgres_sql_stores.py -m integration -v

Prerequisites:
    - PostgreSQL reachable with the DB_* settings (default localhost:5432)
    - The configured database exists; missing tables are created
"""

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from builders import FIXED_NOW, activity_record, task_lesson

from learning_insights.core.config import Settings, clear_settings_cache
from learning_insights.domains.activity.store import SqlActivityStore
from learning_insights.domains.insights.models import (
    AIAdvice,
    ComputedInsights,
    InsightsMetadata,
    InsightsRecord,
)
from learning_insights.domains.insights.store import SqlInsightsStore
from learning_insights.infrastructure.database import (
    DatabaseError,
    close_database,
    get_sessionmaker,
    init_database,
)

# Old enough that no real row is staler
EPOCH = datetime(1990, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def settings() -> Settings:
    """Provide fresh settings for each test."""
    clear_settings_cache()
    return Settings()


@pytest.fixture
async def sessionmaker(settings: Settings):
    """Initialize and cleanup the database connection."""
    try:
        await init_database(settings)
    except (DatabaseError, OSError) as e:
        await close_database()
        pytest.skip(f"PostgreSQL is not reachable: {e}")
    yield get_sessionmaker()
    await close_database()


@pytest.fixture
def user_id() -> str:
    return f"it-{uuid.uuid4().hex[:12]}"


@pytest.mark.integration
class TestSqlActivityStore:
    """Tests for activity documents in user_activities."""

    async def test_save_and_get(self, sessionmaker, user_id: str) -> None:
        """Test that a saved record reads back equal."""
        store = SqlActivityStore(sessionmaker)
        record = activity_record(user_id, lesson_activities=[task_lesson("l1"), task_lesson("l2")])

        await store.save(record)
        try:
            loaded = await store.get(user_id)
            assert loaded == record
        finally:
            await store.delete(user_id)

    async def test_save_overwrites(self, sessionmaker, user_id: str) -> None:
        """Test that a second save replaces the document."""
        store = SqlActivityStore(sessionmaker)
        await store.save(activity_record(user_id, lesson_activities=[task_lesson("l1")]))

        await store.save(activity_record(user_id, lesson_activities=[]))
        try:
            loaded = await store.get(user_id)
            assert loaded.lesson_activities == []
        finally:
            await store.delete(user_id)

    async def test_delete(self, sessionmaker, user_id: str) -> None:
        """Test that delete reports whether a row existed."""
        store = SqlActivityStore(sessionmaker)
        await store.save(activity_record(user_id))

        assert await store.delete(user_id) is True
        assert await store.delete(user_id) is False
        assert await store.get(user_id) is None


@pytest.mark.integration
class TestSqlInsightsStore:
    """Tests for insights documents in learning_insights."""

    def make_record(self, user_id: str, updated: datetime, advice: AIAdvice | None = None) -> InsightsRecord:
        return InsightsRecord.from_computed(
            user_id,
            ComputedInsights(),
            InsightsMetadata(confidence_pct=40, data_point_count=4, last_updated=updated, last_synced_at=updated),
            ai_advice=advice,
        )

    async def test_save_keeps_stored_advice(self, sessionmaker, user_id: str) -> None:
        """Test that a recompute save does not overwrite advice."""
        store = SqlInsightsStore(sessionmaker)
        advice = AIAdvice(message="Keep going", generated_at=FIXED_NOW)
        await store.save(self.make_record(user_id, FIXED_NOW, advice))

        await store.save(self.make_record(user_id, FIXED_NOW + timedelta(minutes=5)))
        try:
            loaded = await store.get(user_id)
            assert loaded.ai_advice == advice
            assert loaded.metadata.last_updated == FIXED_NOW + timedelta(minutes=5)
            assert loaded.metadata.confidence_pct == 40
        finally:
            await store.delete(user_id)

    async def test_merge_advice(self, sessionmaker, user_id: str) -> None:
        """Test that merging touches only advice and sync time."""
        store = SqlInsightsStore(sessionmaker)
        await store.save(self.make_record(user_id, FIXED_NOW))
        advice = AIAdvice(message="Nice streak", generated_at=FIXED_NOW + timedelta(minutes=1))

        merged = await store.merge_advice(user_id, advice, FIXED_NOW + timedelta(minutes=1))
        try:
            assert merged is True
            loaded = await store.get(user_id)
            assert loaded.ai_advice == advice
            assert loaded.metadata.last_synced_at == FIXED_NOW + timedelta(minutes=1)
            assert loaded.metadata.last_updated == FIXED_NOW
        finally:
            await store.delete(user_id)

    async def test_merge_without_record(self, sessionmaker, user_id: str) -> None:
        """Test that advice for an unknown user is dropped."""
        store = SqlInsightsStore(sessionmaker)
        advice = AIAdvice(message="Hi", generated_at=FIXED_NOW)

        assert await store.merge_advice(user_id, advice, FIXED_NOW) is False
        assert await store.get(user_id) is None

    async def test_list_stale(self, sessionmaker, user_id: str) -> None:
        """Test that stale users come back oldest first."""
        store = SqlInsightsStore(sessionmaker)
        older, old, fresh = f"{user_id}-a", f"{user_id}-b", f"{user_id}-c"
        await store.save(self.make_record(older, EPOCH - timedelta(days=30)))
        await store.save(self.make_record(old, EPOCH - timedelta(days=8)))
        await store.save(self.make_record(fresh, EPOCH + timedelta(days=1)))
        try:
            assert await store.list_stale(EPOCH) == [older, old]
            assert await store.list_stale(EPOCH, limit=1) == [older]
        finally:
            for uid in (older, old, fresh):
                await store.delete(uid)

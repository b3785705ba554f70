# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Insights store: one InsightsRecord document per user.

Two writers share each record. The recompute worker replaces every section
except ``ai_advice``; the advice worker updates only ``ai_advice`` and
``metadata.last_synced_at``. Both writes are field-level, so neither can
clobber the other's result when they race.

Implementations:
- InMemoryInsightsStore: process-local dict
- SqlInsightsStore: one PostgreSQL row per user with JSONB sections
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime

from pydantic import ValidationError
from sqlalchemy import delete, select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from learning_insights.core.exceptions import StoreError
from learning_insights.domains.insights.models import (
    AIAdvice,
    ComputedInsights,
    InsightsMetadata,
    InsightsRecord,
)
from learning_insights.infrastructure.database.connection import session_scope
from learning_insights.infrastructure.database.models import LearningInsightsRow

logger = logging.getLogger(__name__)

_SECTIONS = tuple(ComputedInsights.model_fields)
_METADATA_COLUMNS = ("confidence_pct", "data_point_count", "version", "last_updated", "last_synced_at")


class InsightsStore(ABC):
    """Interface of the per-user insights document store."""

    @abstractmethod
    async def get(self, user_id: str) -> InsightsRecord | None:
        """Load a user's insights, None when never computed."""

    @abstractmethod
    async def save(self, record: InsightsRecord) -> None:
        """Create or replace every section except ai_advice.

        The stored ai_advice is kept. When the record does not exist yet,
        the record's own ai_advice is stored with it.
        """

    @abstractmethod
    async def merge_advice(self, user_id: str, advice: AIAdvice, synced_at: datetime) -> bool:
        """Update only ai_advice and last_synced_at.

        Returns:
            False when the user has no insights record.
        """

    @abstractmethod
    async def delete(self, user_id: str) -> bool:
        """Delete a user's insights. Returns whether a record existed."""

    @abstractmethod
    async def list_stale(self, before: datetime, limit: int = 500) -> list[str]:
        """User ids whose insights were last updated before the given time."""


class InMemoryInsightsStore(InsightsStore):
    """Insights store kept in a dict. Records are copied in and out."""

    def __init__(self) -> None:
        self._records: dict[str, InsightsRecord] = {}

    async def get(self, user_id: str) -> InsightsRecord | None:
        record = self._records.get(user_id)
        return record.model_copy(deep=True) if record else None

    async def save(self, record: InsightsRecord) -> None:
        existing = self._records.get(record.user_id)
        stored = record.model_copy(deep=True)
        if existing is not None:
            stored.ai_advice = existing.ai_advice
        self._records[record.user_id] = stored

    async def merge_advice(self, user_id: str, advice: AIAdvice, synced_at: datetime) -> bool:
        existing = self._records.get(user_id)
        if existing is None:
            return False
        existing.ai_advice = advice.model_copy()
        existing.metadata.last_synced_at = synced_at
        return True

    async def delete(self, user_id: str) -> bool:
        return self._records.pop(user_id, None) is not None

    async def list_stale(self, before: datetime, limit: int = 500) -> list[str]:
        stale = sorted(
            (r for r in self._records.values() if r.metadata.last_updated < before),
            key=lambda r: r.metadata.last_updated,
        )
        return [r.user_id for r in stale[:limit]]


class SqlInsightsStore(InsightsStore):
    """Insights store backed by the learning_insights table."""

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]) -> None:
        self._sessionmaker = sessionmaker

    async def get(self, user_id: str) -> InsightsRecord | None:
        async with session_scope(self._sessionmaker) as session:
            row = await session.get(LearningInsightsRow, user_id)
            if row is None:
                return None
            return _to_record(row)

    async def save(self, record: InsightsRecord) -> None:
        values = _to_values(record)
        stmt = insert(LearningInsightsRow).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[LearningInsightsRow.user_id],
            set_={
                column: stmt.excluded[column]
                for column in (*_SECTIONS, *_METADATA_COLUMNS)
            },
        )
        async with session_scope(self._sessionmaker) as session:
            await session.execute(stmt)
        logger.debug("Saved insights for user %s", record.user_id)

    async def merge_advice(self, user_id: str, advice: AIAdvice, synced_at: datetime) -> bool:
        stmt = (
            update(LearningInsightsRow)
            .where(LearningInsightsRow.user_id == user_id)
            .values(ai_advice=advice.model_dump(mode="json"), last_synced_at=synced_at)
        )
        async with session_scope(self._sessionmaker) as session:
            result = await session.execute(stmt)
        return result.rowcount > 0

    async def delete(self, user_id: str) -> bool:
        async with session_scope(self._sessionmaker) as session:
            result = await session.execute(
                delete(LearningInsightsRow).where(LearningInsightsRow.user_id == user_id)
            )
        return result.rowcount > 0

    async def list_stale(self, before: datetime, limit: int = 500) -> list[str]:
        stmt = (
            select(LearningInsightsRow.user_id)
            .where(LearningInsightsRow.last_updated < before)
            .order_by(LearningInsightsRow.last_updated)
            .limit(limit)
        )
        async with session_scope(self._sessionmaker) as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())


def _to_values(record: InsightsRecord) -> dict:
    document = record.model_dump(mode="json")
    metadata = record.metadata
    return {
        "user_id": record.user_id,
        **{section: document[section] for section in _SECTIONS},
        "ai_advice": document["ai_advice"],
        "confidence_pct": metadata.confidence_pct,
        "data_point_count": metadata.data_point_count,
        "version": metadata.version,
        "last_updated": metadata.last_updated,
        "last_synced_at": metadata.last_synced_at,
    }


def _to_record(row: LearningInsightsRow) -> InsightsRecord:
    try:
        return InsightsRecord.model_validate(
            {
                "user_id": row.user_id,
                **{section: getattr(row, section) for section in _SECTIONS},
                "ai_advice": row.ai_advice,
                "metadata": InsightsMetadata(
                    confidence_pct=row.confidence_pct,
                    data_point_count=row.data_point_count,
                    version=row.version,
                    last_updated=row.last_updated,
                    last_synced_at=row.last_synced_at,
                ),
            }
        )
    except ValidationError as e:
        raise StoreError(f"Stored insights for user {row.user_id} are invalid", e) from e

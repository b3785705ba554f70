# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Activity store: one ActivityRecord document per user.

Implementations:
- InMemoryActivityStore: process-local dict, for tests and single-process runs
- SqlActivityStore: one PostgreSQL row per user with JSONB logs

Records are validated when they cross the store boundary in either
direction, so a stored record always satisfies the ActivityRecord
invariants.
"""

import logging
from abc import ABC, abstractmethod

from pydantic import ValidationError
from sqlalchemy import delete
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from learning_insights.core.exceptions import InvalidActivityError, StoreError
from learning_insights.domains.activity.models import ActivityRecord
from learning_insights.infrastructure.database.connection import session_scope
from learning_insights.infrastructure.database.models import UserActivityRow

logger = logging.getLogger(__name__)

_LOG_FIELDS = (
    "lesson_activities",
    "flashcard_sessions",
    "card_learning",
    "course_activities",
    "daily_learning",
)


class ActivityStore(ABC):
    """Interface of the per-user activity document store."""

    @abstractmethod
    async def get(self, user_id: str) -> ActivityRecord | None:
        """Load a user's record, None when the user has no activity."""

    @abstractmethod
    async def save(self, record: ActivityRecord) -> None:
        """Create or replace a user's record."""

    @abstractmethod
    async def delete(self, user_id: str) -> bool:
        """Delete a user's record. Returns whether one existed."""


class InMemoryActivityStore(ActivityStore):
    """Activity store kept in a dict. Records are copied in and out."""

    def __init__(self) -> None:
        self._records: dict[str, ActivityRecord] = {}

    async def get(self, user_id: str) -> ActivityRecord | None:
        record = self._records.get(user_id)
        return record.model_copy(deep=True) if record else None

    async def save(self, record: ActivityRecord) -> None:
        self._records[record.user_id] = _revalidate(record)

    async def delete(self, user_id: str) -> bool:
        return self._records.pop(user_id, None) is not None


class SqlActivityStore(ActivityStore):
    """Activity store backed by the user_activities table."""

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]) -> None:
        self._sessionmaker = sessionmaker

    async def get(self, user_id: str) -> ActivityRecord | None:
        async with session_scope(self._sessionmaker) as session:
            row = await session.get(UserActivityRow, user_id)
            if row is None:
                return None
            document = {field: getattr(row, field) or [] for field in _LOG_FIELDS}

        try:
            return ActivityRecord.model_validate(
                {"user_id": user_id, "timezone": row.timezone, **document}
            )
        except ValidationError as e:
            raise StoreError(f"Stored activity for user {user_id} is invalid", e) from e

    async def save(self, record: ActivityRecord) -> None:
        record = _revalidate(record)
        values = record.model_dump(mode="json")
        stmt = insert(UserActivityRow).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[UserActivityRow.user_id],
            set_={field: stmt.excluded[field] for field in (*_LOG_FIELDS, "timezone")},
        )
        async with session_scope(self._sessionmaker) as session:
            await session.execute(stmt)
        logger.debug("Saved activity for user %s", record.user_id)

    async def delete(self, user_id: str) -> bool:
        async with session_scope(self._sessionmaker) as session:
            result = await session.execute(
                delete(UserActivityRow).where(UserActivityRow.user_id == user_id)
            )
        return result.rowcount > 0


def _revalidate(record: ActivityRecord) -> ActivityRecord:
    """Re-run validation on a record that may have been mutated in place."""
    try:
        return ActivityRecord.model_validate(record.model_dump())
    except ValidationError as e:
        raise InvalidActivityError(f"Invalid activity for user {record.user_id}", e) from e

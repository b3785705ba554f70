# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""SQLAlchemy models for the activity and insights stores.

Tables:
- user_activities: One row per user, one JSONB column per activity log
- learning_insights: One row per user, one JSONB column per insights section

Pydantic models in the domain packages are the schema of each JSONB
document; rows are converted with model_dump(mode="json") and
model_validate().
"""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from learning_insights.utils.datetime import utc_now


class Base(DeclarativeBase):
    """Declarative base for all tables."""


class UserActivityRow(Base):
    """Activity record of one user."""

    __tablename__ = "user_activities"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    timezone: Mapped[str] = mapped_column(String(64), default="UTC")
    lesson_activities: Mapped[list[dict[str, Any]]] = mapped_column(JSONB, default=list)
    flashcard_sessions: Mapped[list[dict[str, Any]]] = mapped_column(JSONB, default=list)
    card_learning: Mapped[list[dict[str, Any]]] = mapped_column(JSONB, default=list)
    course_activities: Mapped[list[dict[str, Any]]] = mapped_column(JSONB, default=list)
    daily_learning: Mapped[list[dict[str, Any]]] = mapped_column(JSONB, default=list)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )


class LearningInsightsRow(Base):
    """Insights record of one user.

    ``ai_advice`` is written only through targeted updates so that a
    concurrent recompute never overwrites it.
    """

    __tablename__ = "learning_insights"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    performance: Mapped[dict[str, Any]] = mapped_column(JSONB)
    analysis: Mapped[dict[str, Any]] = mapped_column(JSONB)
    study_patterns: Mapped[dict[str, Any]] = mapped_column(JSONB)
    recommendations: Mapped[dict[str, Any]] = mapped_column(JSONB)
    predictions: Mapped[dict[str, Any]] = mapped_column(JSONB)
    ai_advice: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONB, nullable=True)
    confidence_pct: Mapped[int] = mapped_column(Integer, default=0)
    data_point_count: Mapped[int] = mapped_column(Integer, default=0)
    version: Mapped[str] = mapped_column(String(16))
    last_updated: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    last_synced_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))

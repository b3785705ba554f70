# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Database infrastructure: async engine, sessions and table models."""

from learning_insights.infrastructure.database.connection import (
    DatabaseError,
    check_database_connection,
    close_database,
    create_engine,
    create_sessionmaker,
    create_tables,
    get_session,
    get_sessionmaker,
    init_database,
    session_scope,
)

__all__ = [
    "DatabaseError",
    "init_database",
    "close_database",
    "create_engine",
    "create_sessionmaker",
    "create_tables",
    "get_sessionmaker",
    "get_session",
    "session_scope",
    "check_database_connection",
]

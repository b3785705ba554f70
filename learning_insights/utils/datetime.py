# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""DateTime utilities for the learning insights pipeline.

All datetime operations should use these utilities so that day boundaries
are computed the same way by the activity tracker, the analytics engine and
the stores.

Design Decisions:
-----------------
1. All timestamps are stored in UTC
2. All Python datetimes are timezone-aware
3. Calendar days are derived through normalize_day() with an explicit
   timezone, never through local clock mutation

Usage:
------
    from learning_insights.utils.datetime import normalize_day, utc_now

    today = normalize_day(utc_now())
"""

from datetime import date, datetime, timedelta, timezone, tzinfo
from functools import lru_cache
from zoneinfo import ZoneInfo


def utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime.

    Returns:
        Timezone-aware datetime representing current UTC time.
    """
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime | None) -> datetime | None:
    """Ensure a datetime is timezone-aware UTC.

    Args:
        dt: A datetime object (naive or aware) or None.

    Returns:
        Timezone-aware UTC datetime or None.

    Note:
        - If dt is None, returns None
        - If dt is naive, assumes UTC and adds tzinfo
        - If dt is aware, converts to UTC
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        # Naive datetime - assume UTC
        return dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(timezone.utc)


@lru_cache(maxsize=32)
def get_timezone(name: str) -> tzinfo:
    """Resolve an IANA timezone name.

    Args:
        name: Timezone name such as "UTC" or "Europe/Istanbul".

    Returns:
        The tzinfo for the name.
    """
    if name.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(name)


def normalize_day(timestamp: datetime, tz: tzinfo = timezone.utc) -> date:
    """Map a timestamp to its calendar day in the given timezone.

    Naive timestamps are treated as UTC before conversion.

    Args:
        timestamp: Any datetime.
        tz: Timezone whose midnight defines the day boundary.

    Returns:
        The calendar date the timestamp falls on.

    Example:
        >>> normalize_day(datetime(2025, 3, 1, 23, 30, tzinfo=timezone.utc))
        datetime.date(2025, 3, 1)
    """
    aware = ensure_utc(timestamp)
    return aware.astimezone(tz).date()


def day_start(day: date, tz: tzinfo = timezone.utc) -> datetime:
    """Get the first instant of a calendar day as a UTC datetime.

    Args:
        day: Calendar date.
        tz: Timezone whose midnight defines the day boundary.

    Returns:
        Timezone-aware UTC datetime of the day's midnight.
    """
    return datetime(day.year, day.month, day.day, tzinfo=tz).astimezone(timezone.utc)


def days_between(earlier: date, later: date) -> int:
    """Number of whole calendar days from earlier to later."""
    return (later - earlier).days


def days_ago(days: int, now: datetime | None = None) -> datetime:
    """Get a datetime N days before now.

    Args:
        days: Number of days to go back.
        now: Reference time, defaults to the current UTC time.

    Returns:
        Timezone-aware UTC datetime.
    """
    return (now or utc_now()) - timedelta(days=days)


def format_iso(dt: datetime | None) -> str | None:
    """Format a datetime as an ISO 8601 string in UTC."""
    if dt is None:
        return None
    return ensure_utc(dt).isoformat()

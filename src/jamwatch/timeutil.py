"""UTC/local time helpers.

Stored timestamps are always UTC. Time-of-day and calendar-day questions
are answered in the configured local zone.
"""

from __future__ import annotations

from datetime import UTC, date, datetime, time, timedelta

import pytz

from jamwatch.config import settings


def utcnow() -> datetime:
    return datetime.now(UTC)


def to_utc(value: datetime) -> datetime:
    """Normalize to an aware UTC datetime (naive values are taken as UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def local_zone() -> pytz.BaseTzInfo:
    return pytz.timezone(settings.local_timezone)


def to_local(value: datetime) -> datetime:
    return to_utc(value).astimezone(local_zone())


def local_datetime(day: date, at: time) -> datetime:
    """Aware UTC instant for a local wall-clock time on a local calendar day."""
    return local_zone().localize(datetime.combine(day, at)).astimezone(UTC)


def local_midnight(day: date) -> datetime:
    return local_datetime(day, time(0, 0))


def floor_to_minutes(value: datetime, minutes: int) -> datetime:
    """Floor to a multiple of `minutes` past the local hour."""
    local = to_local(value).replace(second=0, microsecond=0)
    local = local - timedelta(minutes=local.minute % minutes)
    return local.astimezone(UTC)

"""Duplicate suppression for client retry storms."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from jamwatch.domain import Direction, Street, TrafficStatus
from jamwatch.models import TrafficReport
from jamwatch.timeutil import to_utc


def has_recent_duplicate(
    session: Session,
    *,
    fingerprint: str,
    street: Street,
    direction: Direction,
    status: TrafficStatus,
    since: datetime,
) -> bool:
    """True if an identical report was stored at or after `since`."""
    stmt = (
        select(TrafficReport.id)
        .where(
            TrafficReport.user_fingerprint == fingerprint,
            TrafficReport.street == street.value,
            TrafficReport.direction == direction.value,
            TrafficReport.status == status.value,
            TrafficReport.reported_at >= to_utc(since),
        )
        .limit(1)
    )
    return session.scalar(stmt) is not None

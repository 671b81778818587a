"""Append-only report storage and read queries."""

from __future__ import annotations

from collections import Counter
from datetime import datetime
from typing import Any

from sqlalchemy import Select, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from jamwatch.db import SessionFactory, get_db
from jamwatch.domain import ChatMessage, Direction, IncidentType, Observation, Street, TrafficStatus
from jamwatch.errors import StorageUnavailable
from jamwatch.models import IncidentReport, PageVisit, StreetChatMessage, TrafficReport
from jamwatch.timeutil import to_utc


def add_traffic_report(
    session: Session,
    *,
    street: Street,
    direction: Direction,
    status: TrafficStatus,
    fingerprint: str,
    reported_at: datetime,
    speed: float | None = None,
    auto_submitted: bool = False,
) -> TrafficReport:
    report = TrafficReport(
        street=street.value,
        direction=direction.value,
        status=status.value,
        user_fingerprint=fingerprint,
        reported_at=to_utc(reported_at),
        speed=speed,
        auto_submitted=auto_submitted,
    )
    session.add(report)
    session.flush()
    return report


def add_incident_report(
    session: Session,
    *,
    street: Street,
    direction: Direction,
    incident_type: IncidentType,
    fingerprint: str,
    reported_at: datetime,
) -> IncidentReport:
    incident = IncidentReport(
        street=street.value,
        direction=direction.value,
        incident_type=incident_type.value,
        user_fingerprint=fingerprint,
        reported_at=to_utc(reported_at),
    )
    session.add(incident)
    session.flush()
    return incident


def add_page_visit(session: Session, *, fingerprint: str, visited_at: datetime) -> PageVisit:
    visit = PageVisit(user_fingerprint=fingerprint, visited_at=to_utc(visited_at))
    session.add(visit)
    session.flush()
    return visit


def add_chat_message(
    session: Session, *, street: Street, message: str, fingerprint: str, created_at: datetime
) -> StreetChatMessage:
    row = StreetChatMessage(
        street=street.value,
        message=message,
        user_fingerprint=fingerprint,
        created_at=to_utc(created_at),
    )
    session.add(row)
    session.flush()
    return row


class ReportStore:
    """Read access to the report history. Never mutates rows.

    Every read raises StorageUnavailable when the database cannot answer.
    """

    def __init__(self, session_factory: SessionFactory | None = None) -> None:
        self._session_factory = session_factory or get_db

    def observations(self, street: Street, direction: Direction, start: datetime, end: datetime) -> list[Observation]:
        """Reports for street+direction with reported_at in [start, end), oldest first."""
        stmt = (
            select(TrafficReport.status, TrafficReport.reported_at)
            .where(
                TrafficReport.street == street.value,
                TrafficReport.direction == direction.value,
                TrafficReport.reported_at >= to_utc(start),
                TrafficReport.reported_at < to_utc(end),
            )
            .order_by(TrafficReport.reported_at)
        )
        rows = self._fetch(stmt)
        return [Observation(status=TrafficStatus(status), reported_at=to_utc(at)) for status, at in rows]

    def incident_counts(self, street: Street, since: datetime) -> dict[IncidentType, int]:
        stmt = (
            select(IncidentReport.incident_type, func.count())
            .where(IncidentReport.street == street.value, IncidentReport.reported_at >= to_utc(since))
            .group_by(IncidentReport.incident_type)
        )
        counts: Counter[IncidentType] = Counter()
        for incident_type, count in self._fetch(stmt):
            counts[IncidentType(incident_type)] += count
        return dict(counts)

    def count_traffic_reports(self, street: Street | None = None) -> int:
        stmt = select(func.count()).select_from(TrafficReport)
        if street is not None:
            stmt = stmt.where(TrafficReport.street == street.value)
        rows = self._fetch(stmt)
        return int(rows[0][0] or 0)

    def chat_messages(self, street: Street, limit: int = 20) -> list[ChatMessage]:
        """The newest `limit` messages of a street, oldest first."""
        stmt = (
            select(StreetChatMessage.id, StreetChatMessage.message, StreetChatMessage.created_at)
            .where(StreetChatMessage.street == street.value)
            .order_by(StreetChatMessage.created_at.desc())
            .limit(limit)
        )
        rows = self._fetch(stmt)
        return [
            ChatMessage(id=message_id, street=street, message=message, created_at=to_utc(at))
            for message_id, message, at in reversed(rows)
        ]

    def _fetch(self, stmt: Select[Any]) -> list[Any]:
        try:
            with self._session_factory() as session:
                return list(session.execute(stmt).all())
        except SQLAlchemyError as exc:
            raise StorageUnavailable("report read failed") from exc

"""SQLAlchemy ORM models."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import Boolean, DateTime, Float, Index, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import func


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class TrafficReport(Base):
    """Immutable congestion observation for one street and direction."""

    __tablename__ = "traffic_reports"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    street: Mapped[str] = mapped_column(String(100), nullable=False)
    direction: Mapped[str] = mapped_column(String(20), nullable=False)  # to_center, from_center
    status: Mapped[str] = mapped_column(String(20), nullable=False)  # stoi, toczy_sie, jedzie
    user_fingerprint: Mapped[str] = mapped_column(String(100), nullable=False)
    reported_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    speed: Mapped[float | None] = mapped_column(Float)  # km/h, probe reports only
    auto_submitted: Mapped[bool] = mapped_column(Boolean, default=False)

    __table_args__ = (
        Index("ix_traffic_reports_street_direction_reported_at", "street", "direction", "reported_at"),
        Index("ix_traffic_reports_fingerprint_reported_at", "user_fingerprint", "reported_at"),
    )


class IncidentReport(Base):
    """Immutable incident observation (accident, roadworks, ...)."""

    __tablename__ = "incident_reports"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    street: Mapped[str] = mapped_column(String(100), nullable=False)
    direction: Mapped[str] = mapped_column(String(20), nullable=False)
    incident_type: Mapped[str] = mapped_column(String(50), nullable=False)
    user_fingerprint: Mapped[str] = mapped_column(String(100), nullable=False)
    reported_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (Index("ix_incident_reports_street_reported_at", "street", "reported_at"),)


class RateLimitRecord(Base):
    """One admission slot of a rate-limited (identifier, action kind) pair.

    A pair owns at most `threshold` slots. A slot is free once its
    last_action_at falls out of the window; claiming it is an atomic
    insert (unique constraint) or a compare-and-swap update.
    """

    __tablename__ = "rate_limits"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    identifier: Mapped[str] = mapped_column(String(300), nullable=False)
    action_kind: Mapped[str] = mapped_column(String(50), nullable=False)
    slot: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    window_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    last_action_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __table_args__ = (
        UniqueConstraint("identifier", "action_kind", "slot"),
        Index("ix_rate_limits_last_action_at", "last_action_at"),
    )


class PageVisit(Base):
    """Visit counter, at most one row per fingerprint per hour."""

    __tablename__ = "page_visits"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    user_fingerprint: Mapped[str] = mapped_column(String(100), nullable=False)
    visited_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class NotificationOutbox(Base):
    """Pending incident notifications, delivered at least once by the outbox worker."""

    __tablename__ = "notification_outbox"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    topic: Mapped[str] = mapped_column(String(200), nullable=False)  # incidents_<street>
    message: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="pending")  # pending/sending/delivered/skipped/failed
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    last_error: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    claimed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    __table_args__ = (Index("ix_notification_outbox_status", "status"),)


class StreetChatMessage(Base):
    """Short free-text message posted to a street's chat, stored HTML-escaped."""

    __tablename__ = "street_chat_messages"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    street: Mapped[str] = mapped_column(String(100), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    user_fingerprint: Mapped[str] = mapped_column(String(100), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (Index("ix_street_chat_messages_street_created_at", "street", "created_at"),)

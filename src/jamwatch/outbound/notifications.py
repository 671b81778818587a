"""Incident notification outbox and channel fan-out."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Protocol
from uuid import UUID

import httpx
import structlog
from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

from jamwatch.config import settings
from jamwatch.db import SessionFactory, get_db
from jamwatch.domain import Direction, IncidentType, Street
from jamwatch.errors import UpstreamError
from jamwatch.models import NotificationOutbox
from jamwatch.outbound.http_client import post_json
from jamwatch.timeutil import to_utc, utcnow

logger = structlog.get_logger()


@dataclass(frozen=True)
class IncidentNotification:
    topic: str
    message: str

    @classmethod
    def for_incident(cls, street: Street, direction: Direction, incident_type: IncidentType) -> IncidentNotification:
        return cls(
            topic=f"incidents_{street.value}",
            message=f"{incident_type.value} zgłoszony na {street.value} ({direction.label})",
        )


class NotificationChannel(Protocol):
    name: str

    def send(self, payload: IncidentNotification) -> dict[str, Any]:
        """Send a notification and return a structured result."""


class WebhookNotificationChannel:
    """Hands the message to the push service that owns subscriber fan-out."""

    name = "webhook"

    def __init__(self, url: str | None = None, transport: httpx.BaseTransport | None = None) -> None:
        self._url = url or settings.notify_webhook_url
        self._transport = transport

    def send(self, payload: IncidentNotification) -> dict[str, Any]:
        if not settings.notify_webhook:
            return {"ok": False, "error": "disabled"}
        if not self._url:
            return {"ok": False, "error": "webhook_url_missing"}
        try:
            post_json(self._url, {"street": payload.topic, "message": payload.message}, transport=self._transport)
        except UpstreamError as exc:
            return {"ok": False, "error": str(exc)}
        return {"ok": True, "error": None}


class TelegramNotificationChannel:
    name = "telegram"

    def __init__(self, transport: httpx.BaseTransport | None = None) -> None:
        self._transport = transport

    def send(self, payload: IncidentNotification) -> dict[str, Any]:
        if not settings.notify_telegram:
            return {"ok": False, "error": "disabled"}
        token = settings.telegram_bot_token.get_secret_value() if settings.telegram_bot_token else None
        chat_id = settings.telegram_chat_id
        if not token or not chat_id:
            return {"ok": False, "error": "telegram_config_missing"}
        try:
            response = post_json(
                f"https://api.telegram.org/bot{token}/sendMessage",
                {"chat_id": chat_id, "text": payload.message, "disable_web_page_preview": True},
                transport=self._transport,
            )
        except UpstreamError as exc:
            return {"ok": False, "error": str(exc)}
        data = response.json()
        if not data.get("ok"):
            return {"ok": False, "error": str(data.get("description") or "telegram_error")}
        return {"ok": True, "error": None}


def default_channels() -> list[NotificationChannel]:
    return [WebhookNotificationChannel(), TelegramNotificationChannel()]


def enqueue_notification(session: Session, payload: IncidentNotification) -> NotificationOutbox:
    """Queue a notification in the caller's transaction."""
    row = NotificationOutbox(topic=payload.topic, message=payload.message, status="pending", attempts=0)
    session.add(row)
    session.flush()
    return row


def fan_out(payload: IncidentNotification, channels: Iterable[NotificationChannel]) -> dict[str, Any]:
    """Send through every channel; a failing channel never stops the others."""
    results: dict[str, Any] = {}
    delivered = False
    enabled = False

    for channel in channels:
        try:
            result = channel.send(payload)
        except Exception as exc:
            logger.exception("Notification channel crashed", channel=channel.name)
            result = {"ok": False, "error": str(exc)}
        results[channel.name] = result
        if result.get("error") != "disabled":
            enabled = True
        if result.get("ok"):
            delivered = True

    results["delivered"] = delivered
    results["enabled"] = enabled
    return results


@dataclass(frozen=True)
class ClaimedNotification:
    id: UUID
    attempts: int
    payload: IncidentNotification


def claim_pending(
    session_factory: SessionFactory,
    *,
    ids: Iterable[UUID] | None = None,
    limit: int = 100,
    now: datetime | None = None,
) -> list[ClaimedNotification]:
    """Mark deliverable rows as `sending` and commit before anything goes out.

    Rows stuck in `sending` longer than the claim timeout (a worker died
    mid-delivery) are claimable again.
    """
    now = to_utc(now or utcnow())
    stale_before = now - timedelta(seconds=settings.notification_claim_timeout_seconds)

    with session_factory() as session:
        stmt = select(NotificationOutbox).where(
            or_(
                NotificationOutbox.status == "pending",
                and_(NotificationOutbox.status == "sending", NotificationOutbox.claimed_at < stale_before),
            )
        )
        if ids is not None:
            stmt = stmt.where(NotificationOutbox.id.in_(list(ids)))
        stmt = stmt.order_by(NotificationOutbox.created_at).limit(limit).with_for_update(skip_locked=True)

        claimed: list[ClaimedNotification] = []
        for row in session.scalars(stmt).all():
            row.status = "sending"
            row.claimed_at = now
            row.attempts += 1
            claimed.append(ClaimedNotification(row.id, row.attempts, IncidentNotification(row.topic, row.message)))
    return claimed


def deliver_pending(
    session_factory: SessionFactory | None = None,
    *,
    ids: Iterable[UUID] | None = None,
    channels: list[NotificationChannel] | None = None,
    limit: int = 100,
    max_attempts: int | None = None,
    now: datetime | None = None,
) -> dict[str, int]:
    """Deliver queued notifications once each; undelivered rows stay pending until max_attempts.

    Rows are claimed in one short transaction, sent with no transaction
    open, and each outcome is recorded in its own transaction.
    """
    session_factory = session_factory or get_db
    channels = default_channels() if channels is None else channels
    max_attempts = max_attempts or settings.notification_max_attempts
    stats = {"processed": 0, "delivered": 0, "skipped": 0, "failed": 0, "pending": 0}

    for claim in claim_pending(session_factory, ids=ids, limit=limit, now=now):
        stats["processed"] += 1
        results = fan_out(claim.payload, channels)

        with session_factory() as session:
            row = session.get(NotificationOutbox, claim.id)
            if row is None:
                continue

            if results["delivered"]:
                row.status = "delivered"
                row.delivered_at = now or utcnow()
                row.last_error = None
                stats["delivered"] += 1
                logger.info("Notification delivered", topic=row.topic, attempts=claim.attempts)
            elif not results["enabled"]:
                row.status = "skipped"
                stats["skipped"] += 1
            else:
                row.last_error = "; ".join(
                    f"{name}: {result.get('error')}"
                    for name, result in results.items()
                    if isinstance(result, dict) and result.get("error") not in (None, "disabled")
                )
                if claim.attempts >= max_attempts:
                    row.status = "failed"
                    stats["failed"] += 1
                else:
                    row.status = "pending"
                    stats["pending"] += 1
                logger.warning("Notification failed", topic=row.topic, attempts=claim.attempts, error=row.last_error)

    return stats

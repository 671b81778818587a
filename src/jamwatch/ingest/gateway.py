"""Validated, deduplicated and rate-limited write path for client reports."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

import structlog
from markupsafe import escape
from sqlalchemy.exc import SQLAlchemyError

from jamwatch.config import settings
from jamwatch.db import SessionFactory, get_db
from jamwatch.errors import RateLimited, StorageUnavailable
from jamwatch.ingest.dedupe import has_recent_duplicate
from jamwatch.ingest.schemas import (
    ChatSubmission,
    IncidentSubmission,
    ReportSubmission,
    VisitSubmission,
    parse_submission,
)
from jamwatch.limits.policy import ActionKind, incident_identifier, ip_identifier, report_identifier
from jamwatch.limits.rate_limit import RateLimiter
from jamwatch.outbound.notifications import IncidentNotification, enqueue_notification
from jamwatch.storage.reports import add_chat_message, add_incident_report, add_page_visit, add_traffic_report
from jamwatch.timeutil import to_utc, utcnow

logger = structlog.get_logger()


@dataclass(frozen=True)
class SubmissionResult:
    """Outcome of a report submission.

    `accepted` is what the client sees and is always True; `stored` and
    `reason` are for logs and tests only.
    """

    accepted: bool
    stored: bool
    reason: str | None = None


@dataclass(frozen=True)
class IncidentResult:
    accepted: bool
    incident_id: UUID
    notification_id: UUID


@dataclass(frozen=True)
class ChatResult:
    message_id: UUID
    message: str


class IngestionGateway:
    def __init__(
        self,
        session_factory: SessionFactory | None = None,
        limiter: RateLimiter | None = None,
        *,
        clock: Callable[[], datetime] = utcnow,
        duplicate_window: timedelta | None = None,
    ) -> None:
        self._session_factory = session_factory or get_db
        self._limiter = limiter or RateLimiter(self._session_factory, clock=clock)
        self._clock = clock
        self._duplicate_window = duplicate_window or timedelta(seconds=settings.duplicate_window_seconds)

    def submit_report(
        self,
        street: Any,
        status: Any,
        direction: Any,
        fingerprint: str,
        speed: float | None = None,
        *,
        auto_submitted: bool = False,
    ) -> SubmissionResult:
        submission = parse_submission(
            ReportSubmission,
            {
                "street": street,
                "status": status,
                "direction": direction,
                "userFingerprint": fingerprint,
                "speed": speed,
                "isAutoSubmit": auto_submitted,
            },
        )
        return self.submit(submission)

    def submit(self, submission: ReportSubmission) -> SubmissionResult:
        """Store a validated report unless it is a duplicate or over the limit.

        The client always gets accepted=True so the limiter cannot be probed.
        """
        now = to_utc(self._clock())
        log = logger.bind(
            street=submission.street.value,
            direction=submission.direction.value,
            fingerprint=submission.user_fingerprint,
        )

        try:
            with self._session_factory() as session:
                duplicate = has_recent_duplicate(
                    session,
                    fingerprint=submission.user_fingerprint,
                    street=submission.street,
                    direction=submission.direction,
                    status=submission.status,
                    since=now - self._duplicate_window,
                )
        except SQLAlchemyError as exc:
            raise StorageUnavailable("duplicate check failed") from exc

        if duplicate:
            log.info("Duplicate report suppressed", status=submission.status.value)
            return SubmissionResult(accepted=True, stored=False, reason="duplicate")

        claimed: list[tuple[str, ActionKind]] = []
        if not submission.is_auto_submit:
            identifier = report_identifier(submission.user_fingerprint, submission.street, submission.direction)
            # RateLimiter.check fails open when its store is unreachable.
            if not self._limiter.check(identifier, ActionKind.REPORT_SUBMIT, now=now):
                log.info("Report rate limited")
                return SubmissionResult(accepted=True, stored=False, reason="rate_limited")
            claimed.append((identifier, ActionKind.REPORT_SUBMIT))

        try:
            with self._session_factory() as session:
                add_traffic_report(
                    session,
                    street=submission.street,
                    direction=submission.direction,
                    status=submission.status,
                    fingerprint=submission.user_fingerprint,
                    reported_at=now,
                    speed=submission.speed,
                    auto_submitted=submission.is_auto_submit,
                )
        except SQLAlchemyError as exc:
            log.error("Report write failed", error=str(exc))
            self._release(claimed, now)
            raise StorageUnavailable("report write failed") from exc

        log.info("Report stored", status=submission.status.value, speed=submission.speed)
        return SubmissionResult(accepted=True, stored=True)

    def submit_incident(
        self,
        street: Any,
        incident_type: Any,
        direction: Any,
        fingerprint: str,
        *,
        notify: Callable[[IncidentResult], None] | None = None,
    ) -> IncidentResult:
        submission = parse_submission(
            IncidentSubmission,
            {
                "street": street,
                "incidentType": incident_type,
                "direction": direction,
                "userFingerprint": fingerprint,
            },
        )
        return self.submit_incident_payload(submission, notify=notify)

    def submit_incident_payload(
        self,
        submission: IncidentSubmission,
        *,
        notify: Callable[[IncidentResult], None] | None = None,
    ) -> IncidentResult:
        """Store an incident or raise RateLimited.

        The per-type gate runs first so a rejected repeat never spends the
        fingerprint's global budget. If the global gate rejects, the
        per-type slot is handed back. `notify` runs after the commit and
        may not fail the call.
        """
        now = to_utc(self._clock())
        fingerprint = submission.user_fingerprint
        log = logger.bind(
            street=submission.street.value,
            incident_type=submission.incident_type.value,
            fingerprint=fingerprint,
        )

        per_type_id = incident_identifier(fingerprint, submission.street, submission.incident_type)
        if not self._limiter.check(per_type_id, ActionKind.INCIDENT_SUBMIT, now=now):
            log.info("Incident rate limited", gate=ActionKind.INCIDENT_SUBMIT.value)
            policy = self._limiter.policy(ActionKind.INCIDENT_SUBMIT)
            raise RateLimited(ActionKind.INCIDENT_SUBMIT.value, policy.message)

        if not self._limiter.check(fingerprint, ActionKind.INCIDENT_SUBMIT_GLOBAL, now=now):
            self._limiter.refund(per_type_id, ActionKind.INCIDENT_SUBMIT, now)
            log.info("Incident rate limited", gate=ActionKind.INCIDENT_SUBMIT_GLOBAL.value)
            policy = self._limiter.policy(ActionKind.INCIDENT_SUBMIT_GLOBAL)
            raise RateLimited(ActionKind.INCIDENT_SUBMIT_GLOBAL.value, policy.message)

        notification = IncidentNotification.for_incident(submission.street, submission.direction, submission.incident_type)
        try:
            with self._session_factory() as session:
                incident = add_incident_report(
                    session,
                    street=submission.street,
                    direction=submission.direction,
                    incident_type=submission.incident_type,
                    fingerprint=fingerprint,
                    reported_at=now,
                )
                outbox = enqueue_notification(session, notification)
                result = IncidentResult(accepted=True, incident_id=incident.id, notification_id=outbox.id)
        except SQLAlchemyError as exc:
            log.error("Incident write failed", error=str(exc))
            self._release(
                [(per_type_id, ActionKind.INCIDENT_SUBMIT), (fingerprint, ActionKind.INCIDENT_SUBMIT_GLOBAL)],
                now,
            )
            raise StorageUnavailable("incident write failed") from exc

        log.info("Incident stored", incident_id=str(result.incident_id))

        if notify is not None:
            try:
                notify(result)
            except Exception:
                # The outbox row is committed; the next dispatch run retries it.
                log.exception("Incident notification dispatch failed")

        return result

    def record_visit(self, fingerprint: str) -> bool:
        """Count a page visit at most once per fingerprint per hour."""
        submission = parse_submission(VisitSubmission, {"userFingerprint": fingerprint})
        now = to_utc(self._clock())
        if not self._limiter.check(submission.user_fingerprint, ActionKind.PAGE_VISIT, now=now):
            return False
        try:
            with self._session_factory() as session:
                add_page_visit(session, fingerprint=submission.user_fingerprint, visited_at=now)
        except SQLAlchemyError as exc:
            self._release([(submission.user_fingerprint, ActionKind.PAGE_VISIT)], now)
            raise StorageUnavailable("visit write failed") from exc
        return True

    def submit_chat_message(self, street: Any, message: str, fingerprint: str, *, client_ip: str) -> ChatResult:
        submission = parse_submission(
            ChatSubmission,
            {"street": street, "message": message, "userFingerprint": fingerprint},
        )
        return self.submit_chat_payload(submission, client_ip=client_ip)

    def submit_chat_payload(self, submission: ChatSubmission, *, client_ip: str) -> ChatResult:
        """Store an HTML-escaped chat message or raise RateLimited (per source IP)."""
        now = to_utc(self._clock())
        identifier = ip_identifier(client_ip)
        log = logger.bind(street=submission.street.value, fingerprint=submission.user_fingerprint)

        if not self._limiter.check(identifier, ActionKind.CHAT_MESSAGE, now=now):
            log.info("Chat message rate limited")
            raise RateLimited(ActionKind.CHAT_MESSAGE.value, self._limiter.policy(ActionKind.CHAT_MESSAGE).message)

        escaped = str(escape(submission.message))
        try:
            with self._session_factory() as session:
                row = add_chat_message(
                    session,
                    street=submission.street,
                    message=escaped,
                    fingerprint=submission.user_fingerprint,
                    created_at=now,
                )
                result = ChatResult(message_id=row.id, message=row.message)
        except SQLAlchemyError as exc:
            log.error("Chat message write failed", error=str(exc))
            self._release([(identifier, ActionKind.CHAT_MESSAGE)], now)
            raise StorageUnavailable("chat message write failed") from exc

        log.info("Chat message stored", message_id=str(result.message_id))
        return result

    def _release(self, claimed: list[tuple[str, ActionKind]], acquired_at: datetime) -> None:
        """Hand back limiter slots taken for a write that did not happen."""
        for identifier, kind in claimed:
            self._limiter.refund(identifier, kind, acquired_at)

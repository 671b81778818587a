"""Sliding-window rate limiting backed by the rate_limits table."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta

import structlog
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from jamwatch.config import settings
from jamwatch.db import SessionFactory, get_db
from jamwatch.limits.policy import POLICIES, ActionKind, LimitPolicy
from jamwatch.models import RateLimitRecord
from jamwatch.timeutil import to_utc, utcnow

logger = structlog.get_logger()


class RateLimiter:
    """Admit at most `threshold` actions per (identifier, kind) inside any window.

    Each pair owns `threshold` slot rows. Admission claims a slot that is
    missing (INSERT, serialized by the unique constraint) or expired
    (UPDATE guarded on the last_action_at we observed). Two callers racing
    for the last slot cannot both win: the loser sees an IntegrityError or
    a zero rowcount. Rejected attempts write nothing.
    """

    def __init__(
        self,
        session_factory: SessionFactory | None = None,
        *,
        policies: dict[ActionKind, LimitPolicy] | None = None,
        fail_open: bool | None = None,
        max_attempts: int | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_factory = session_factory or get_db
        self._policies = policies or POLICIES
        self._fail_open = settings.rate_limit_fail_open if fail_open is None else fail_open
        self._max_attempts = max_attempts or settings.rate_limit_max_attempts
        self._clock = clock

    def policy(self, kind: ActionKind) -> LimitPolicy:
        return self._policies[kind]

    def check(self, identifier: str, kind: ActionKind, *, now: datetime | None = None) -> bool:
        """Record the attempt and return True if it is within the threshold."""
        policy = self._policies[kind]
        now = to_utc(now or self._clock())

        for attempt in range(1, self._max_attempts + 1):
            try:
                with self._session_factory() as session:
                    return self._claim_slot(session, identifier, kind, policy, now)
            except IntegrityError:
                logger.info(
                    "Rate limit slot contended, retrying",
                    identifier=identifier,
                    action_kind=kind.value,
                    attempt=attempt,
                )
            except SQLAlchemyError as exc:
                logger.warning(
                    "Rate limit store unavailable, failing open"
                    if self._fail_open
                    else "Rate limit store unavailable, failing closed",
                    identifier=identifier,
                    action_kind=kind.value,
                    error=str(exc),
                )
                return self._fail_open

        logger.warning("Rate limit contention unresolved", identifier=identifier, action_kind=kind.value)
        return False

    def refund(self, identifier: str, kind: ActionKind, acquired_at: datetime) -> bool:
        """Release a slot claimed at `acquired_at` by an action that was later rejected."""
        policy = self._policies[kind]
        acquired_at = to_utc(acquired_at)
        expired = acquired_at - policy.window - timedelta(seconds=1)
        try:
            with self._session_factory() as session:
                result = session.execute(
                    update(RateLimitRecord)
                    .where(
                        RateLimitRecord.identifier == identifier,
                        RateLimitRecord.action_kind == kind.value,
                        RateLimitRecord.last_action_at == acquired_at,
                    )
                    .values(last_action_at=expired, count=RateLimitRecord.count - 1)
                    .execution_options(synchronize_session=False)
                )
                return result.rowcount > 0
        except SQLAlchemyError as exc:
            logger.warning("Rate limit refund failed", identifier=identifier, action_kind=kind.value, error=str(exc))
            return False

    def prune(self, before: datetime) -> int:
        """Delete slots whose last action predates `before`."""
        with self._session_factory() as session:
            result = session.execute(
                delete(RateLimitRecord)
                .where(RateLimitRecord.last_action_at < to_utc(before))
                .execution_options(synchronize_session=False)
            )
            return result.rowcount or 0

    def _load_slots(self, session: Session, identifier: str, kind: ActionKind) -> list[RateLimitRecord]:
        stmt = select(RateLimitRecord).where(
            RateLimitRecord.identifier == identifier,
            RateLimitRecord.action_kind == kind.value,
        )
        return list(session.scalars(stmt))

    def _claim_slot(
        self,
        session: Session,
        identifier: str,
        kind: ActionKind,
        policy: LimitPolicy,
        now: datetime,
    ) -> bool:
        cutoff = now - policy.window
        by_slot = {record.slot: record for record in self._load_slots(session, identifier, kind)}

        for slot in range(policy.threshold):
            record = by_slot.get(slot)
            if record is None:
                session.add(
                    RateLimitRecord(
                        identifier=identifier,
                        action_kind=kind.value,
                        slot=slot,
                        window_start=now,
                        last_action_at=now,
                        count=1,
                    )
                )
                session.flush()
                return True

            observed = record.last_action_at
            if to_utc(observed) >= cutoff:
                continue

            result = session.execute(
                update(RateLimitRecord)
                .where(RateLimitRecord.id == record.id, RateLimitRecord.last_action_at == observed)
                .values(window_start=now, last_action_at=now, count=RateLimitRecord.count + 1)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                return True

        logger.debug("Rate limit threshold reached", identifier=identifier, action_kind=kind.value)
        return False

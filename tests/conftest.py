"""Pytest fixtures for jamwatch tests."""

import os
from collections.abc import Callable, Generator
from contextlib import contextmanager
from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from jamwatch.db import SessionFactory, session_scope_factory
from jamwatch.domain import Direction, Street, TrafficStatus
from jamwatch.models import Base
from jamwatch.storage.reports import ReportStore, add_traffic_report

# Test database URL - in-memory SQLite unless overridden
TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL", "sqlite+pysqlite:///:memory:")


class FakeClock:
    """Settable clock passed wherever production code takes `clock=`."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def engine() -> Generator[Engine, None, None]:
    """Fresh schema per test."""
    if TEST_DATABASE_URL.startswith("sqlite"):
        engine = create_engine(
            TEST_DATABASE_URL,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        engine = create_engine(TEST_DATABASE_URL)
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine) -> SessionFactory:
    return session_scope_factory(sessionmaker(bind=engine, autoflush=False, expire_on_commit=False))


@pytest.fixture
def broken_session_factory() -> SessionFactory:
    """Session factory whose store is unreachable."""

    @contextmanager
    def scope():
        raise OperationalError("SELECT 1", {}, Exception("database is unreachable"))
        yield  # pragma: no cover

    return scope


@pytest.fixture
def clock() -> FakeClock:
    # Wednesday morning, Warsaw summer time
    return FakeClock(datetime(2026, 10, 14, 6, 0, tzinfo=UTC))


@pytest.fixture
def store(session_factory) -> ReportStore:
    return ReportStore(session_factory)


@pytest.fixture
def add_reports(session_factory) -> Callable[..., None]:
    """Insert traffic reports directly, bypassing the gateway."""

    def _add(
        reports: list[tuple[TrafficStatus, datetime]],
        street: Street = Street.BOROWSKA,
        direction: Direction = Direction.TO_CENTER,
    ) -> None:
        with session_factory() as session:
            for index, (status, reported_at) in enumerate(reports):
                add_traffic_report(
                    session,
                    street=street,
                    direction=direction,
                    status=status,
                    fingerprint=f"seed-{index}",
                    reported_at=reported_at,
                )

    return _add

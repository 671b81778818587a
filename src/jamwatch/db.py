"""Database connection and session management."""

from collections.abc import Callable, Generator
from contextlib import AbstractContextManager, contextmanager
from typing import Any

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from jamwatch.config import settings

SessionFactory = Callable[[], AbstractContextManager[Session]]


def engine_options(database_url: str) -> dict[str, Any]:
    if database_url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True, "pool_size": 5, "max_overflow": 10}


engine = create_engine(settings.database_url, **engine_options(settings.database_url))

SessionLocal = sessionmaker(autoflush=False, expire_on_commit=False, bind=engine)


def session_scope_factory(maker: sessionmaker[Session]) -> SessionFactory:
    """Build a get_db-style factory around an arbitrary sessionmaker."""

    @contextmanager
    def scope() -> Generator[Session, None, None]:
        session = maker()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    return scope


get_db: SessionFactory = session_scope_factory(SessionLocal)


def init_db(bind: Engine | None = None) -> None:
    """Create all tables (local runs; production uses Alembic)."""
    from jamwatch.models import Base

    Base.metadata.create_all(bind or engine)

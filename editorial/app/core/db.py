"""SQLAlchemy engine and session helpers shared by the API, workers and scripts."""
from __future__ import annotations

from contextlib import contextmanager
from typing import Generator, Iterator

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from .config import settings


def create_db_engine(url: str | None = None) -> Engine:
    """Create an engine for ``url``, defaulting to the configured database."""

    return create_engine(url or settings.DATABASE_URL, pool_pre_ping=True, future=True)


ENGINE: Engine = create_db_engine()
SessionLocal = sessionmaker[
    Session
](bind=ENGINE, autoflush=False, autocommit=False, expire_on_commit=False)


def get_session() -> Generator[Session, None, None]:
    """FastAPI dependency yielding a session that commits on success."""

    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@contextmanager
def session_scope(factory: sessionmaker | None = None) -> Iterator[Session]:
    """Context manager flavour of :func:`get_session` for workers and scripts.

    The chunking pipeline commits its own writes, so this only guarantees the
    session is rolled back on error and always closed.
    """

    session = (factory or SessionLocal)()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

from __future__ import annotations

import sys
import uuid
from collections.abc import Callable, Iterator
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool
from sqlalchemy.types import JSON

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from editorial.app.api import routes_chunks
from editorial.app.core import db as db_module
from editorial.app.core.config import PipelineConfig, settings
from editorial.app.ingest.store import ArticleStore
from editorial.app.main import create_app
from editorial.app.models import Article, Base

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _patch_json_columns() -> None:
    for table in Base.metadata.tables.values():
        for column in table.columns:
            if column.type.__class__.__name__ == "JSONB":
                column.type = JSON(none_as_null=True)


@pytest.fixture()
def engine() -> Iterator:
    _patch_json_columns()
    engine = create_engine(
        "sqlite://",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _register_functions(dbapi_connection, _):  # pragma: no cover - sqlite setup
        dbapi_connection.create_function("gen_random_uuid", 0, lambda: str(uuid.uuid4()))

    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture()
def session_factory(engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, class_=Session)


@pytest.fixture()
def session(session_factory: sessionmaker) -> Iterator[Session]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def store(session: Session) -> ArticleStore:
    return ArticleStore(session, claim_ttl_seconds=900)


@pytest.fixture()
def pipeline_config() -> PipelineConfig:
    return PipelineConfig(
        embedding_api_key="test-key",
        embedding_api_base="https://embeddings.test/v1",
        embedding_dim=settings.EMBEDDING_DIM,
        max_attempts=1,
    )


@pytest.fixture()
def make_article(session_factory: sessionmaker) -> Callable[..., uuid.UUID]:
    """Insert an article and return its id; articles are created one minute apart."""

    counter = {"value": 0}

    def _make(**fields: Any) -> uuid.UUID:
        counter["value"] += 1
        fields.setdefault("created_at", BASE_TIME + timedelta(minutes=counter["value"]))
        fields.setdefault("word_count", 0)
        with session_factory() as session:
            article = Article(**fields)
            session.add(article)
            session.commit()
            return article.id

    return _make


def _session_ctx(factory: sessionmaker):
    def _get_session() -> Iterator[Session]:
        session = factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    return _get_session


@pytest.fixture()
def app(monkeypatch: pytest.MonkeyPatch, session_factory: sessionmaker, pipeline_config: PipelineConfig) -> TestClient:
    session_ctx = _session_ctx(session_factory)

    monkeypatch.setattr(db_module, "SessionLocal", session_factory)

    app = create_app()
    app.dependency_overrides[db_module.get_session] = session_ctx
    app.dependency_overrides[routes_chunks.get_pipeline_config] = lambda: pipeline_config
    return TestClient(app)

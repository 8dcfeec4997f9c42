"""Celery tasks for asynchronous processing."""
from __future__ import annotations

import logging
import uuid
from typing import Any, Sequence

from ..core.config import ConfigurationError, PipelineConfig, get_settings
from ..core.db import SessionLocal
from ..core.metrics import record_task_result
from ..ingest.pipeline import run_chunking
from .celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(name="workers.process_article_chunks")
def process_article_chunks(
    article_ids: Sequence[str] | None = None, limit: int | None = None
) -> dict[str, Any]:
    """Chunk and embed a batch of articles; scheduled by Celery beat."""

    try:
        config = PipelineConfig.from_settings(get_settings())
    except ConfigurationError as exc:
        logger.error("Chunking run aborted: %s", exc)
        record_task_result("process_article_chunks", "misconfigured")
        raise

    ids: list[uuid.UUID] | None = None
    if article_ids is not None:
        try:
            ids = [uuid.UUID(str(value)) for value in article_ids]
        except (TypeError, ValueError):
            logger.error("Invalid article ids passed to process_article_chunks: %s", article_ids)
            record_task_result("process_article_chunks", "invalid")
            return {"error": "Invalid article ids", "processed": 0}

    session = SessionLocal()
    try:
        batch = run_chunking(session, config, article_ids=ids, limit=limit)
    except Exception:
        session.rollback()
        logger.exception("Chunking run failed")
        record_task_result("process_article_chunks", "failed")
        raise
    finally:
        session.close()

    record_task_result("process_article_chunks", "succeeded")
    return batch.to_payload()

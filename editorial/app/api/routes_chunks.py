"""Endpoints that trigger the article chunking pipeline."""
from __future__ import annotations

import logging
import uuid
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from ..core.config import ConfigurationError, PipelineConfig, get_settings
from ..core.db import get_session
from ..ingest.pipeline import run_chunking

logger = logging.getLogger(__name__)

router = APIRouter()


class ProcessChunksRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    article_ids: list[uuid.UUID] | None = Field(default=None, alias="articleIds")
    limit: int | None = Field(default=None, ge=1)


def get_pipeline_config() -> PipelineConfig:
    """Read the pipeline configuration once for the current request."""

    try:
        return PipelineConfig.from_settings(get_settings())
    except ConfigurationError as exc:
        logger.error("Chunking request rejected: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Invalid configuration: {exc}",
        ) from exc


@router.post("/process", summary="Chunk and embed a batch of articles")
def process_chunks(
    payload: ProcessChunksRequest | None = None,
    config: PipelineConfig = Depends(get_pipeline_config),
    session: Session = Depends(get_session),
) -> dict[str, Any]:
    """Run the chunking pipeline synchronously and return the batch summary."""

    request = payload or ProcessChunksRequest()
    batch = run_chunking(
        session,
        config,
        article_ids=request.article_ids,
        limit=request.limit,
    )
    return batch.to_payload()

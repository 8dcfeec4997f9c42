"""Administrative API endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..core.db import get_session
from ..models import Article, ContentChunk

router = APIRouter()


class ChunkingStatus(BaseModel):
    articles_total: int
    articles_chunked: int
    articles_pending: int
    articles_claimed: int
    chunks_total: int


@router.get("/health", summary="Readiness probe")
async def admin_health() -> dict[str, str]:
    """Administrative health endpoint."""
    return {"status": "ok"}


@router.get("/metrics", summary="Prometheus metrics feed")
async def admin_metrics() -> Response:
    """Expose chunking and request counters for scraping."""

    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@router.get("/chunking/status", response_model=ChunkingStatus, summary="Chunking backlog")
def chunking_status(session: Session = Depends(get_session)) -> ChunkingStatus:
    total = session.scalar(select(func.count()).select_from(Article)) or 0
    chunked = session.scalar(
        select(func.count()).select_from(Article).where(Article.is_chunked.is_(True))
    ) or 0
    claimed = session.scalar(
        select(func.count()).select_from(Article).where(Article.chunking_claimed_at.isnot(None))
    ) or 0
    chunks = session.scalar(select(func.count()).select_from(ContentChunk)) or 0
    return ChunkingStatus(
        articles_total=total,
        articles_chunked=chunked,
        articles_pending=total - chunked,
        articles_claimed=claimed,
        chunks_total=chunks,
    )

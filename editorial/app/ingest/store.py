"""Database access for the chunking pipeline."""
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterator, Sequence

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models import Article, ContentChunk
from .chunking import TextChunk

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ArticleStore:
    """Reads candidate articles and writes chunk rows and article flags.

    Every write commits on its own, except ``insert_chunk_set`` which writes a
    whole article at once. A failure part way through a best-effort article
    leaves the rows already written in place.
    """

    def __init__(
        self,
        session: Session,
        *,
        claim_ttl_seconds: int = 900,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.session = session
        self.claim_ttl = timedelta(seconds=claim_ttl_seconds)
        self.clock = clock

    def iter_candidates(
        self,
        article_ids: Sequence[uuid.UUID] | None = None,
        *,
        fetch_size: int = 50,
    ) -> Iterator[Article]:
        """Yield articles that carry some text and are not claimed by another run.

        Without ``article_ids`` only articles that have not been chunked yet are
        considered, oldest first.
        """

        stmt = select(Article).where(self._has_text(), self._is_unclaimed())
        if article_ids is not None:
            stmt = stmt.where(Article.id.in_(list(article_ids)))
        else:
            stmt = stmt.where(Article.is_chunked.is_(False))
        stmt = stmt.order_by(Article.created_at, Article.id)

        result = self.session.scalars(stmt.execution_options(yield_per=fetch_size))
        try:
            yield from result
        finally:
            result.close()

    def claim(self, article_id: uuid.UUID) -> bool:
        """Mark ``article_id`` as being processed unless a live claim already exists."""

        now = self.clock()
        stmt = (
            update(Article)
            .where(Article.id == article_id, self._is_unclaimed(now))
            .values(chunking_claimed_at=now)
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(stmt)
        self.session.commit()
        return result.rowcount == 1

    def release(self, article_id: uuid.UUID) -> None:
        """Drop the claim on ``article_id`` without touching ``is_chunked``."""

        self._update(article_id, chunking_claimed_at=None)

    def mark_chunked(self, article_id: uuid.UUID) -> None:
        self._update(article_id, is_chunked=True, chunking_claimed_at=None)

    def next_chunk_index(self, article_id: uuid.UUID) -> int:
        """Index the next chunk of ``article_id`` gets; chunks are only ever appended."""

        current = self.session.scalar(
            select(func.max(ContentChunk.chunk_index)).where(ContentChunk.article_id == article_id)
        )
        return 0 if current is None else current + 1

    def insert_chunk(
        self,
        article_id: uuid.UUID,
        chunk_index: int,
        chunk: TextChunk,
        embedding: Sequence[float],
        metadata: dict[str, Any],
    ) -> ContentChunk:
        row = self._chunk_row(article_id, chunk_index, chunk, embedding, metadata)
        self.session.add(row)
        try:
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            raise
        return row

    def insert_chunk_set(
        self,
        article_id: uuid.UUID,
        chunks: Sequence[tuple[TextChunk, Sequence[float]]],
        metadata: dict[str, Any],
    ) -> int:
        """Append all ``chunks`` and mark the article chunked in one transaction."""

        start = self.next_chunk_index(article_id)
        for offset, (chunk, embedding) in enumerate(chunks):
            self.session.add(self._chunk_row(article_id, start + offset, chunk, embedding, metadata))
        self.session.execute(
            update(Article)
            .where(Article.id == article_id)
            .values(is_chunked=True, chunking_claimed_at=None)
            .execution_options(synchronize_session=False)
        )
        try:
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            raise
        return len(chunks)

    def rollback(self) -> None:
        self.session.rollback()

    def _update(self, article_id: uuid.UUID, **values: Any) -> None:
        stmt = (
            update(Article)
            .where(Article.id == article_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        self.session.execute(stmt)
        self.session.commit()

    def _is_unclaimed(self, now: datetime | None = None):
        cutoff = (now or self.clock()) - self.claim_ttl
        return or_(Article.chunking_claimed_at.is_(None), Article.chunking_claimed_at < cutoff)

    @staticmethod
    def _chunk_row(
        article_id: uuid.UUID,
        chunk_index: int,
        chunk: TextChunk,
        embedding: Sequence[float],
        metadata: dict[str, Any],
    ) -> ContentChunk:
        return ContentChunk(
            article_id=article_id,
            chunk_index=chunk_index,
            content=chunk.content,
            word_count=chunk.word_count,
            chunk_type=chunk.chunk_type.value,
            embedding=list(embedding),
            chunk_metadata=dict(metadata),
        )

    @staticmethod
    def _has_text():
        return or_(
            Article.content_variants.isnot(None),
            and_(Article.word_count > 0, Article.content.isnot(None), Article.content != ""),
        )

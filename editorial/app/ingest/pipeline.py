"""Chunking pipeline orchestration."""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, List, Protocol, Sequence

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.config import PipelineConfig
from ..core.metrics import record_article_result
from ..models.chunks import ChunkType
from .chunking import TextChunk, chunk_text
from .embeddings import EmbeddingClient
from .selector import (
    CleanText,
    LegacyText,
    SelectedArticle,
    SourceTextError,
    UnreadableText,
    select_articles,
)
from .store import ArticleStore

logger = logging.getLogger(__name__)

CHUNK_METHOD = "intelligent_sentence_boundary"
NO_WORK_MESSAGE = "No articles found for chunking. Articles need qualifying text."


class Embedder(Protocol):
    def embed(self, text: str) -> List[float] | None: ...


class IncompleteChunkSetError(RuntimeError):
    """Raised in strict mode when some chunks of an article could not be embedded."""


@dataclass(slots=True)
class ArticleResult:
    """Outcome of processing one article."""

    article_id: uuid.UUID
    chunks_created: int = 0
    total_word_count: int = 0
    source_field: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        if self.error is not None:
            return {"article_id": str(self.article_id), "error": self.error}
        return {
            "article_id": str(self.article_id),
            "chunks_created": self.chunks_created,
            "total_word_count": self.total_word_count,
            "source_field": self.source_field,
        }


@dataclass(slots=True)
class BatchResult:
    """Aggregate of a pipeline run."""

    selected: int = 0
    results: list[ArticleResult] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return sum(1 for result in self.results if result.ok)

    @property
    def failed(self) -> int:
        return sum(1 for result in self.results if not result.ok)

    def to_payload(self) -> dict[str, Any]:
        if not self.selected:
            return {"message": NO_WORK_MESSAGE, "processed": 0}
        return {
            "processed": self.processed,
            "failed": self.failed,
            "results": [result.to_dict() for result in self.results],
        }


class ChunkingPipeline:
    """Chunk, embed and store the text of unprocessed articles, one at a time."""

    def __init__(self, store: ArticleStore, embedder: Embedder, config: PipelineConfig) -> None:
        self.store = store
        self.embedder = embedder
        self.config = config
        self.params = config.chunking_params()

    def run(
        self,
        article_ids: Sequence[uuid.UUID] | None = None,
        limit: int | None = None,
    ) -> BatchResult:
        articles = select_articles(
            self.store,
            article_ids,
            limit=self.config.resolve_limit(limit),
            min_source_chars=self.config.min_source_chars,
        )
        batch = BatchResult(selected=len(articles))
        if not articles:
            logger.info("No articles found for chunking")
            return batch

        logger.info("Processing %s article(s) for chunking", len(articles))
        for article in articles:
            result = self.process_article(article)
            if result is not None:
                batch.results.append(result)

        logger.info(
            "Chunking run finished: processed=%s failed=%s skipped=%s",
            batch.processed,
            batch.failed,
            batch.selected - len(batch.results),
        )
        return batch

    def process_article(self, article: SelectedArticle) -> ArticleResult | None:
        """Process a single article; ``None`` means another run holds its claim."""

        if isinstance(article.source, UnreadableText):
            logger.warning("Article %s has unreadable text: %s", article.id, article.source.reason)
            record_article_result("failed")
            return ArticleResult(article.id, error=article.source.reason)

        try:
            claimed = self.store.claim(article.id)
        except SQLAlchemyError as exc:
            logger.exception("Could not claim article %s", article.id)
            self.store.rollback()
            record_article_result("failed")
            return ArticleResult(article.id, error=str(exc) or exc.__class__.__name__)
        if not claimed:
            logger.info("Article %s is being processed by another run; skipping", article.id)
            record_article_result("skipped")
            return None

        try:
            chunks = self.build_chunks(article)
            logger.info("Generated %s chunks for article %s", len(chunks), article.id)
            if self.config.require_all_chunks:
                created = self._store_complete_set(article, chunks)
            else:
                created = self._store_best_effort(article, chunks)
                self.store.mark_chunked(article.id)
        except Exception as exc:
            logger.exception("Error processing article %s", article.id)
            self._abandon(article.id)
            record_article_result("failed")
            return ArticleResult(article.id, error=str(exc) or exc.__class__.__name__)

        logger.info("Processed article %s with %s chunks", article.id, created)
        record_article_result("chunked")
        return ArticleResult(
            article.id,
            chunks_created=created,
            total_word_count=article.word_count,
            source_field=article.source.field,
        )

    def build_chunks(self, article: SelectedArticle) -> List[TextChunk]:
        """Title chunk, then summary chunks, then content chunks."""

        source = article.source
        if not isinstance(source, (CleanText, LegacyText)):
            raise SourceTextError(f"article {article.id} has no readable source text")

        chunks: list[TextChunk] = []
        if article.title:
            chunks.extend(chunk_text(article.title, ChunkType.TITLE, self.params))
        if article.summary and article.summary.strip() and article.summary != source.text:
            chunks.extend(chunk_text(article.summary, ChunkType.SUMMARY, self.params))
        chunks.extend(chunk_text(source.text, ChunkType.CONTENT, self.params))
        return chunks

    def _store_best_effort(self, article: SelectedArticle, chunks: List[TextChunk]) -> int:
        next_index = self.store.next_chunk_index(article.id)
        created = 0
        for position, chunk in enumerate(chunks):
            vector = self.embedder.embed(chunk.content)
            if vector is None:
                logger.warning(
                    "Failed to generate embedding for chunk %s of article %s", position, article.id
                )
                continue
            if self._insert(article, next_index + created, chunk, vector):
                created += 1
        return created

    def _store_complete_set(self, article: SelectedArticle, chunks: List[TextChunk]) -> int:
        vectors = [self.embedder.embed(chunk.content) for chunk in chunks]
        missing = sum(1 for vector in vectors if vector is None)
        if missing:
            raise IncompleteChunkSetError(
                f"{missing} of {len(chunks)} chunks failed to embed"
            )

        return self.store.insert_chunk_set(
            article.id, list(zip(chunks, vectors)), self._metadata(article)
        )

    def _insert(
        self, article: SelectedArticle, chunk_index: int, chunk: TextChunk, vector: Sequence[float]
    ) -> bool:
        try:
            self.store.insert_chunk(article.id, chunk_index, chunk, vector, self._metadata(article))
        except SQLAlchemyError as exc:
            logger.error("Error inserting chunk %s for article %s: %s", chunk_index, article.id, exc)
            return False
        return True

    @staticmethod
    def _metadata(article: SelectedArticle) -> dict[str, Any]:
        return {
            "original_word_count": article.word_count,
            "chunk_method": CHUNK_METHOD,
            "source_field": article.source.field,
        }

    def _abandon(self, article_id: uuid.UUID) -> None:
        self.store.rollback()
        try:
            self.store.release(article_id)
        except SQLAlchemyError:
            logger.exception("Failed to release chunking claim on article %s", article_id)


def run_chunking(
    session: Session,
    config: PipelineConfig,
    *,
    article_ids: Sequence[uuid.UUID] | None = None,
    limit: int | None = None,
    transport: httpx.BaseTransport | None = None,
) -> BatchResult:
    """Build the collaborators for one invocation and run the pipeline."""

    store = ArticleStore(session, claim_ttl_seconds=config.claim_ttl_seconds)
    with EmbeddingClient.from_config(config, transport=transport) as client:
        return ChunkingPipeline(store, client, config).run(article_ids, limit)

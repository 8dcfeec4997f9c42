"""Embedded article chunks."""
from __future__ import annotations

import enum
import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import relationship

from pgvector.sqlalchemy import Vector

from ..core.config import settings
from . import Base


class ChunkType(str, enum.Enum):
    """Which part of an article a chunk was cut from."""

    TITLE = "title"
    SUMMARY = "summary"
    CONTENT = "content"


class ContentChunk(Base):
    """A window of article text with its embedding. Rows are append-only."""

    __tablename__ = "content_chunks"
    __table_args__ = (
        UniqueConstraint("article_id", "chunk_index", name="uq_content_chunks_article_index"),
    )

    id = Column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=func.gen_random_uuid(),
    )
    article_id = Column(
        UUID(as_uuid=True),
        ForeignKey("articles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    chunk_index = Column(Integer, nullable=False)
    content = Column(Text, nullable=False)
    word_count = Column(Integer, nullable=False, default=0)
    chunk_type = Column(String(20), nullable=False, default=ChunkType.CONTENT.value)
    embedding = Column(Vector(settings.EMBEDDING_DIM), nullable=True)
    chunk_metadata = Column("metadata", JSONB(none_as_null=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    article = relationship("Article", back_populates="chunks")

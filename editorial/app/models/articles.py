"""Editorial articles as seen by the chunking pipeline."""
from __future__ import annotations

import uuid

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text, false, func
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import relationship

from . import Base


class Article(Base):
    """An article owned by the editorial system.

    Rows are created and edited elsewhere. The chunking pipeline only reads the
    text columns and writes ``is_chunked`` and ``chunking_claimed_at``.
    """

    __tablename__ = "articles"

    id = Column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=func.gen_random_uuid(),
    )
    title = Column(String, nullable=True)
    # ``long`` holds the normalized article body, ``summary`` an optional abstract.
    content_variants = Column(JSONB(none_as_null=True), nullable=True)
    content = Column(Text, nullable=True)
    word_count = Column(Integer, nullable=False, default=0, server_default="0")
    is_chunked = Column(Boolean, nullable=False, default=False, server_default=false(), index=True)
    chunking_claimed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    chunks = relationship(
        "ContentChunk",
        back_populates="article",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ContentChunk.chunk_index",
    )

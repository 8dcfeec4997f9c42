"""SQLAlchemy declarative base for the application models."""
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# Imported after ``Base`` so the model modules can import it without a cycle;
# Alembic discovers the tables through ``Base.metadata``.
from .articles import Article  # noqa: F401
from .chunks import ChunkType, ContentChunk  # noqa: F401


__all__ = [
    "Article",
    "Base",
    "ChunkType",
    "ContentChunk",
]

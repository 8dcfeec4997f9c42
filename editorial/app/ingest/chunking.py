"""Sentence-aware chunking of article text."""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List

from ..models.chunks import ChunkType

DEFAULT_TARGET_SIZE = 500
DEFAULT_OVERLAP = 50
DEFAULT_MIN_CHUNK_SIZE = 100

_SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+")


@dataclass(frozen=True, slots=True)
class ChunkingParams:
    """Word-based sizing for the chunker."""

    target_size: int = DEFAULT_TARGET_SIZE
    overlap: int = DEFAULT_OVERLAP
    min_chunk_size: int = DEFAULT_MIN_CHUNK_SIZE

    def __post_init__(self) -> None:
        if self.target_size <= 0:
            raise ValueError("target_size must be positive")
        if self.min_chunk_size <= 0:
            raise ValueError("min_chunk_size must be positive")
        if self.overlap < 0:
            raise ValueError("overlap cannot be negative")
        if self.min_chunk_size > self.target_size:
            raise ValueError("min_chunk_size cannot exceed target_size")
        if self.overlap >= self.min_chunk_size:
            raise ValueError("overlap must be smaller than min_chunk_size")


@dataclass(slots=True)
class TextChunk:
    """A piece of article text ready to be embedded."""

    content: str
    word_count: int
    chunk_type: ChunkType


def count_words(text: str) -> int:
    return len(text.split())


def split_sentences(text: str) -> List[str]:
    """Split ``text`` after sentence-terminal punctuation followed by whitespace."""

    return [piece.strip() for piece in _SENTENCE_BOUNDARY.split(text) if piece.strip()]


def chunk_text(
    text: str,
    chunk_type: ChunkType = ChunkType.CONTENT,
    params: ChunkingParams | None = None,
) -> List[TextChunk]:
    """Group the sentences of ``text`` into overlapping, word-bounded chunks.

    Titles always produce a single chunk, summaries do so while they fit in
    ``target_size`` words. Everything else is packed sentence by sentence: a
    chunk is closed when the next sentence would take it past ``target_size``
    and it already holds ``min_chunk_size`` words. The next chunk starts with
    the last ``overlap`` words of the closed one. A trailing buffer shorter
    than ``min_chunk_size`` is dropped.
    """

    params = params or ChunkingParams()
    chunk_type = ChunkType(chunk_type)

    stripped = (text or "").strip()
    if not stripped:
        return []

    if chunk_type is ChunkType.TITLE:
        return [TextChunk(stripped, count_words(stripped), chunk_type)]

    if chunk_type is ChunkType.SUMMARY:
        words = count_words(stripped)
        if words <= params.target_size:
            return [TextChunk(stripped, words, chunk_type)]

    return _pack_sentences(split_sentences(stripped), chunk_type, params)


def _pack_sentences(
    sentences: List[str], chunk_type: ChunkType, params: ChunkingParams
) -> List[TextChunk]:
    results: list[TextChunk] = []
    buffer = ""
    buffer_words = 0

    for sentence in sentences:
        sentence_words = count_words(sentence)
        would_exceed = buffer_words + sentence_words > params.target_size
        if buffer_words and would_exceed and buffer_words >= params.min_chunk_size:
            results.append(TextChunk(buffer, buffer_words, chunk_type))
            tail = _overlap_tail(buffer, params.overlap)
            buffer = f"{tail} {sentence}" if tail else sentence
            buffer_words = count_words(tail) + sentence_words
        else:
            buffer = f"{buffer} {sentence}" if buffer else sentence
            buffer_words += sentence_words

    if buffer_words >= params.min_chunk_size:
        results.append(TextChunk(buffer, buffer_words, chunk_type))
    return results


def _overlap_tail(text: str, overlap: int) -> str:
    if overlap <= 0:
        return ""
    return " ".join(text.split()[-overlap:])

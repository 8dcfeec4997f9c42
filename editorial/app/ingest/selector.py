"""Choose the articles a chunking run works on and resolve their source text."""
from __future__ import annotations

import json
import logging
import uuid
from contextlib import closing
from dataclasses import dataclass
from typing import Any, List, Sequence, Union

from ..models import Article
from .store import ArticleStore

logger = logging.getLogger(__name__)

CLEAN_SOURCE_FIELD = "content_variants.long"
LEGACY_SOURCE_FIELD = "content"


class SourceTextError(ValueError):
    """The article's stored text could not be read."""


@dataclass(frozen=True, slots=True)
class CleanText:
    text: str
    field: str = CLEAN_SOURCE_FIELD


@dataclass(frozen=True, slots=True)
class LegacyText:
    text: str
    field: str = LEGACY_SOURCE_FIELD


@dataclass(frozen=True, slots=True)
class MissingText:
    pass


@dataclass(frozen=True, slots=True)
class UnreadableText:
    reason: str


SourceText = Union[CleanText, LegacyText, MissingText, UnreadableText]


@dataclass(frozen=True, slots=True)
class SelectedArticle:
    """The subset of an article the pipeline needs, with its text already resolved."""

    id: uuid.UUID
    title: str | None
    summary: str | None
    word_count: int
    source: SourceText


def resolve_source(article: Article, min_chars: int = 50) -> tuple[SourceText, str | None]:
    """Return the text to chunk for ``article`` plus its summary, if any.

    The normalized ``content_variants.long`` field wins over the raw
    ``content`` column; neither counts unless it holds ``min_chars``
    characters once trimmed. Raw ``content`` also needs a positive
    ``word_count``, whatever ``content_variants`` holds.
    """

    try:
        variants = _load_variants(article.content_variants)
    except SourceTextError as exc:
        return UnreadableText(str(exc)), None

    long_text = variants.get("long")
    summary = variants.get("summary")
    if long_text is not None and not isinstance(long_text, str):
        return UnreadableText("content_variants.long is not a string"), None
    if summary is not None and not isinstance(summary, str):
        summary = None

    if long_text and len(long_text.strip()) >= min_chars:
        return CleanText(long_text), summary
    legacy = article.content or ""
    if (article.word_count or 0) > 0 and len(legacy.strip()) >= min_chars:
        return LegacyText(legacy), summary
    return MissingText(), summary


def select_articles(
    store: ArticleStore,
    article_ids: Sequence[uuid.UUID] | None = None,
    *,
    limit: int = 5,
    min_source_chars: int = 50,
) -> List[SelectedArticle]:
    """Return the articles to process, in processing order.

    Explicit ``article_ids`` are returned in the order given and are not
    limited. Otherwise candidates are scanned oldest first until ``limit``
    articles with usable text are found. Articles without usable text are
    never returned.
    """

    ids = _unique(article_ids) if article_ids is not None else None
    if ids is not None and not ids:
        return []

    selected: list[SelectedArticle] = []
    with closing(store.iter_candidates(ids)) as candidates:
        for article in candidates:
            source, summary = resolve_source(article, min_source_chars)
            if isinstance(source, MissingText):
                logger.debug("Article %s has no qualifying text; skipping", article.id)
                continue
            selected.append(
                SelectedArticle(
                    id=article.id,
                    title=article.title,
                    summary=summary,
                    word_count=article.word_count or 0,
                    source=source,
                )
            )
            if ids is None and len(selected) >= limit:
                break

    if ids is not None:
        position = {article_id: index for index, article_id in enumerate(ids)}
        selected.sort(key=lambda item: position[item.id])
    return selected


def _load_variants(raw: Any) -> dict:
    if raw is None:
        return {}
    if isinstance(raw, str):
        if not raw.strip():
            return {}
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise SourceTextError(f"content_variants is not valid JSON: {exc.msg}") from exc
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise SourceTextError("content_variants is not an object")
    return raw


def _unique(values: Sequence[uuid.UUID]) -> list[uuid.UUID]:
    seen: dict[uuid.UUID, None] = {}
    for value in values:
        seen.setdefault(value, None)
    return list(seen)

from __future__ import annotations

import dataclasses
import uuid

import httpx
import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from editorial.app.ingest.pipeline import (
    CHUNK_METHOD,
    NO_WORK_MESSAGE,
    ChunkingPipeline,
    run_chunking,
)
from editorial.app.ingest.selector import select_articles
from editorial.app.ingest.store import ArticleStore
from editorial.app.models import Article, ContentChunk

from factories import FakeEmbedder, sentences

CONTENT = sentences(30)  # 150 words, one content chunk


def _chunks(session_factory, article_id: uuid.UUID) -> list[ContentChunk]:
    with session_factory() as session:
        stmt = (
            select(ContentChunk)
            .where(ContentChunk.article_id == article_id)
            .order_by(ContentChunk.chunk_index)
        )
        return list(session.scalars(stmt))


def _article(session_factory, article_id: uuid.UUID) -> Article:
    with session_factory() as session:
        return session.get(Article, article_id)


def _three_chunk_article(make_article) -> uuid.UUID:
    return make_article(
        title="Council budget talks stall",
        content_variants={"long": CONTENT, "summary": "Talks stalled over the budget."},
        word_count=150,
    )


def test_builds_title_summary_and_content_chunks_in_order(
    store, pipeline_config, make_article, session_factory
) -> None:
    article_id = _three_chunk_article(make_article)
    embedder = FakeEmbedder()

    batch = ChunkingPipeline(store, embedder, pipeline_config).run()

    assert batch.to_payload() == {
        "processed": 1,
        "failed": 0,
        "results": [
            {
                "article_id": str(article_id),
                "chunks_created": 3,
                "total_word_count": 150,
                "source_field": "content_variants.long",
            }
        ],
    }
    chunks = _chunks(session_factory, article_id)
    assert [(c.chunk_index, c.chunk_type) for c in chunks] == [
        (0, "title"),
        (1, "summary"),
        (2, "content"),
    ]
    assert chunks[2].content == CONTENT
    assert chunks[2].word_count == 150
    assert chunks[0].chunk_metadata == {
        "original_word_count": 150,
        "chunk_method": CHUNK_METHOD,
        "source_field": "content_variants.long",
    }
    assert len(chunks[0].embedding) == len(embedder.embed("probe"))
    assert _article(session_factory, article_id).is_chunked is True
    assert _article(session_factory, article_id).chunking_claimed_at is None


def test_failed_embedding_skips_only_that_chunk(
    store, pipeline_config, make_article, session_factory
) -> None:
    article_id = _three_chunk_article(make_article)

    batch = ChunkingPipeline(store, FakeEmbedder(fail_on=(2,)), pipeline_config).run()

    assert batch.processed == 1
    assert batch.results[0].chunks_created == 2
    chunks = _chunks(session_factory, article_id)
    assert [(c.chunk_index, c.chunk_type) for c in chunks] == [(0, "title"), (1, "content")]
    assert _article(session_factory, article_id).is_chunked is True


def test_strict_mode_keeps_article_unprocessed_when_a_chunk_fails(
    store, pipeline_config, make_article, session_factory
) -> None:
    article_id = _three_chunk_article(make_article)
    strict = dataclasses.replace(pipeline_config, require_all_chunks=True)

    batch = ChunkingPipeline(store, FakeEmbedder(fail_on=(2,)), strict).run()

    assert batch.to_payload()["failed"] == 1
    assert batch.results[0].error == "1 of 3 chunks failed to embed"
    assert _chunks(session_factory, article_id) == []
    article = _article(session_factory, article_id)
    assert article.is_chunked is False
    assert article.chunking_claimed_at is None


def test_strict_mode_stores_complete_sets(store, pipeline_config, make_article, session_factory) -> None:
    article_id = _three_chunk_article(make_article)
    strict = dataclasses.replace(pipeline_config, require_all_chunks=True)

    batch = ChunkingPipeline(store, FakeEmbedder(), strict).run()

    assert batch.results[0].chunks_created == 3
    assert len(_chunks(session_factory, article_id)) == 3
    assert _article(session_factory, article_id).is_chunked is True


def test_explicit_ids_report_only_articles_with_text(
    store, pipeline_config, make_article, session_factory
) -> None:
    without_text = make_article(title="Empty", content="", word_count=0)
    with_text = make_article(title="Full", content=CONTENT, word_count=150)

    batch = ChunkingPipeline(store, FakeEmbedder(), pipeline_config).run([without_text, with_text])

    payload = batch.to_payload()
    assert [result["article_id"] for result in payload["results"]] == [str(with_text)]
    assert payload["results"][0]["chunks_created"] >= 1
    assert payload["results"][0]["source_field"] == "content"
    assert _article(session_factory, without_text).is_chunked is False


def test_no_eligible_articles_is_a_zero_work_success(store, pipeline_config, make_article) -> None:
    make_article(content="", word_count=0)

    batch = ChunkingPipeline(store, FakeEmbedder(), pipeline_config).run()

    assert batch.to_payload() == {"message": NO_WORK_MESSAGE, "processed": 0}


def test_unreadable_article_is_reported_and_batch_continues(
    store, pipeline_config, make_article, session_factory
) -> None:
    broken = make_article(content_variants="{not json", word_count=10)
    good = make_article(content_variants={"long": CONTENT}, word_count=150)

    batch = ChunkingPipeline(store, FakeEmbedder(), pipeline_config).run()

    payload = batch.to_payload()
    assert payload["processed"] == 1
    assert payload["failed"] == 1
    assert payload["results"][0]["article_id"] == str(broken)
    assert "not valid JSON" in payload["results"][0]["error"]
    assert payload["results"][1]["article_id"] == str(good)
    assert _article(session_factory, broken).is_chunked is False
    assert _article(session_factory, good).is_chunked is True


def test_unexpected_error_releases_claim_and_leaves_flag(
    store, pipeline_config, make_article, session_factory
) -> None:
    failing = make_article(content_variants={"long": CONTENT}, word_count=150)
    following = make_article(content_variants={"long": CONTENT}, word_count=150)

    batch = ChunkingPipeline(store, FakeEmbedder(raise_on=(1,)), pipeline_config).run()

    assert [result.error for result in batch.results] == ["embedder exploded", None]
    article = _article(session_factory, failing)
    assert article.is_chunked is False
    assert article.chunking_claimed_at is None
    assert _article(session_factory, following).is_chunked is True


def test_article_claimed_by_another_run_is_skipped(
    store, session_factory, pipeline_config, make_article
) -> None:
    article_id = make_article(content_variants={"long": CONTENT}, word_count=150)
    selected = select_articles(store, limit=5)

    with session_factory() as other_session:
        assert ArticleStore(other_session).claim(article_id) is True

    embedder = FakeEmbedder()
    result = ChunkingPipeline(store, embedder, pipeline_config).process_article(selected[0])

    assert result is None
    assert embedder.calls == []
    assert _chunks(session_factory, article_id) == []


def test_claim_is_exclusive_until_released(session_factory, make_article) -> None:
    article_id = make_article(content_variants={"long": CONTENT})

    with session_factory() as first, session_factory() as second:
        first_store, second_store = ArticleStore(first), ArticleStore(second)
        assert first_store.claim(article_id) is True
        assert second_store.claim(article_id) is False
        first_store.release(article_id)
        assert second_store.claim(article_id) is True


def test_rerun_appends_after_existing_chunks(
    store, pipeline_config, make_article, session_factory
) -> None:
    article_id = make_article(content_variants={"long": CONTENT}, word_count=150)
    pipeline = ChunkingPipeline(store, FakeEmbedder(), pipeline_config)
    pipeline.run()

    pipeline.run([article_id])

    assert [c.chunk_index for c in _chunks(session_factory, article_id)] == [0, 1]


def test_default_batch_limit_bounds_the_run(store, pipeline_config, make_article) -> None:
    for _ in range(7):
        make_article(content_variants={"long": CONTENT}, word_count=150)
    config = dataclasses.replace(pipeline_config, batch_limit=3, max_batch_limit=4)
    pipeline = ChunkingPipeline(store, FakeEmbedder(), config)

    assert pipeline.run().processed == 3
    assert pipeline.run(limit=50).processed == 4


def test_run_chunking_talks_to_the_provider(
    session, pipeline_config, make_article, session_factory
) -> None:
    article_id = make_article(content_variants={"long": CONTENT}, word_count=150)
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        vector = [0.5] * pipeline_config.embedding_dim
        return httpx.Response(200, json={"data": [{"embedding": vector}]})

    batch = run_chunking(session, pipeline_config, transport=httpx.MockTransport(handler))

    assert batch.processed == 1
    assert len(requests) == 1
    assert requests[0].headers["Authorization"] == "Bearer test-key"
    stored = _chunks(session_factory, article_id)
    assert len(stored) == 1
    assert list(stored[0].embedding)[:2] == pytest.approx([0.5, 0.5])


def test_claim_failure_is_isolated_to_its_article(
    store, pipeline_config, make_article, session_factory, monkeypatch: pytest.MonkeyPatch
) -> None:
    locked = make_article(content_variants={"long": CONTENT}, word_count=150)
    following = make_article(content_variants={"long": CONTENT}, word_count=150)
    real_claim = store.claim

    def _claim(article_id: uuid.UUID) -> bool:
        if article_id == locked:
            raise OperationalError("UPDATE articles", {}, Exception("lock timeout"))
        return real_claim(article_id)

    monkeypatch.setattr(store, "claim", _claim)

    batch = ChunkingPipeline(store, FakeEmbedder(), pipeline_config).run()

    payload = batch.to_payload()
    assert payload["processed"] == 1
    assert payload["failed"] == 1
    assert payload["results"][0]["article_id"] == str(locked)
    assert "lock timeout" in payload["results"][0]["error"]
    assert payload["results"][1]["article_id"] == str(following)
    assert _article(session_factory, locked).is_chunked is False
    assert _article(session_factory, following).is_chunked is True

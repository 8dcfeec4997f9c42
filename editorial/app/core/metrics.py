"""Prometheus metric helpers."""
from __future__ import annotations

from prometheus_client import Counter, Histogram

REQUEST_COUNT = Counter(
    "editorial_requests_total",
    "HTTP requests processed by the API",
    ("method", "path", "status"),
)

REQUEST_LATENCY = Histogram(
    "editorial_request_latency_seconds",
    "Latency of HTTP requests processed by the API",
    ("method", "path"),
    buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 15.0, 30.0, 60.0, 120.0),
)

TASK_RESULTS = Counter(
    "editorial_task_results_total",
    "Background worker task outcomes",
    ("task", "status"),
)

EMBEDDING_RESULTS = Counter(
    "editorial_chunk_embeddings_total",
    "Embedding requests issued for article chunks",
    ("status",),
)

ARTICLE_RESULTS = Counter(
    "editorial_articles_chunked_total",
    "Per-article outcomes of the chunking pipeline",
    ("status",),
)


def record_request(method: str, path: str, status_code: int, duration: float) -> None:
    """Record counters and histograms for a processed HTTP request."""

    REQUEST_COUNT.labels(method, path, str(status_code)).inc()
    REQUEST_LATENCY.labels(method, path).observe(duration)


def record_task_result(task_name: str, status: str) -> None:
    """Increment the task results counter for the provided status."""

    TASK_RESULTS.labels(task_name, status).inc()


def record_embedding_result(status: str) -> None:
    EMBEDDING_RESULTS.labels(status).inc()


def record_article_result(status: str) -> None:
    ARTICLE_RESULTS.labels(status).inc()

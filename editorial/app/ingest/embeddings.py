"""HTTP client for the embedding provider."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, List, Sequence

import httpx
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)

from ..core.config import PipelineConfig
from ..core.metrics import record_embedding_result

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = frozenset({408, 409, 425, 429, 500, 502, 503, 504})


class EmbeddingError(RuntimeError):
    """The provider rejected the request or returned an unusable payload."""


class TransientEmbeddingError(EmbeddingError):
    """A failure worth retrying: transport problems, throttling, server errors."""


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Capped exponential backoff with full jitter applied to embedding requests.

    ``max_attempts=1`` disables retries entirely.
    """

    max_attempts: int = 3
    initial_wait: float = 0.5
    max_wait: float = 8.0
    sleep: Callable[[float], None] = time.sleep

    @classmethod
    def from_config(cls, config: PipelineConfig) -> "RetryPolicy":
        return cls(
            max_attempts=config.max_attempts,
            initial_wait=config.retry_initial_wait,
            max_wait=config.retry_max_wait,
        )

    def call(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Invoke ``func`` and retry it on :class:`TransientEmbeddingError`."""

        retrying = Retrying(
            retry=retry_if_exception_type(TransientEmbeddingError),
            stop=stop_after_attempt(max(1, self.max_attempts)),
            wait=wait_random_exponential(multiplier=self.initial_wait, max=self.max_wait),
            sleep=self.sleep,
            before_sleep=self._log_retry,
            reraise=True,
        )
        return retrying(func, *args, **kwargs)

    def _log_retry(self, retry_state: RetryCallState) -> None:
        outcome = retry_state.outcome
        error = outcome.exception() if outcome else None
        logger.warning(
            "Embedding request failed (%s); retry %s/%s",
            error,
            retry_state.attempt_number,
            self.max_attempts - 1,
        )


class EmbeddingClient:
    """Turn chunk text into a vector using an OpenAI-compatible endpoint."""

    def __init__(
        self,
        *,
        api_key: str,
        model: str,
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 30.0,
        max_input_chars: int = 8000,
        expected_dim: int | None = None,
        retry_policy: RetryPolicy | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.model = model
        self.max_input_chars = max_input_chars
        self.expected_dim = expected_dim
        self.retry_policy = retry_policy or RetryPolicy(max_attempts=1)
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            headers={"Authorization": f"Bearer {api_key}"},
            transport=transport,
        )

    @classmethod
    def from_config(
        cls, config: PipelineConfig, *, transport: httpx.BaseTransport | None = None
    ) -> "EmbeddingClient":
        return cls(
            api_key=config.embedding_api_key,
            model=config.embedding_model,
            base_url=config.embedding_api_base,
            timeout=config.embedding_timeout,
            max_input_chars=config.max_input_chars,
            expected_dim=config.embedding_dim,
            retry_policy=RetryPolicy.from_config(config),
            transport=transport,
        )

    def __enter__(self) -> "EmbeddingClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def embed(self, text: str) -> List[float] | None:
        """Return the embedding for ``text`` or ``None`` when the provider fails."""

        payload_text = text[: self.max_input_chars]
        try:
            vector = self.retry_policy.call(self.request_embedding, payload_text)
        except EmbeddingError as exc:
            logger.error("Embedding request failed: %s", exc)
            record_embedding_result("failed")
            return None
        record_embedding_result("succeeded")
        return vector

    def request_embedding(self, text: str) -> List[float]:
        """Issue a single request to the provider, raising on any failure."""

        try:
            response = self._client.post("/embeddings", json={"model": self.model, "input": text})
        except httpx.TransportError as exc:
            raise TransientEmbeddingError(f"transport error: {exc}") from exc

        if response.status_code in RETRYABLE_STATUS_CODES:
            raise TransientEmbeddingError(
                f"provider returned {response.status_code}: {response.text[:200]}"
            )
        if not response.is_success:
            raise EmbeddingError(f"provider returned {response.status_code}: {response.text[:200]}")

        try:
            body = response.json()
        except ValueError as exc:
            raise EmbeddingError("provider returned a non-JSON body") from exc
        return self._extract_vector(body)

    def _extract_vector(self, body: Any) -> List[float]:
        try:
            vector = body["data"][0]["embedding"]
        except (KeyError, IndexError, TypeError) as exc:
            raise EmbeddingError("response is missing data[0].embedding") from exc

        if not isinstance(vector, Sequence) or isinstance(vector, (str, bytes)) or not vector:
            raise EmbeddingError("embedding is not a non-empty list")
        try:
            values = [float(value) for value in vector]
        except (TypeError, ValueError) as exc:
            raise EmbeddingError("embedding contains non-numeric values") from exc
        if self.expected_dim and len(values) != self.expected_dim:
            raise EmbeddingError(
                f"embedding has {len(values)} dimensions, expected {self.expected_dim}"
            )
        return values

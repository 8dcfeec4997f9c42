"""Application configuration powered by Pydantic settings."""
from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import TYPE_CHECKING, Any

from pydantic import Field
from pydantic_settings import BaseSettings

if TYPE_CHECKING:
    from ..ingest.chunking import ChunkingParams


class ConfigurationError(RuntimeError):
    """Raised when required configuration is missing or invalid for an invocation."""


class Settings(BaseSettings):
    """Global application settings loaded from environment variables."""

    PROJECT_NAME: str = Field(default="Editorial Chunking Service")
    VERSION: str = Field(default="0.1.0")

    DATABASE_URL: str = Field(default="postgresql+psycopg://postgres:postgres@db:5432/postgres")
    REDIS_URL: str = Field(default="redis://redis:6379/0")

    EMBEDDING_API_BASE: str = Field(default="https://api.openai.com/v1")
    EMBEDDING_API_KEY: str | None = Field(default=None)
    EMBEDDING_MODEL: str = Field(default="text-embedding-3-small")
    EMBEDDING_DIM: int = Field(default=1536)
    EMBEDDING_TIMEOUT: float = Field(default=30.0)
    EMBEDDING_MAX_INPUT_CHARS: int = Field(default=8000)
    EMBEDDING_MAX_ATTEMPTS: int = Field(default=3)
    EMBEDDING_RETRY_INITIAL_WAIT: float = Field(default=0.5)
    EMBEDDING_RETRY_MAX_WAIT: float = Field(default=8.0)

    CHUNK_TARGET_SIZE: int = Field(default=500)
    CHUNK_OVERLAP: int = Field(default=50)
    CHUNK_MIN_SIZE: int = Field(default=100)

    CHUNKING_MIN_SOURCE_CHARS: int = Field(default=50)
    CHUNKING_BATCH_LIMIT: int = Field(default=5)
    CHUNKING_MAX_BATCH_LIMIT: int = Field(default=20)
    CHUNKING_CLAIM_TTL_SECONDS: int = Field(default=900)
    CHUNKING_REQUIRE_ALL_CHUNKS: bool = Field(default=False)
    CHUNKING_SCHEDULE_SECONDS: float = Field(default=300.0)

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }


@lru_cache(maxsize=1)
def get_settings(**overrides: Any) -> Settings:
    """Return cached settings instance to avoid repeated parsing."""

    if overrides:
        return Settings(**overrides)
    return Settings()


settings = get_settings()


@dataclass(frozen=True, slots=True)
class PipelineConfig:
    """Immutable snapshot of the settings a single chunking run depends on.

    Built once per invocation so the embedding credential and tuning values
    cannot change while a batch is in flight.
    """

    embedding_api_key: str
    embedding_api_base: str = "https://api.openai.com/v1"
    embedding_model: str = "text-embedding-3-small"
    embedding_dim: int | None = 1536
    embedding_timeout: float = 30.0
    max_input_chars: int = 8000
    max_attempts: int = 3
    retry_initial_wait: float = 0.5
    retry_max_wait: float = 8.0
    target_size: int = 500
    overlap: int = 50
    min_chunk_size: int = 100
    min_source_chars: int = 50
    batch_limit: int = 5
    max_batch_limit: int = 20
    claim_ttl_seconds: int = 900
    require_all_chunks: bool = False

    @classmethod
    def from_settings(cls, source: Settings | None = None) -> "PipelineConfig":
        """Validate and freeze the settings needed by the chunking pipeline."""

        current = source or settings
        api_key = (current.EMBEDDING_API_KEY or "").strip()
        if not api_key:
            raise ConfigurationError("EMBEDDING_API_KEY is not configured")
        if not (current.DATABASE_URL or "").strip():
            raise ConfigurationError("DATABASE_URL is not configured")

        config = cls(
            embedding_api_key=api_key,
            embedding_api_base=current.EMBEDDING_API_BASE,
            embedding_model=current.EMBEDDING_MODEL,
            embedding_dim=current.EMBEDDING_DIM,
            embedding_timeout=current.EMBEDDING_TIMEOUT,
            max_input_chars=current.EMBEDDING_MAX_INPUT_CHARS,
            max_attempts=max(1, current.EMBEDDING_MAX_ATTEMPTS),
            retry_initial_wait=current.EMBEDDING_RETRY_INITIAL_WAIT,
            retry_max_wait=current.EMBEDDING_RETRY_MAX_WAIT,
            target_size=current.CHUNK_TARGET_SIZE,
            overlap=current.CHUNK_OVERLAP,
            min_chunk_size=current.CHUNK_MIN_SIZE,
            min_source_chars=current.CHUNKING_MIN_SOURCE_CHARS,
            batch_limit=current.CHUNKING_BATCH_LIMIT,
            max_batch_limit=current.CHUNKING_MAX_BATCH_LIMIT,
            claim_ttl_seconds=current.CHUNKING_CLAIM_TTL_SECONDS,
            require_all_chunks=current.CHUNKING_REQUIRE_ALL_CHUNKS,
        )
        config.chunking_params()
        return config

    def chunking_params(self) -> "ChunkingParams":
        """Return the chunker sizing, rejecting inconsistent CHUNK_* values."""

        # Imported here because the chunker depends on the models, which read settings.
        from ..ingest.chunking import ChunkingParams

        try:
            return ChunkingParams(
                target_size=self.target_size,
                overlap=self.overlap,
                min_chunk_size=self.min_chunk_size,
            )
        except ValueError as exc:
            raise ConfigurationError(f"invalid chunk sizing: {exc}") from exc

    def resolve_limit(self, limit: int | None) -> int:
        """Return the batch size to use for a run, bounded by the configured ceiling."""

        if limit is None or limit <= 0:
            return self.batch_limit
        return min(limit, self.max_batch_limit)

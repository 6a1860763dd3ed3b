"""Centralized configuration for search-core using Pydantic Settings."""

from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Strictly typed configuration loaded from environment variables.

    Every variable is read with the ``SEARCH_CORE_`` prefix, e.g.
    ``SEARCH_CORE_PHRASE_MAX_GAP=3``.
    """

    model_config = SettingsConfigDict(
        env_prefix="SEARCH_CORE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        validate_default=True,
        extra="ignore",
    )

    # Storage
    database_path: Path = Field(default=Path("data/search_index.db"), description="SQLite index database file")

    # Worker pool
    max_workers: int = Field(default=8, ge=1, le=256, description="Threads in the shared worker pool")

    # Normalizer
    drop_stopwords: bool = Field(default=True, description="Drop stopwords during normalization")
    min_token_length: int = Field(default=2, ge=1, description="Shortest letters-only token kept")
    max_token_length: int = Field(default=45, ge=1, description="Longest letters-only token kept")
    min_stem_length: int = Field(
        default=4,
        ge=2,
        description="Suffixes are only stripped when the remaining stem keeps at least this many letters",
    )
    normalizer_cache_size: int = Field(default=4096, ge=0, description="Memoized normalizations per instance")

    # Query resolution
    phrase_max_gap: int = Field(
        default=2,
        ge=1,
        description="Largest forward distance between consecutive phrase words (1 = strictly adjacent)",
    )
    query_cache_size: int = Field(default=256, ge=0, description="Resolved queries kept in the LRU cache")

    # PageRank
    damping_factor: float = Field(default=0.85, gt=0.0, lt=1.0, description="PageRank damping factor")
    convergence_epsilon: float = Field(default=1e-5, gt=0.0, description="Max per-node delta for convergence")
    max_iterations: int = Field(default=100, ge=1, description="PageRank iteration cap")

    # Ranking
    tfidf_weight: float = Field(default=0.7, ge=0.0, description="Weight of the term-relevance component")
    pagerank_weight: float = Field(default=0.3, ge=0.0, description="Weight of the PageRank component")
    parallel_rank_threshold: int = Field(
        default=1000,
        ge=1,
        description="Candidate sets at or above this size are scored on the worker pool",
    )
    max_page_size: int = Field(default=100, ge=1, description="Upper bound for the requested page size")

    # Suggestions
    suggestion_limit: int = Field(default=10, ge=1, description="Terms returned by a prefix suggestion")

    # Logging
    log_level: str = Field(default="info", description="Logging level")
    log_json: bool = Field(default=True, description="Emit structured JSON logs")

    @model_validator(mode="after")
    def _check_token_bounds(self) -> "Settings":
        if self.min_token_length > self.max_token_length:
            raise ValueError(
                f"min_token_length ({self.min_token_length}) must not exceed "
                f"max_token_length ({self.max_token_length})"
            )
        return self

"""Application configuration powered by pydantic-settings."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CounselSettings(BaseSettings):
    """Runtime configuration for the retrieval core and agent loop."""

    app_name: str = Field(default="Counsel RAG API", alias="APP_NAME")

    # Isaacus legal AI API
    isaacus_api_key: str = Field(
        default="",
        alias="ISAACUS_API_KEY",
        description="Bearer credential for the Isaacus API",
    )
    isaacus_base_url: str = Field(
        default="https://api.isaacus.com/v1",
        alias="ISAACUS_BASE_URL",
    )
    isaacus_timeout_seconds: float = Field(
        default=30.0,
        alias="ISAACUS_TIMEOUT_SECONDS",
        description="Timeout applied to every Isaacus request",
    )
    isaacus_max_retries: int = Field(
        default=3,
        alias="ISAACUS_MAX_RETRIES",
        description="Attempts for 429/5xx responses before giving up",
    )
    embedding_model: str = Field(default="kanon-2-embedder", alias="EMBEDDING_MODEL")
    reranker_model: str = Field(default="kanon-2-reranker", alias="RERANKER_MODEL")
    reader_model: str = Field(default="kanon-2-reader", alias="READER_MODEL")
    classifier_model: str = Field(
        default="kanon-2-classifier", alias="CLASSIFIER_MODEL"
    )
    universal_classifier_model: str = Field(
        default="kanon-universal-classifier", alias="UNIVERSAL_CLASSIFIER_MODEL"
    )
    embedding_dimensions: int = Field(default=1792, alias="EMBEDDING_DIMENSIONS")
    embedding_batch_size: int = Field(
        default=32,
        alias="EMBEDDING_BATCH_SIZE",
        description="Maximum texts per embedding request",
    )
    embedding_max_concurrency: int = Field(
        default=4,
        alias="EMBEDDING_MAX_CONCURRENCY",
        description="Sub-batches dispatched in parallel",
    )

    # LLM Configuration
    llm_provider: Literal["openai", "anthropic"] = Field(
        default="anthropic",
        alias="LLM_PROVIDER",
        description="LLM provider to use (openai or anthropic)",
    )
    llm_model: str = Field(
        default="claude-sonnet-4-20250514",
        alias="LLM_MODEL",
    )
    openai_api_key: str = Field(default="", alias="OPENAI_API_KEY")
    anthropic_api_key: str = Field(default="", alias="ANTHROPIC_API_KEY")
    llm_max_retries: int = Field(default=3, alias="LLM_MAX_RETRIES")
    llm_timeout_seconds: int = Field(default=60, alias="LLM_TIMEOUT_SECONDS")
    llm_temperature: float = Field(default=0.7, alias="LLM_TEMPERATURE")
    llm_max_tokens: int = Field(default=4096, alias="LLM_MAX_TOKENS")

    # Agent loop
    agent_max_steps: int = Field(
        default=15,
        alias="AGENT_MAX_STEPS",
        description="Reasoning iterations allowed per user turn",
    )
    agent_tool_timeout_seconds: float = Field(
        default=45.0,
        alias="AGENT_TOOL_TIMEOUT_SECONDS",
    )

    # Chunking
    chunk_max_chars: int = Field(default=1500, alias="CHUNK_MAX_CHARS")
    chunk_overlap_chars: int = Field(default=200, alias="CHUNK_OVERLAP_CHARS")
    chunk_min_chars: int = Field(default=100, alias="CHUNK_MIN_CHARS")

    # Retrieval
    search_limit: int = Field(default=10, alias="SEARCH_LIMIT")
    search_threshold: float = Field(default=0.5, alias="SEARCH_THRESHOLD")

    # Vector storage
    vector_backend: Literal["memory", "lancedb"] = Field(
        default="memory",
        alias="VECTOR_BACKEND",
    )
    lancedb_path: str = Field(default="data/lancedb", alias="LANCEDB_PATH")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_prefix="COUNSEL_",
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("llm_temperature")
    @classmethod
    def validate_temperature(cls, v: float) -> float:
        """Validate temperature is in valid range."""
        if not 0.0 <= v <= 2.0:
            raise ValueError(f"Temperature must be between 0.0 and 2.0, got {v}")
        return v

    @field_validator("embedding_batch_size", "embedding_max_concurrency", "agent_max_steps")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"Value must be at least 1, got {v}")
        return v

    @field_validator("search_threshold")
    @classmethod
    def validate_threshold(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError(f"Similarity threshold must be between 0 and 1, got {v}")
        return v

    @model_validator(mode="after")
    def validate_chunking(self) -> CounselSettings:
        """Overlap must leave room for forward progress."""
        if self.chunk_overlap_chars >= self.chunk_max_chars:
            raise ValueError(
                "CHUNK_OVERLAP_CHARS must be smaller than CHUNK_MAX_CHARS "
                f"({self.chunk_overlap_chars} >= {self.chunk_max_chars})"
            )
        return self


@lru_cache(maxsize=1)
def get_settings() -> CounselSettings:
    """Return a cached settings instance."""

    return CounselSettings()

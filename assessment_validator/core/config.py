from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

ProviderName = Literal["groq", "openai"]
StrategyName = Literal["whole_context", "retrieval_augmented"]


class Settings(BaseSettings):
    """Configuración centralizada del validador con validación de tipos."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # App
    app_env: Literal["development", "staging", "production"] = "development"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"

    # Providers
    default_provider: ProviderName = "groq"
    default_strategy: StrategyName = "retrieval_augmented"

    groq_api_key: str = Field(..., min_length=1)
    groq_model: str = Field(default="openai/gpt-oss-120b")
    groq_requests_per_minute: int = Field(default=30, ge=1, le=10000)
    groq_max_concurrency: int = Field(default=4, ge=1, le=64)

    openai_api_key: str = Field(default="")
    openai_model: str = Field(default="gpt-4o-mini")
    openai_requests_per_minute: int = Field(default=60, ge=1, le=10000)
    openai_max_concurrency: int = Field(default=8, ge=1, le=64)

    # Embeddings (HuggingFace Inference API)
    huggingface_api_key: str = Field(..., min_length=1)
    embedding_model: str = Field(default="sentence-transformers/all-MiniLM-L6-v2")
    embedding_dimension: int = Field(default=384, ge=8, le=8192)
    embedding_batch_size: int = Field(default=32, ge=1, le=512)
    embedding_requests_per_minute: int = Field(default=120, ge=1, le=10000)
    embedding_max_concurrency: int = Field(default=4, ge=1, le=64)

    # Indexing
    chunk_size: int = Field(default=1000, ge=100, le=8000)
    chunk_overlap_fraction: float = Field(default=0.2, ge=0.0, le=0.5)
    chunker_version: str = Field(default="fixed-window-v1")

    # Retrieval
    retrieval_k: int = Field(default=8, ge=1, le=50)
    retrieval_min_similarity: float = Field(default=0.35, ge=-1.0, le=1.0)
    whole_context_max_chars: int = Field(default=120000, ge=1000, le=2000000)

    # Rate limiting / retry
    rate_limit_window_seconds: float = Field(default=60.0, gt=0.0, le=3600.0)
    rate_limit_wait_ceiling_seconds: float = Field(default=30.0, ge=0.0, le=600.0)
    retry_max_attempts: int = Field(default=3, ge=1, le=10)
    retry_base_delay_seconds: float = Field(default=1.0, ge=0.0, le=60.0)
    retry_backoff_multiplier: float = Field(default=2.0, ge=1.0, le=10.0)
    retry_max_delay_seconds: float = Field(default=10.0, ge=0.0, le=300.0)
    model_call_timeout_seconds: float = Field(default=90.0, gt=0.0, le=900.0)
    job_max_concurrency: int = Field(default=4, ge=1, le=64)

    # Prompt cache
    prompt_cache_ttl_seconds: int = Field(default=300, ge=10, le=86400)
    prompt_cache_max_size: int = Field(default=256, ge=1, le=10000)

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"

    def provider_limits(self, provider: str) -> tuple[int, int]:
        """Requests per minute and max concurrency for a provider (or 'embeddings')."""
        if provider == "embeddings":
            return self.embedding_requests_per_minute, self.embedding_max_concurrency
        if provider == "openai":
            return self.openai_requests_per_minute, self.openai_max_concurrency
        if provider == "groq":
            return self.groq_requests_per_minute, self.groq_max_concurrency
        raise ValueError(f"Unknown provider: '{provider}'")


@lru_cache
def get_settings() -> Settings:
    """Singleton cacheado para evitar recargar .env en cada request."""
    return Settings()


settings = get_settings()

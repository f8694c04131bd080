from assessment_validator.services.chunk_store import ChunkStore
from assessment_validator.services.embeddings import EmbeddingClient, get_embeddings
from assessment_validator.services.indexer import DocumentIndexer
from assessment_validator.services.llm_factory import check_provider_health, get_chat_model
from assessment_validator.services.prompt_registry import PromptRegistry
from assessment_validator.services.rate_limiter import RateLimiterRegistry, TokenBucketLimiter, get_rate_limiter_registry
from assessment_validator.services.container import DependencyContainer, get_container, reset_container

__all__ = [
    "ChunkStore",
    "DependencyContainer",
    "DocumentIndexer",
    "EmbeddingClient",
    "PromptRegistry",
    "RateLimiterRegistry",
    "TokenBucketLimiter",
    "check_provider_health",
    "get_chat_model",
    "get_container",
    "get_embeddings",
    "get_rate_limiter_registry",
    "reset_container",
]

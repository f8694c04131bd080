from functools import lru_cache
from typing import Sequence

from langchain_core.embeddings import Embeddings
from langchain_huggingface import HuggingFaceEndpointEmbeddings

from assessment_validator.core.config import settings
from assessment_validator.core.logging import get_logger
from assessment_validator.services.resilience import ProviderCallGuard, RetryPolicy, call_with_retry

logger = get_logger(__name__)


@lru_cache
def get_embeddings() -> HuggingFaceEndpointEmbeddings:
    """
    Factory singleton para embeddings via HuggingFace Inference API.

    Usa la API de HuggingFace en lugar de cargar el modelo localmente, lo que
    reduce el consumo de RAM. La dimension debe coincidir con
    ``settings.embedding_dimension``.
    """
    logger.info(f"Inicializando embeddings via API: {settings.embedding_model}")
    return HuggingFaceEndpointEmbeddings(
        model=settings.embedding_model,
        huggingfacehub_api_token=settings.huggingface_api_key,
    )


class EmbeddingClient:
    """Embeddings behind the 'embeddings' rate limiter and retry policy."""

    def __init__(
        self,
        embeddings: Embeddings,
        guard: ProviderCallGuard,
        retry_policy: RetryPolicy,
        batch_size: int = 32,
    ):
        self._embeddings = embeddings
        self._guard = guard
        self._retry_policy = retry_policy
        self._batch_size = batch_size

    async def embed(self, text: str) -> list[float]:
        vector, _ = await call_with_retry(
            lambda: self._guard.call(lambda: self._embeddings.aembed_query(text)),
            self._retry_policy,
            operation_name="embed_query",
        )
        return list(vector)

    async def embed_many(self, texts: Sequence[str]) -> list[list[float]]:
        """Embed texts in batches; each batch is one rate-limited call."""
        vectors: list[list[float]] = []
        for start in range(0, len(texts), self._batch_size):
            batch = list(texts[start:start + self._batch_size])
            batch_vectors, _ = await call_with_retry(
                lambda: self._guard.call(lambda: self._embeddings.aembed_documents(batch)),
                self._retry_policy,
                operation_name=f"embed_documents[{start}:{start + len(batch)}]",
            )
            vectors.extend(list(v) for v in batch_vectors)
        return vectors

"""
Dependency Injection Container.

Holds the process-wide services: repositories, the chunk store, the prompt
registry, the shared rate limiters and the orchestrator built on top of them.
Everything is created lazily on first access.

Tests build their own container and override the chat model factory and the
embeddings so no network call is ever made.

Example:
    from assessment_validator.services.container import get_container

    container = get_container()
    outcome = await container.orchestrator.start_indexing(document_id)
"""

from functools import lru_cache
from typing import Optional

from langchain_core.embeddings import Embeddings

from assessment_validator.core.config import Settings, get_settings
from assessment_validator.core.logging import PipelineLogger
from assessment_validator.schemas import GenerationConfig, IndexingParams
from assessment_validator.services.chunk_store import ChunkStore
from assessment_validator.services.embeddings import EmbeddingClient, get_embeddings
from assessment_validator.services.indexer import DocumentIndexer
from assessment_validator.services.llm_factory import get_chat_model
from assessment_validator.services.progress import ProgressTracker
from assessment_validator.services.prompt_registry import PromptRegistry
from assessment_validator.services.providers import ProviderFactory
from assessment_validator.services.providers.base import ChatModelFactory
from assessment_validator.services.rate_limiter import RateLimiterRegistry, get_rate_limiter_registry
from assessment_validator.services.repositories import (
    DocumentRepository,
    JobRepository,
    RequirementRepository,
    ResultRepository,
)
from assessment_validator.services.resilience import ProviderCallGuard, RetryPolicy


def _default_chat_model_factory(provider: str, generation: GenerationConfig):
    return get_chat_model(
        provider,
        temperature=generation.temperature,
        max_tokens=generation.max_output_tokens,
        top_p=generation.top_p,
    )


class DependencyContainer:
    """
    Centralized container for application dependencies.

    Attributes:
        config: Settings snapshot the services are built from.
    """

    def __init__(
        self,
        config: Optional[Settings] = None,
        rate_limiters: Optional[RateLimiterRegistry] = None,
    ) -> None:
        self.config = config or get_settings()
        self._rate_limiters = rate_limiters
        self._chat_model_factory: Optional[ChatModelFactory] = None
        self._embeddings: Optional[Embeddings] = None
        self._guards: dict[str, ProviderCallGuard] = {}
        self._reset_services()

    def _reset_services(self) -> None:
        self._documents: Optional[DocumentRepository] = None
        self._requirements: Optional[RequirementRepository] = None
        self._jobs: Optional[JobRepository] = None
        self._results: Optional[ResultRepository] = None
        self._chunk_store: Optional[ChunkStore] = None
        self._prompt_registry: Optional[PromptRegistry] = None
        self._progress: Optional[ProgressTracker] = None
        self._embedder: Optional[EmbeddingClient] = None
        self._indexer: Optional[DocumentIndexer] = None
        self._provider_factory: Optional[ProviderFactory] = None
        self._orchestrator = None
        self._logger: Optional[PipelineLogger] = None

    # -- repositories --------------------------------------------------------

    @property
    def documents(self) -> DocumentRepository:
        if self._documents is None:
            self._documents = DocumentRepository()
        return self._documents

    @property
    def requirements(self) -> RequirementRepository:
        if self._requirements is None:
            self._requirements = RequirementRepository()
        return self._requirements

    @property
    def jobs(self) -> JobRepository:
        if self._jobs is None:
            self._jobs = JobRepository()
        return self._jobs

    @property
    def results(self) -> ResultRepository:
        if self._results is None:
            self._results = ResultRepository()
        return self._results

    # -- shared services -----------------------------------------------------

    @property
    def logger(self) -> PipelineLogger:
        if self._logger is None:
            self._logger = PipelineLogger("validation")
        return self._logger

    @property
    def rate_limiters(self) -> RateLimiterRegistry:
        if self._rate_limiters is None:
            self._rate_limiters = get_rate_limiter_registry()
        return self._rate_limiters

    @property
    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy.from_settings(self.config)

    def guard_for(self, provider: str) -> ProviderCallGuard:
        """Call guard for a provider; one per provider per container."""
        guard = self._guards.get(provider)
        if guard is None:
            _, max_concurrency = self.config.provider_limits(provider)
            guard = ProviderCallGuard(
                provider=provider,
                limiter=self.rate_limiters.get(provider),
                max_concurrency=max_concurrency,
                timeout_seconds=self.config.model_call_timeout_seconds,
            )
            self._guards[provider] = guard
        return guard

    @property
    def chunk_store(self) -> ChunkStore:
        if self._chunk_store is None:
            self._chunk_store = ChunkStore(dimension=self.config.embedding_dimension)
        return self._chunk_store

    @property
    def prompt_registry(self) -> PromptRegistry:
        if self._prompt_registry is None:
            self._prompt_registry = PromptRegistry(
                cache_ttl_seconds=self.config.prompt_cache_ttl_seconds,
                cache_max_size=self.config.prompt_cache_max_size,
            )
        return self._prompt_registry

    @property
    def progress(self) -> ProgressTracker:
        if self._progress is None:
            self._progress = ProgressTracker(self.jobs)
        return self._progress

    @property
    def embedder(self) -> EmbeddingClient:
        if self._embedder is None:
            self._embedder = EmbeddingClient(
                embeddings=self._embeddings or get_embeddings(),
                guard=self.guard_for("embeddings"),
                retry_policy=self.retry_policy,
                batch_size=self.config.embedding_batch_size,
            )
        return self._embedder

    @property
    def indexing_params(self) -> IndexingParams:
        return IndexingParams(
            chunk_size=self.config.chunk_size,
            overlap_fraction=self.config.chunk_overlap_fraction,
            chunker_version=self.config.chunker_version,
            embedding_model=self.config.embedding_model,
        )

    @property
    def indexer(self) -> DocumentIndexer:
        if self._indexer is None:
            self._indexer = DocumentIndexer(
                documents=self.documents,
                chunk_store=self.chunk_store,
                embedder=self.embedder,
                params=self.indexing_params,
            )
        return self._indexer

    @property
    def provider_factory(self) -> ProviderFactory:
        if self._provider_factory is None:
            self._provider_factory = ProviderFactory(
                config=self.config,
                chat_model_factory=self._chat_model_factory or _default_chat_model_factory,
                embedder=self.embedder,
                chunk_store=self.chunk_store,
                guard_for=self.guard_for,
                retry_policy=self.retry_policy,
            )
        return self._provider_factory

    @property
    def orchestrator(self):
        """
        Get the ValidationOrchestrator wired to this container's services.

        Returns:
            ValidationOrchestrator exposing the external triggers.
        """
        if self._orchestrator is None:
            # Import here to avoid circular imports
            from assessment_validator.pipeline.orchestrator import ValidationOrchestrator

            self._orchestrator = ValidationOrchestrator(self)
        return self._orchestrator

    # -- test hooks ----------------------------------------------------------

    def override_chat_model(self, factory: ChatModelFactory) -> None:
        """
        Replace the chat model factory (e.g. with one returning an AsyncMock).

        Args:
            factory: Callable taking (provider_name, GenerationConfig).
        """
        self._chat_model_factory = factory
        # Reset factory and orchestrator to pick up the new models
        self._provider_factory = None
        self._orchestrator = None

    def override_embeddings(self, embeddings: Embeddings) -> None:
        """Replace the embeddings backend (e.g. with a deterministic fake)."""
        self._embeddings = embeddings
        self._embedder = None
        self._indexer = None
        self._provider_factory = None
        self._orchestrator = None

    def reset(self) -> None:
        """Drop every cached service; overrides are kept."""
        self._guards = {}
        self._reset_services()


@lru_cache(maxsize=1)
def get_container() -> DependencyContainer:
    """
    Get the singleton DependencyContainer instance.

    Returns:
        The global DependencyContainer instance.
    """
    return DependencyContainer()


def reset_container() -> None:
    """Clear the singleton so the next call builds a fresh container."""
    get_container.cache_clear()

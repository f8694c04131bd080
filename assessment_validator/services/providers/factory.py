"""
Provider Factory.

Creates a ``ModelProvider`` for a (backend, strategy) pair. Jobs choose both
at creation time; the factory is the only place that maps the strategy enum to
a concrete class.

Example:
    factory = ProviderFactory(chat_model_factory=..., embedder=..., ...)
    provider = factory.create("groq", Strategy.RETRIEVAL_AUGMENTED)
"""

from typing import Callable, ClassVar

from assessment_validator.core.config import Settings
from assessment_validator.core.logging import PipelineLogger
from assessment_validator.schemas import Strategy
from assessment_validator.services.chunk_store import ChunkStore
from assessment_validator.services.embeddings import EmbeddingClient
from assessment_validator.services.providers.base import ChatModelFactory, ModelProvider
from assessment_validator.services.providers.retrieval_augmented import RetrievalAugmentedProvider
from assessment_validator.services.providers.whole_context import WholeContextProvider
from assessment_validator.services.resilience import ProviderCallGuard, RetryPolicy


class ProviderFactory:
    """
    Factory for strategy-specific providers.

    Attributes:
        _registry: Class-level mapping of strategy to provider class.
    """

    _registry: ClassVar[dict[Strategy, type[ModelProvider]]] = {
        Strategy.WHOLE_CONTEXT: WholeContextProvider,
        Strategy.RETRIEVAL_AUGMENTED: RetrievalAugmentedProvider,
    }

    def __init__(
        self,
        config: Settings,
        chat_model_factory: ChatModelFactory,
        embedder: EmbeddingClient,
        chunk_store: ChunkStore,
        guard_for: Callable[[str], ProviderCallGuard],
        retry_policy: RetryPolicy,
    ):
        self._config = config
        self._chat_model_factory = chat_model_factory
        self._embedder = embedder
        self._chunk_store = chunk_store
        self._guard_for = guard_for
        self._retry_policy = retry_policy

    def create(self, provider_name: str, strategy: Strategy | str) -> ModelProvider:
        """
        Raises:
            ValueError: If the strategy has no registered provider class.
        """
        strategy = Strategy(strategy)
        provider_class = self._registry.get(strategy)
        if provider_class is None:
            raise ValueError(f"Unknown strategy: '{strategy}'. Available: {[s.value for s in self._registry]}")

        common = dict(
            provider_name=provider_name,
            chat_model_factory=self._chat_model_factory,
            embedder=self._embedder,
            guard=self._guard_for(provider_name),
            retry_policy=self._retry_policy,
            logger=PipelineLogger(f"provider.{provider_name}.{strategy.value}"),
        )
        if strategy == Strategy.RETRIEVAL_AUGMENTED:
            return provider_class(
                **common,
                chunk_store=self._chunk_store,
                k=self._config.retrieval_k,
                min_similarity=self._config.retrieval_min_similarity,
            )
        return provider_class(**common, max_chars=self._config.whole_context_max_chars)

    @classmethod
    def register(cls, strategy: Strategy, provider_class: type[ModelProvider]) -> None:
        """Register a provider class for a strategy (replaces any existing one)."""
        cls._registry[strategy] = provider_class

    @classmethod
    def available_strategies(cls) -> list[str]:
        return [strategy.value for strategy in cls._registry]

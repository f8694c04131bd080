from assessment_validator.services.providers.base import EvidenceContext, GenerationOutcome, ModelProvider
from assessment_validator.services.providers.factory import ProviderFactory
from assessment_validator.services.providers.retrieval_augmented import RetrievalAugmentedProvider
from assessment_validator.services.providers.whole_context import WholeContextProvider

__all__ = [
    "EvidenceContext",
    "GenerationOutcome",
    "ModelProvider",
    "ProviderFactory",
    "RetrievalAugmentedProvider",
    "WholeContextProvider",
]

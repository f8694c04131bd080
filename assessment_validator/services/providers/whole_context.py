from typing import Sequence

from assessment_validator.schemas import Document, Requirement, Strategy
from assessment_validator.services.providers.base import EvidenceContext, ModelProvider


class WholeContextProvider(ModelProvider):
    """Sends the full text of every job document, bounded by ``max_chars``."""

    strategy = Strategy.WHOLE_CONTEXT

    def __init__(self, *args, max_chars: int = 120000, **kwargs):
        super().__init__(*args, **kwargs)
        self._max_chars = max_chars

    async def gather_context(self, requirement: Requirement, documents: Sequence[Document]) -> EvidenceContext:
        sections = [f"=== Document: {doc.name} ===\n{doc.text}" for doc in documents if doc.text.strip()]
        text = "\n\n".join(sections)
        if len(text) > self._max_chars:
            self._logger.warning(
                "gather_context",
                f"Whole-context evidence truncated from {len(text)} to {self._max_chars} chars for {requirement.id}",
            )
            text = text[: self._max_chars]
        return EvidenceContext(strategy=self.strategy, text=text)

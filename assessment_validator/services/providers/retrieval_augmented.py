from typing import Sequence

from assessment_validator.schemas import Document, Requirement, Strategy
from assessment_validator.services.chunk_store import ChunkStore
from assessment_validator.services.providers.base import EvidenceContext, ModelProvider


class RetrievalAugmentedProvider(ModelProvider):
    """
    Sends only the top-K chunks most similar to the requirement text.

    Passages are labelled ``[E1]``, ``[E2]``... in similarity order; the
    parser resolves those labels back to (document, chunk) citations.
    """

    strategy = Strategy.RETRIEVAL_AUGMENTED

    def __init__(self, *args, chunk_store: ChunkStore, k: int = 8, min_similarity: float = 0.35, **kwargs):
        super().__init__(*args, **kwargs)
        self._chunk_store = chunk_store
        self._k = k
        self._min_similarity = min_similarity

    @staticmethod
    def _query_text(requirement: Requirement) -> str:
        if requirement.element_text:
            return f"{requirement.element_text}\n{requirement.text}"
        return requirement.text

    async def gather_context(self, requirement: Requirement, documents: Sequence[Document]) -> EvidenceContext:
        query_embedding = await self.embed(self._query_text(requirement))
        passages = await self._chunk_store.query(
            query_embedding,
            k=self._k,
            min_similarity=self._min_similarity,
            document_scope=[doc.id for doc in documents],
        )
        names = {doc.id: doc.name for doc in documents}
        text = "\n\n".join(
            f"[E{position}] {names.get(p.document_id, p.document_id)} (chunk {p.chunk_index}, similarity {p.similarity:.2f})\n{p.text}"
            for position, p in enumerate(passages, 1)
        )
        self._logger.debug("gather_context", f"{len(passages)} passages for {requirement.id}")
        return EvidenceContext(strategy=self.strategy, text=text, passages=passages)

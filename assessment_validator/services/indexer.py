"""
Document indexing: chunk, embed, store.

Chunking uses a fixed character window with a fixed overlap fraction, so the
same text and parameters always produce the same chunk boundaries. The
parameters (plus the content hash) are folded into a fingerprint stored on
the document and on every chunk. An already-indexed document with a matching
fingerprint is skipped; a mismatch wipes the old chunk set first.
"""

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass

from langchain_text_splitters import CharacterTextSplitter

from assessment_validator.core.exceptions import IndexingFailure, ValidatorBaseException
from assessment_validator.core.logging import get_logger
from assessment_validator.schemas import Chunk, IndexingOutcome, IndexingParams, IndexingStatus
from assessment_validator.services.chunk_store import ChunkStore
from assessment_validator.services.embeddings import EmbeddingClient
from assessment_validator.services.repositories import DocumentRepository

logger = get_logger(__name__)


@dataclass(frozen=True)
class TextPiece:
    chunk_index: int
    start_char: int
    text: str


class DocumentIndexer:
    def __init__(
        self,
        documents: DocumentRepository,
        chunk_store: ChunkStore,
        embedder: EmbeddingClient,
        params: IndexingParams,
    ):
        self._documents = documents
        self._chunk_store = chunk_store
        self._embedder = embedder
        self._params = params
        # Un lock por documento: dos peticiones concurrentes convergen a un solo chunk set
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}
        self._splitter = CharacterTextSplitter(
            separator="",
            chunk_size=params.chunk_size,
            chunk_overlap=params.chunk_overlap,
            strip_whitespace=False,
            add_start_index=True,
        )

    @property
    def params(self) -> IndexingParams:
        return self._params

    def split(self, text: str) -> list[TextPiece]:
        """Deterministic fixed-window chunks with their start offsets."""
        if not text.strip():
            return []
        pieces = self._splitter.create_documents([text])
        return [
            TextPiece(chunk_index=position, start_char=piece.metadata["start_index"], text=piece.page_content)
            for position, piece in enumerate(pieces)
        ]

    @asynccontextmanager
    async def _document_lock(self, document_id: str):
        """Hold the lock of one document; it is dropped once nobody holds or awaits it."""
        lock = self._locks.get(document_id)
        if lock is None:
            lock = self._locks[document_id] = asyncio.Lock()
        self._lock_users[document_id] = self._lock_users.get(document_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[document_id] -= 1
            if self._lock_users[document_id] == 0:
                del self._lock_users[document_id]
                del self._locks[document_id]

    def is_indexing(self, document_id: str) -> bool:
        lock = self._locks.get(document_id)
        return lock is not None and lock.locked()

    async def index(self, document_id: str) -> IndexingOutcome:
        """
        Index one document.

        Returns:
            ``accepted`` when chunks were (re)built, ``already-indexed`` when the
            stored chunk set matches the current parameters.

        Raises:
            IndexingFailure: If chunking, embedding or storage fails. The
                document is marked ``failed`` and its partial chunks removed.
        """
        async with self._document_lock(document_id):
            document = self._documents.get(document_id)
            fingerprint = self._params.fingerprint(document.content_hash)

            if document.status == IndexingStatus.INDEXED and document.index_fingerprint == fingerprint:
                logger.info(f"Documento '{document.name}' ya indexado ({document.chunk_count} chunks)")
                return IndexingOutcome(
                    document_id=document_id,
                    status="already-indexed",
                    chunk_count=document.chunk_count,
                )

            self._documents.update(document_id, status=IndexingStatus.INDEXING, error=None)
            stage = "invalidating"
            try:
                if document.index_fingerprint is not None or document.status == IndexingStatus.FAILED:
                    await self._chunk_store.delete_document(document_id)

                stage = "chunking"
                pieces = self.split(document.text)
                if not pieces:
                    raise IndexingFailure("Document has no extractable text", document_id=document_id, stage=stage)

                stage = "embedding"
                vectors = await self._embedder.embed_many([piece.text for piece in pieces])
                if len(vectors) != len(pieces):
                    raise IndexingFailure(
                        f"Expected {len(pieces)} embeddings, got {len(vectors)}",
                        document_id=document_id,
                        stage=stage,
                    )

                stage = "upserting"
                await self._chunk_store.upsert_many(
                    [
                        Chunk(
                            document_id=document_id,
                            chunk_index=piece.chunk_index,
                            text=piece.text,
                            start_char=piece.start_char,
                            embedding=vector,
                            index_fingerprint=fingerprint,
                        )
                        for piece, vector in zip(pieces, vectors)
                    ]
                )
            except Exception as e:
                failure = e if isinstance(e, IndexingFailure) else IndexingFailure(
                    "Indexing failed",
                    document_id=document_id,
                    stage=stage,
                    details=str(e) if isinstance(e, ValidatorBaseException) else f"{type(e).__name__}: {e}",
                )
                logger.error(f"Error indexando '{document.name}': {failure}")
                await self._discard_partial(document_id)
                self._documents.update(
                    document_id,
                    status=IndexingStatus.FAILED,
                    index_fingerprint=None,
                    chunk_count=0,
                    error=str(failure),
                )
                if failure is e:
                    raise
                raise failure from e

            self._documents.update(
                document_id,
                status=IndexingStatus.INDEXED,
                index_fingerprint=fingerprint,
                chunk_count=len(pieces),
            )
            logger.info(f"Indexados {len(pieces)} chunks de '{document.name}'")
            return IndexingOutcome(document_id=document_id, status="accepted", chunk_count=len(pieces))

    async def _discard_partial(self, document_id: str) -> None:
        try:
            await self._chunk_store.delete_document(document_id)
        except Exception as cleanup_error:
            logger.warning(f"No se pudieron limpiar chunks parciales de '{document_id}': {cleanup_error}")

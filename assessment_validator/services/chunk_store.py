import asyncio
import threading
import uuid
from functools import wraps
from typing import Any, Callable, Sequence, TypeVar

from qdrant_client import QdrantClient
from qdrant_client.models import (
    Distance,
    FieldCondition,
    Filter,
    FilterSelector,
    MatchAny,
    MatchValue,
    PointStruct,
    VectorParams,
)

from assessment_validator.core.exceptions import ValidatorBaseException
from assessment_validator.core.logging import get_logger
from assessment_validator.schemas import Chunk, RetrievedChunk

logger = get_logger(__name__)
T = TypeVar("T")

COLLECTION_NAME = "assessment_chunks"
# Puntuaciones iguales hasta este numero de decimales se consideran empate
_SCORE_PRECISION = 9


class ChunkStoreError(ValidatorBaseException):
    kind = "chunk_store_error"


def _ensure_initialized(method: Callable[..., T]) -> Callable[..., T]:
    """Decorador que crea la coleccion antes de ejecutar el metodo."""
    @wraps(method)
    async def wrapper(self: "ChunkStore", *args, **kwargs) -> T:
        if not self._initialized:
            await self._initialize()
        return await method(self, *args, **kwargs)
    return wrapper


def point_id(document_id: str, chunk_index: int) -> str:
    """Deterministic Qdrant point id, so re-upserting a chunk overwrites it."""
    return str(uuid.uuid5(uuid.NAMESPACE_URL, f"chunk://{document_id}/{chunk_index}"))


def _scope_filter(document_ids: Sequence[str]) -> Filter:
    return Filter(must=[FieldCondition(key="document_id", match=MatchAny(any=list(document_ids)))])


def _document_filter(document_id: str) -> Filter:
    return Filter(must=[FieldCondition(key="document_id", match=MatchValue(value=document_id))])


class ChunkStore:
    """Chunk vectors in Qdrant in-memory with cosine similarity.

    Data lives in RAM and is wiped on restart. All client calls run in worker
    threads and are serialised with a lock, since the local client is not
    safe for concurrent writers.
    """

    def __init__(
        self,
        dimension: int,
        client: QdrantClient | None = None,
        collection_name: str = COLLECTION_NAME,
    ):
        self._dimension = dimension
        self._client = client
        self._collection_name = collection_name
        self._initialized = False
        self._client_lock = threading.Lock()

    async def _run(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        def _locked() -> T:
            with self._client_lock:
                return fn(*args, **kwargs)

        return await asyncio.to_thread(_locked)

    def _create_collection_if_missing(self) -> None:
        if self._client.collection_exists(self._collection_name):
            return
        logger.info(f"Creando colección '{self._collection_name}' (dim={self._dimension}) en Qdrant in-memory")
        self._client.create_collection(
            collection_name=self._collection_name,
            vectors_config=VectorParams(size=self._dimension, distance=Distance.COSINE),
        )

    async def _initialize(self) -> None:
        try:
            if self._client is None:
                self._client = QdrantClient(location=":memory:")
            # Comprobar y crear bajo el mismo lock: dos primeras llamadas concurrentes no chocan
            await self._run(self._create_collection_if_missing)
            self._initialized = True
        except Exception as e:
            logger.error(f"Error inicializando Qdrant in-memory: {e}")
            raise ChunkStoreError("Could not initialise the chunk collection", details=str(e)) from e

    @_ensure_initialized
    async def upsert(self, chunk: Chunk) -> None:
        """Insert or overwrite a single chunk keyed by (document_id, chunk_index)."""
        await self.upsert_many([chunk])

    @_ensure_initialized
    async def upsert_many(self, chunks: Sequence[Chunk]) -> int:
        if not chunks:
            return 0
        points = []
        for chunk in chunks:
            if len(chunk.embedding) != self._dimension:
                raise ChunkStoreError(
                    f"Embedding dimension {len(chunk.embedding)} does not match collection dimension {self._dimension}",
                    details=f"{chunk.document_id}#{chunk.chunk_index}",
                )
            points.append(
                PointStruct(
                    id=point_id(chunk.document_id, chunk.chunk_index),
                    vector=list(chunk.embedding),
                    payload={
                        "document_id": chunk.document_id,
                        "chunk_index": chunk.chunk_index,
                        "text": chunk.text,
                        "start_char": chunk.start_char,
                        "index_fingerprint": chunk.index_fingerprint,
                    },
                )
            )
        await self._run(self._client.upsert, collection_name=self._collection_name, points=points, wait=True)
        logger.debug(f"Upserted {len(points)} chunks")
        return len(points)

    @_ensure_initialized
    async def query(
        self,
        query_embedding: Sequence[float],
        k: int,
        min_similarity: float,
        document_scope: Sequence[str],
    ) -> list[RetrievedChunk]:
        """
        Return up to ``k`` chunks from ``document_scope`` ranked by cosine similarity.

        Nothing below ``min_similarity`` is returned. Equal similarities are
        ordered by ascending chunk index, then document id. An empty list means
        no supporting evidence was found.
        """
        if k <= 0 or not document_scope:
            return []
        scope = _scope_filter(document_scope)
        # Se recupera todo el scope para que el desempate sea estable en el corte k
        in_scope = await self._run(
            self._client.count,
            collection_name=self._collection_name,
            count_filter=scope,
            exact=True,
        )
        if in_scope.count == 0:
            return []
        response = await self._run(
            self._client.query_points,
            collection_name=self._collection_name,
            query=list(query_embedding),
            query_filter=scope,
            limit=in_scope.count,
            score_threshold=min_similarity,
            with_payload=True,
        )
        hits = [
            RetrievedChunk(
                document_id=point.payload["document_id"],
                chunk_index=point.payload["chunk_index"],
                text=point.payload["text"],
                start_char=point.payload.get("start_char", 0),
                similarity=point.score,
            )
            for point in response.points
            if point.score >= min_similarity
        ]
        hits.sort(key=lambda hit: (-round(hit.similarity, _SCORE_PRECISION), hit.chunk_index, hit.document_id))
        return hits[:k]

    @_ensure_initialized
    async def delete_document(self, document_id: str) -> None:
        await self._run(
            self._client.delete,
            collection_name=self._collection_name,
            points_selector=FilterSelector(filter=_document_filter(document_id)),
            wait=True,
        )
        logger.debug(f"Chunks de '{document_id}' eliminados")

    @_ensure_initialized
    async def count(self, document_id: str | None = None) -> int:
        result = await self._run(
            self._client.count,
            collection_name=self._collection_name,
            count_filter=_document_filter(document_id) if document_id else None,
            exact=True,
        )
        return result.count

    @_ensure_initialized
    async def list_chunks(self, document_id: str) -> list[Chunk]:
        """All chunks of a document ordered by chunk index."""
        chunks: list[Chunk] = []
        offset = None
        while True:
            records, offset = await self._run(
                self._client.scroll,
                collection_name=self._collection_name,
                scroll_filter=_document_filter(document_id),
                limit=256,
                offset=offset,
                with_payload=True,
                with_vectors=True,
            )
            for record in records:
                chunks.append(
                    Chunk(
                        document_id=record.payload["document_id"],
                        chunk_index=record.payload["chunk_index"],
                        text=record.payload["text"],
                        start_char=record.payload.get("start_char", 0),
                        embedding=list(record.vector or []),
                        index_fingerprint=record.payload.get("index_fingerprint", ""),
                    )
                )
            if offset is None:
                break
        return sorted(chunks, key=lambda chunk: chunk.chunk_index)

    @_ensure_initialized
    async def get_stats(self) -> dict:
        total = await self.count()
        return {"total_vectors": total, "dimension": self._dimension, "collection": self._collection_name}

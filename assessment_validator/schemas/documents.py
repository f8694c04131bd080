"""Documents, chunks and indexing parameters."""

import hashlib
import json
from datetime import datetime, timezone
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IndexingStatus(str, Enum):
    PENDING = "pending"
    INDEXING = "indexing"
    INDEXED = "indexed"
    FAILED = "failed"


class Document(BaseModel):
    """A source document with its already-extracted text."""

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    text: str
    job_id: str | None = None
    content_hash: str = ""
    status: IndexingStatus = IndexingStatus.PENDING
    index_fingerprint: str | None = Field(default=None, description="Fingerprint of the parameters the current chunk set was built with")
    chunk_count: int = Field(default=0, ge=0)
    error: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)

    @model_validator(mode="after")
    def _fill_content_hash(self) -> "Document":
        if not self.content_hash:
            self.content_hash = hashlib.sha256(self.text.encode("utf-8")).hexdigest()
        return self


class Chunk(BaseModel):
    document_id: str
    chunk_index: int = Field(..., ge=0)
    text: str
    start_char: int = Field(default=0, ge=0)
    embedding: list[float]
    index_fingerprint: str = ""


class RetrievedChunk(BaseModel):
    """A chunk returned by a similarity query, with its cosine similarity."""

    document_id: str
    chunk_index: int
    text: str
    start_char: int = 0
    similarity: float


class IndexingParams(BaseModel):
    """Parameters that determine chunk boundaries and vectors.

    Any change here yields a new fingerprint, which invalidates chunk sets built
    with the old parameters.
    """

    model_config = ConfigDict(frozen=True)

    chunk_size: int = Field(..., ge=1)
    overlap_fraction: float = Field(..., ge=0.0, lt=1.0)
    chunker_version: str
    embedding_model: str

    @property
    def chunk_overlap(self) -> int:
        return int(round(self.chunk_size * self.overlap_fraction))

    def fingerprint(self, content_hash: str = "") -> str:
        payload = json.dumps({**self.model_dump(), "content_hash": content_hash}, sort_keys=True)
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:16]


class IndexingOutcome(BaseModel):
    document_id: str
    status: Literal["accepted", "already-indexed", "failed"]
    chunk_count: int = 0
    reason: str | None = None

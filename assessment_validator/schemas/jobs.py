from datetime import datetime, timezone
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from assessment_validator.schemas.prompts import DocumentType


class JobStatus(str, Enum):
    PENDING = "pending"
    INDEXING = "indexing"
    VALIDATING = "validating"
    FINALIZED = "finalized"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_JOB_STATUSES = frozenset({JobStatus.FINALIZED, JobStatus.FAILED, JobStatus.CANCELLED})


class Strategy(str, Enum):
    WHOLE_CONTEXT = "whole_context"
    RETRIEVAL_AUGMENTED = "retrieval_augmented"


class ValidationJob(BaseModel):
    """
    A validation run over a fixed document set and requirement list.

    Provider and strategy are chosen once at creation and never re-read from
    configuration while the job runs.
    """

    id: str
    unit_code: str = ""
    unit_title: str = ""
    document_type: DocumentType = DocumentType.BOTH
    document_ids: list[str] = Field(default_factory=list)
    requirement_ids: list[str] = Field(default_factory=list)
    provider: str
    strategy: Strategy
    status: JobStatus = JobStatus.PENDING
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    cancel_requested: bool = False
    error: Optional[str] = None
    error_kind: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    finalized_at: Optional[datetime] = None


class ProgressSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    job_id: str
    status: JobStatus
    total: int
    succeeded: int
    failed: int
    pending: int


class TriggerResponse(BaseModel):
    status: Literal["accepted", "rejected"]
    reason: Optional[str] = None

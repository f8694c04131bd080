from datetime import datetime, timezone
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, Field


class Verdict(str, Enum):
    MET = "Met"
    PARTIALLY_MET = "Partially Met"
    NOT_MET = "Not Met"


class ResultStatus(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class Citation(BaseModel):
    """Pointer to the evidence a verdict relies on."""

    document_id: Optional[str] = None
    chunk_index: Optional[int] = None
    page: Optional[int] = None
    location: Optional[str] = Field(default=None, description="Free-text location, e.g. 'Section 2, Page 14'")
    excerpt: Optional[str] = None


class StructuredVerdict(BaseModel):
    """The normalised verdict every provider adapter maps its output into."""

    verdict: Verdict
    reasoning: str = ""
    citations: list[Citation] = Field(default_factory=list)
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    mapped_content: Optional[str] = None
    gaps: Optional[str] = None
    smart_question: Optional[str] = None
    benchmark_answer: Optional[str] = None


class ValidationResult(BaseModel):
    """Persisted outcome for one (job, requirement) pair."""

    job_id: str
    requirement_id: str
    status: ResultStatus = ResultStatus.PENDING
    verdict: Optional[Verdict] = None
    reasoning: Optional[str] = None
    citations: list[Citation] = Field(default_factory=list)
    confidence: Optional[float] = None
    mapped_content: Optional[str] = None
    gaps: Optional[str] = None
    smart_question: Optional[str] = None
    benchmark_answer: Optional[str] = None
    attempt_count: int = Field(default=0, ge=0)
    error_kind: Optional[str] = None
    error_message: Optional[str] = None
    prompt_version: Optional[int] = None
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ResultSummary(BaseModel):
    total: int
    met: int
    partially_met: int
    not_met: int
    failed: int
    pending: int
    overall_status: Literal["met", "partial", "not_met", "incomplete"]
    average_confidence: Optional[float] = None
    citation_coverage: float = Field(..., description="Percentage of verdicts carrying at least one citation")
    quality_flags: list[str] = Field(default_factory=list)

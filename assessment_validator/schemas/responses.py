from typing import Literal

from pydantic import BaseModel

from assessment_validator.schemas.documents import IndexingStatus
from assessment_validator.schemas.jobs import JobStatus
from assessment_validator.schemas.results import ResultSummary, ValidationResult


class DocumentResponse(BaseModel):
    id: str
    name: str
    job_id: str | None
    status: IndexingStatus
    chunk_count: int
    error: str | None = None


class JobStatusResponse(BaseModel):
    job_id: str
    status: JobStatus
    total: int
    succeeded: int
    failed: int
    pending: int
    error: str | None = None
    error_kind: str | None = None


class JobResultsResponse(BaseModel):
    job_id: str
    status: JobStatus
    results: list[ValidationResult]
    summary: ResultSummary


class HealthResponse(BaseModel):
    status: Literal["ok", "degraded"]
    env: str
    rate_limits: dict[str, dict]

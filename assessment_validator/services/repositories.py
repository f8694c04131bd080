"""
In-memory repositories for documents, requirements, jobs and results.

Stored models are replaced wholesale on every update (``model_copy``), so a
reader always sees either the old row or the new one, never a half-applied
change. Each repository guards its dict with a lock because indexing and
validation write from different tasks and from ``asyncio.to_thread`` workers.
"""

import threading
from datetime import datetime, timezone
from typing import Any, Iterable

from assessment_validator.core.exceptions import (
    DocumentNotFoundError,
    JobNotFoundError,
    RequirementNotFoundError,
)
from assessment_validator.schemas import Document, Requirement, ValidationJob, ValidationResult


def _now() -> datetime:
    return datetime.now(timezone.utc)


class DocumentRepository:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._rows: dict[str, Document] = {}

    def add(self, document: Document) -> Document:
        with self._lock:
            self._rows[document.id] = document
        return document

    def get(self, document_id: str) -> Document:
        with self._lock:
            document = self._rows.get(document_id)
        if document is None:
            raise DocumentNotFoundError(document_id)
        return document

    def list_all(self) -> list[Document]:
        with self._lock:
            return list(self._rows.values())

    def get_many(self, document_ids: Iterable[str]) -> list[Document]:
        return [self.get(document_id) for document_id in document_ids]

    def update(self, document_id: str, **changes: Any) -> Document:
        with self._lock:
            current = self._rows.get(document_id)
            if current is None:
                raise DocumentNotFoundError(document_id)
            updated = current.model_copy(update=changes)
            self._rows[document_id] = updated
        return updated


class RequirementRepository:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._rows: dict[str, Requirement] = {}

    def add_many(self, requirements: Iterable[Requirement]) -> list[Requirement]:
        added = list(requirements)
        with self._lock:
            for requirement in added:
                self._rows[requirement.id] = requirement
        return added

    def get(self, requirement_id: str) -> Requirement:
        with self._lock:
            requirement = self._rows.get(requirement_id)
        if requirement is None:
            raise RequirementNotFoundError(requirement_id)
        return requirement

    def list_all(self) -> list[Requirement]:
        with self._lock:
            return list(self._rows.values())

    def get_many(self, requirement_ids: Iterable[str]) -> list[Requirement]:
        return [self.get(requirement_id) for requirement_id in requirement_ids]

    def find_by_unit(self, unit_code: str) -> list[Requirement]:
        with self._lock:
            return [r for r in self._rows.values() if r.unit_code == unit_code]


class JobRepository:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._rows: dict[str, ValidationJob] = {}

    def add(self, job: ValidationJob) -> ValidationJob:
        with self._lock:
            self._rows[job.id] = job
        return job

    def get(self, job_id: str) -> ValidationJob:
        with self._lock:
            job = self._rows.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def list_all(self) -> list[ValidationJob]:
        with self._lock:
            return list(self._rows.values())

    def update(self, job_id: str, **changes: Any) -> ValidationJob:
        with self._lock:
            current = self._rows.get(job_id)
            if current is None:
                raise JobNotFoundError(job_id)
            updated = current.model_copy(update={**changes, "updated_at": _now()})
            self._rows[job_id] = updated
        return updated


class ResultRepository:
    """Results keyed by (job_id, requirement_id); writes are upserts."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._rows: dict[tuple[str, str], ValidationResult] = {}

    def upsert(self, result: ValidationResult) -> ValidationResult:
        stamped = result.model_copy(update={"updated_at": _now()})
        with self._lock:
            self._rows[(result.job_id, result.requirement_id)] = stamped
        return stamped

    def get(self, job_id: str, requirement_id: str) -> ValidationResult | None:
        with self._lock:
            return self._rows.get((job_id, requirement_id))

    def list_for_job(self, job_id: str) -> list[ValidationResult]:
        with self._lock:
            return [row for (owner, _), row in self._rows.items() if owner == job_id]

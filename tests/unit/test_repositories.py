"""
Unit tests for the in-memory repositories.
"""

import pytest

from assessment_validator.core.exceptions import DocumentNotFoundError, RequirementNotFoundError
from assessment_validator.schemas import Document, ResultStatus, Strategy, ValidationJob, ValidationResult
from assessment_validator.services.repositories import (
    DocumentRepository,
    JobRepository,
    RequirementRepository,
    ResultRepository,
)


class TestDocumentRepository:
    """Tests for DocumentRepository."""

    def test_list_all_and_get_many(self):
        repository = DocumentRepository()
        repository.add(Document(id="d1", name="Tool.pdf", text="hazards"))
        repository.add(Document(id="d2", name="Guide.pdf", text="reports"))

        assert {d.id for d in repository.list_all()} == {"d1", "d2"}
        assert [d.id for d in repository.get_many(["d2", "d1"])] == ["d2", "d1"]

    def test_get_many_with_unknown_id_raises(self):
        repository = DocumentRepository()
        repository.add(Document(id="d1", name="Tool.pdf", text="hazards"))

        with pytest.raises(DocumentNotFoundError):
            repository.get_many(["d1", "missing"])

    def test_update_replaces_the_row(self):
        repository = DocumentRepository()
        original = repository.add(Document(id="d1", name="Tool.pdf", text="hazards"))

        updated = repository.update("d1", chunk_count=4)

        assert updated.chunk_count == 4
        assert original.chunk_count == 0
        assert repository.get("d1") is updated


class TestRequirementRepository:
    """Tests for RequirementRepository."""

    def test_list_all_get_many_and_find_by_unit(self, make_requirements):
        repository = RequirementRepository()
        repository.add_many(make_requirements(2, unit_code="BSBWHS211"))
        repository.add_many([
            requirement.model_copy(update={"id": f"other-{requirement.id}", "unit_code": "BSBOPS304"})
            for requirement in make_requirements(1)
        ])

        assert len(repository.list_all()) == 3
        assert [r.id for r in repository.get_many(["req-02", "req-01"])] == ["req-02", "req-01"]
        assert [r.id for r in repository.find_by_unit("BSBOPS304")] == ["other-req-01"]

    def test_unknown_requirement_raises(self):
        with pytest.raises(RequirementNotFoundError):
            RequirementRepository().get("missing")


class TestJobAndResultRepositories:
    """Tests for JobRepository and ResultRepository."""

    def test_job_list_all_and_update_stamp(self):
        repository = JobRepository()
        job = repository.add(ValidationJob(id="job-1", provider="groq", strategy=Strategy.WHOLE_CONTEXT))

        updated = repository.update("job-1", succeeded=1)

        assert [j.id for j in repository.list_all()] == ["job-1"]
        assert updated.succeeded == 1
        assert updated.updated_at >= job.updated_at

    def test_results_upsert_by_job_and_requirement(self):
        repository = ResultRepository()
        repository.upsert(ValidationResult(job_id="job-1", requirement_id="req-01"))
        repository.upsert(ValidationResult(job_id="job-1", requirement_id="req-01", status=ResultStatus.SUCCEEDED))
        repository.upsert(ValidationResult(job_id="job-2", requirement_id="req-01"))

        rows = repository.list_for_job("job-1")

        assert len(rows) == 1
        assert rows[0].status == ResultStatus.SUCCEEDED
        assert repository.get("job-2", "req-02") is None

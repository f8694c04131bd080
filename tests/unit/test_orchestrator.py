"""
Unit tests for ValidationOrchestrator triggers.

Covers StartIndexing, StartValidation, RevalidateRequirement, cancellation
and GetJobStatus, including rejection paths.
"""

import asyncio
import json

import pytest

from assessment_validator.core.exceptions import DocumentNotFoundError, JobNotFoundError, JobPrerequisiteError
from assessment_validator.schemas import TERMINAL_JOB_STATUSES, IndexingStatus, JobStatus, ResultStatus, Strategy, Verdict


@pytest.fixture
def indexed_job(orchestrator, make_requirements, assessment_text):
    """Factory creating a job over one document and ``count`` requirements."""
    def _create(count: int = 3, strategy: Strategy = Strategy.RETRIEVAL_AUGMENTED, text: str | None = None):
        document = orchestrator.register_document(name="Assessment Tool.pdf", text=text if text is not None else assessment_text)
        requirements = orchestrator.load_requirements(make_requirements(count))
        return orchestrator.create_job(
            document_ids=[document.id],
            requirement_ids=[r.id for r in requirements],
            unit_code="BSBWHS211",
            unit_title="Contribute to the health and safety of self and others",
            strategy=strategy,
        )
    return _create


class TestCreateJob:
    """Tests for ValidationOrchestrator.create_job()."""

    def test_job_starts_pending_with_fixed_provider_and_strategy(self, orchestrator, indexed_job, test_settings):
        job = indexed_job(2, Strategy.WHOLE_CONTEXT)

        assert job.status == JobStatus.PENDING
        assert job.provider == test_settings.default_provider
        assert job.strategy == Strategy.WHOLE_CONTEXT
        assert job.total == 2

    def test_requirements_default_to_unit(self, orchestrator, make_requirements):
        document = orchestrator.register_document(name="Guide.pdf", text="safety")
        orchestrator.load_requirements(make_requirements(4, unit_code="BSBWHS211"))

        job = orchestrator.create_job(document_ids=[document.id], unit_code="BSBWHS211")

        assert len(job.requirement_ids) == 4

    def test_duplicate_requirement_ids_count_once(self, orchestrator, make_requirements):
        document = orchestrator.register_document(name="Guide.pdf", text="safety")
        orchestrator.load_requirements(make_requirements(2))

        job = orchestrator.create_job(
            document_ids=[document.id],
            requirement_ids=["req-02", "req-01", "req-02", "req-01"],
        )

        assert job.requirement_ids == ["req-02", "req-01"]
        assert job.total == 2

    def test_unknown_document_raises(self, orchestrator):
        with pytest.raises(DocumentNotFoundError):
            orchestrator.create_job(document_ids=["missing"], requirement_ids=[])

    def test_unknown_provider_raises(self, orchestrator):
        document = orchestrator.register_document(name="Guide.pdf", text="safety")

        with pytest.raises(ValueError):
            orchestrator.create_job(document_ids=[document.id], provider="mystery")


class TestStartIndexing:
    """Tests for ValidationOrchestrator.start_indexing()."""

    @pytest.mark.asyncio
    async def test_indexing_moves_job_to_indexing(self, test_container, orchestrator, indexed_job):
        job = indexed_job()

        outcome = await orchestrator.start_indexing(job.document_ids[0])

        assert outcome.status == "accepted"
        assert test_container.jobs.get(job.id).status == JobStatus.INDEXING

    @pytest.mark.asyncio
    async def test_second_indexing_reports_already_indexed(self, orchestrator, indexed_job):
        job = indexed_job()
        await orchestrator.start_indexing(job.document_ids[0])

        outcome = await orchestrator.start_indexing(job.document_ids[0])

        assert outcome.status == "already-indexed"

    @pytest.mark.asyncio
    async def test_indexing_failure_fails_only_the_owning_job(self, test_container, orchestrator, indexed_job):
        broken = indexed_job(text="   ")
        healthy = indexed_job()

        outcome = await orchestrator.start_indexing(broken.document_ids[0])

        assert outcome.status == "failed"
        assert outcome.reason
        assert test_container.jobs.get(broken.id).status == JobStatus.FAILED
        assert test_container.jobs.get(broken.id).error_kind == "indexing_failure"
        assert test_container.jobs.get(healthy.id).status == JobStatus.PENDING

    @pytest.mark.asyncio
    async def test_unknown_document_raises(self, orchestrator):
        with pytest.raises(DocumentNotFoundError):
            await orchestrator.start_indexing("missing")


class TestStartValidation:
    """Tests for ValidationOrchestrator.start_validation()."""

    @pytest.mark.asyncio
    async def test_accepted_job_runs_to_finalized(self, orchestrator, indexed_job):
        job = indexed_job(3)
        await orchestrator.start_indexing(job.document_ids[0])

        response = await orchestrator.start_validation(job.id)
        snapshot = await orchestrator.wait_for_job(job.id)

        assert response.status == "accepted"
        assert snapshot.status == JobStatus.FINALIZED
        assert (snapshot.succeeded, snapshot.failed, snapshot.pending) == (3, 0, 0)

    @pytest.mark.asyncio
    async def test_rejected_while_document_is_indexing(self, test_container, orchestrator, indexed_job):
        job = indexed_job()
        test_container.documents.update(job.document_ids[0], status=IndexingStatus.INDEXING)

        response = await orchestrator.start_validation(job.id)

        assert response.status == "rejected"
        assert "indexing" in response.reason
        assert test_container.jobs.get(job.id).status == JobStatus.PENDING

    @pytest.mark.asyncio
    async def test_retrieval_job_with_unindexed_document_is_rejected(self, test_container, orchestrator, indexed_job):
        job = indexed_job()

        response = await orchestrator.start_validation(job.id)

        assert response.status == "rejected"
        assert test_container.jobs.get(job.id).status == JobStatus.PENDING

    @pytest.mark.asyncio
    async def test_whole_context_job_with_unindexed_document_is_rejected(self, test_container, orchestrator, indexed_job, scripted_llm):
        job = indexed_job(2, Strategy.WHOLE_CONTEXT)

        response = await orchestrator.start_validation(job.id)

        assert response.status == "rejected"
        assert "not indexed" in response.reason
        assert test_container.jobs.get(job.id).status == JobStatus.PENDING
        assert test_container.results.list_for_job(job.id) == []
        scripted_llm.ainvoke.assert_not_called()

    @pytest.mark.asyncio
    async def test_documents_indexed_before_job_creation_are_accepted(self, test_container, orchestrator, make_requirements, assessment_text):
        document = orchestrator.register_document(name="Tool.pdf", text=assessment_text)
        await orchestrator.start_indexing(document.id)
        requirements = orchestrator.load_requirements(make_requirements(2))
        job = orchestrator.create_job(document_ids=[document.id], requirement_ids=[r.id for r in requirements], strategy=Strategy.WHOLE_CONTEXT)

        response = await orchestrator.start_validation(job.id)
        snapshot = await orchestrator.wait_for_job(job.id)

        assert response.status == "accepted"
        assert snapshot.status == JobStatus.FINALIZED

    @pytest.mark.asyncio
    async def test_wait_for_indexing_indexes_first(self, orchestrator, indexed_job):
        job = indexed_job(2)

        response = await orchestrator.start_validation(job.id, wait_for_indexing=True)
        snapshot = await orchestrator.wait_for_job(job.id)

        assert response.status == "accepted"
        assert snapshot.status == JobStatus.FINALIZED

    @pytest.mark.asyncio
    async def test_failed_document_fails_the_job(self, test_container, orchestrator, make_requirements):
        document = orchestrator.register_document(name="Scan.pdf", text="")
        await orchestrator.start_indexing(document.id)
        requirements = orchestrator.load_requirements(make_requirements(1))
        job = orchestrator.create_job(
            document_ids=[document.id],
            requirement_ids=[r.id for r in requirements],
            strategy=Strategy.WHOLE_CONTEXT,
        )

        response = await orchestrator.start_validation(job.id)

        assert response.status == "rejected"
        assert test_container.jobs.get(job.id).status == JobStatus.FAILED

    @pytest.mark.asyncio
    async def test_job_without_requirements_fails(self, test_container, orchestrator):
        document = orchestrator.register_document(name="Guide.pdf", text="safety report")
        job = orchestrator.create_job(document_ids=[document.id], strategy=Strategy.WHOLE_CONTEXT)

        response = await orchestrator.start_validation(job.id)

        job = test_container.jobs.get(job.id)
        assert response.status == "rejected"
        assert job.status == JobStatus.FAILED
        assert "no requirements" in job.error
        assert job.error_kind == "job_prerequisite_error"

    @pytest.mark.asyncio
    async def test_second_start_is_rejected(self, orchestrator, indexed_job):
        job = indexed_job(2, Strategy.WHOLE_CONTEXT)

        first = await orchestrator.start_validation(job.id, wait_for_indexing=True)
        second = await orchestrator.start_validation(job.id)
        await orchestrator.wait_for_job(job.id)

        assert first.status == "accepted"
        assert second.status == "rejected"

    @pytest.mark.asyncio
    async def test_unknown_job_raises(self, orchestrator):
        with pytest.raises(JobNotFoundError):
            await orchestrator.start_validation("missing")


class TestRevalidateRequirement:
    """Tests for ValidationOrchestrator.revalidate_requirement()."""

    @pytest.mark.asyncio
    async def test_revalidate_after_finalize(self, test_container, orchestrator, indexed_job, scripted_llm, verdict_json):
        job = indexed_job(3, Strategy.WHOLE_CONTEXT)
        scripted_llm.reply_for("R03", verdict_json("Not Met", "first"))
        await orchestrator.start_validation(job.id, wait_for_indexing=True)
        await orchestrator.wait_for_job(job.id)
        untouched = test_container.results.get(job.id, "req-01")

        scripted_llm.reply_for("R03", verdict_json("Met", "second"))
        response = await orchestrator.revalidate_requirement(job.id, "req-03", wait=True)

        results, summary = orchestrator.get_results(job.id)
        assert response.status == "accepted"
        assert [row.requirement_id for row in results] == ["req-01", "req-02", "req-03"]
        assert results[2].verdict == Verdict.MET
        assert results[0] == untouched
        assert summary.overall_status == "met"
        assert orchestrator.get_job_status(job.id).status == JobStatus.FINALIZED

    @pytest.mark.asyncio
    async def test_revalidate_rejected_before_finalize(self, orchestrator, indexed_job):
        job = indexed_job(1, Strategy.WHOLE_CONTEXT)

        response = await orchestrator.revalidate_requirement(job.id, "req-01")

        assert response.status == "rejected"

    @pytest.mark.asyncio
    async def test_revalidate_rejects_foreign_requirement(self, orchestrator, indexed_job):
        job = indexed_job(1, Strategy.WHOLE_CONTEXT)
        await orchestrator.start_validation(job.id, wait_for_indexing=True)
        await orchestrator.wait_for_job(job.id)

        response = await orchestrator.revalidate_requirement(job.id, "req-99")

        assert response.status == "rejected"

    @pytest.mark.asyncio
    async def test_concurrent_revalidation_of_same_requirement_is_rejected(self, orchestrator, indexed_job):
        job = indexed_job(1, Strategy.WHOLE_CONTEXT)
        await orchestrator.start_validation(job.id, wait_for_indexing=True)
        await orchestrator.wait_for_job(job.id)

        first = await orchestrator.revalidate_requirement(job.id, "req-01")
        second = await orchestrator.revalidate_requirement(job.id, "req-01")
        await asyncio.gather(*orchestrator._revalidations.values())

        assert first.status == "accepted"
        assert second.status == "rejected"


class TestRegenerateSmartQuestion:
    """Tests for ValidationOrchestrator.regenerate_smart_question()."""

    SMART_MARKER = "Write ONE SMART question"

    @pytest.fixture
    def smart_reply(self):
        return json.dumps({
            "question": "Describe how you would report a damaged ladder on site.",
            "benchmark_answer": "Tag it out of service and notify the supervisor in writing.",
            "question_type": "scenario",
        })

    async def _finalized_job(self, orchestrator, indexed_job, scripted_llm, verdict_json):
        job = indexed_job(2, Strategy.WHOLE_CONTEXT)
        scripted_llm.reply_for("R02", verdict_json("Not Met", "No reporting procedure", smart_question="old question"))
        await orchestrator.start_validation(job.id, wait_for_indexing=True)
        await orchestrator.wait_for_job(job.id)
        # El prompt SMART tambien contiene "R02"
        scripted_llm.forget("R02")
        return job

    @pytest.mark.asyncio
    async def test_only_the_question_fields_change(
        self, test_container, orchestrator, indexed_job, scripted_llm, verdict_json, smart_reply
    ):
        job = await self._finalized_job(orchestrator, indexed_job, scripted_llm, verdict_json)
        before = test_container.results.get(job.id, "req-02")
        other = test_container.results.get(job.id, "req-01")
        scripted_llm.reply_for(self.SMART_MARKER, smart_reply)

        updated = await orchestrator.regenerate_smart_question(job.id, "req-02")

        assert updated.smart_question.startswith("Describe how you would report")
        assert updated.benchmark_answer.startswith("Tag it out of service")
        assert updated.verdict == before.verdict == Verdict.NOT_MET
        assert updated.reasoning == before.reasoning
        assert updated.citations == before.citations
        assert test_container.results.get(job.id, "req-01") == other
        assert test_container.jobs.get(job.id).status == JobStatus.FINALIZED

    @pytest.mark.asyncio
    async def test_prompt_carries_verdict_and_reviewer_context(
        self, orchestrator, indexed_job, scripted_llm, verdict_json, smart_reply
    ):
        job = await self._finalized_job(orchestrator, indexed_job, scripted_llm, verdict_json)
        scripted_llm.reply_for(self.SMART_MARKER, smart_reply)

        await orchestrator.regenerate_smart_question(job.id, "req-02", user_context="Focus on ladders")

        prompt = scripted_llm.prompts()[-1]
        assert self.SMART_MARKER in prompt
        assert "Focus on ladders" in prompt
        assert "No reporting procedure" in prompt
        assert "old question" in prompt

    @pytest.mark.asyncio
    async def test_rejected_before_finalize(self, orchestrator, indexed_job, scripted_llm):
        job = indexed_job(1, Strategy.WHOLE_CONTEXT)

        with pytest.raises(JobPrerequisiteError):
            await orchestrator.regenerate_smart_question(job.id, "req-01")

        assert scripted_llm.ainvoke.call_count == 0

    @pytest.mark.asyncio
    async def test_failed_row_is_rejected(self, orchestrator, indexed_job, scripted_llm):
        job = indexed_job(1, Strategy.WHOLE_CONTEXT)
        scripted_llm.reply_for("R01", "not json at all")
        await orchestrator.start_validation(job.id, wait_for_indexing=True)
        await orchestrator.wait_for_job(job.id)

        with pytest.raises(JobPrerequisiteError):
            await orchestrator.regenerate_smart_question(job.id, "req-01")


class TestCancelAndStatus:
    """Tests for cancel_job() and get_job_status()."""

    def test_cancel_pending_job(self, test_container, orchestrator, indexed_job):
        job = indexed_job()

        response = orchestrator.cancel_job(job.id)

        assert response.status == "accepted"
        assert test_container.jobs.get(job.id).status == JobStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_cancel_finalized_job_is_rejected(self, orchestrator, indexed_job):
        job = indexed_job(1, Strategy.WHOLE_CONTEXT)
        await orchestrator.start_validation(job.id, wait_for_indexing=True)
        await orchestrator.wait_for_job(job.id)

        assert orchestrator.cancel_job(job.id).status == "rejected"

    @pytest.mark.asyncio
    async def test_status_counters_add_up_while_running(self, orchestrator, indexed_job):
        job = indexed_job(6, Strategy.WHOLE_CONTEXT)
        await orchestrator.start_validation(job.id, wait_for_indexing=True)

        snapshots = []
        while True:
            snapshot = orchestrator.get_job_status(job.id)
            snapshots.append(snapshot)
            if snapshot.status in TERMINAL_JOB_STATUSES:
                break
            await asyncio.sleep(0)

        for snapshot in snapshots:
            assert snapshot.succeeded + snapshot.failed + snapshot.pending == snapshot.total
        assert snapshots[-1].status == JobStatus.FINALIZED
        assert snapshots[-1].succeeded == 6

    @pytest.mark.asyncio
    async def test_results_summary_counts_failures(self, orchestrator, indexed_job, scripted_llm):
        job = indexed_job(2, Strategy.WHOLE_CONTEXT)
        scripted_llm.reply_for("R02", RuntimeError("down"))
        await orchestrator.start_validation(job.id, wait_for_indexing=True)
        await orchestrator.wait_for_job(job.id)

        results, summary = orchestrator.get_results(job.id)

        assert results[1].status == ResultStatus.FAILED
        assert summary.failed == 1
        assert summary.overall_status == "incomplete"


class TestSharedRateLimits:
    """Jobs on the same provider draw from one limiter."""

    def test_containers_share_the_process_registry(self, test_settings):
        from assessment_validator.services.container import DependencyContainer
        from assessment_validator.services.rate_limiter import get_rate_limiter_registry

        first = DependencyContainer(config=test_settings)
        second = DependencyContainer(config=test_settings)

        assert first.rate_limiters is get_rate_limiter_registry()
        assert first.rate_limiters.get("groq") is second.rate_limiters.get("groq")

    @pytest.mark.asyncio
    async def test_two_jobs_exhaust_one_bucket(self, test_container, orchestrator, indexed_job, scripted_llm):
        from assessment_validator.services.rate_limiter import TokenBucketLimiter

        test_container.rate_limiters.register(
            TokenBucketLimiter(name="groq", capacity=3, window_seconds=60.0, wait_ceiling_seconds=0.05)
        )
        first = indexed_job(2, Strategy.WHOLE_CONTEXT)
        second = indexed_job(2, Strategy.WHOLE_CONTEXT)

        for job in (first, second):
            assert (await orchestrator.start_validation(job.id, wait_for_indexing=True)).status == "accepted"
        snapshots = [await orchestrator.wait_for_job(job.id) for job in (first, second)]
        failures = [
            row for job in (first, second) for row in orchestrator.get_results(job.id)[0]
            if row.status == ResultStatus.FAILED
        ]
        stats = test_container.rate_limiters.get("groq").get_stats()

        assert sum(s.succeeded for s in snapshots) == 3
        assert sum(s.failed for s in snapshots) == 1
        assert [row.error_kind for row in failures] == ["rate_limit_error"]
        assert stats["total_admitted"] == 3
        assert scripted_llm.ainvoke.call_count == 3

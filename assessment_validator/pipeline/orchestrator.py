"""
External trigger surface of the validation engine.

``ValidationOrchestrator`` owns job creation, indexing, validation start,
single-requirement re-validation, SMART question regeneration, cancellation
and status reads. Validation runs as a background asyncio task per job;
callers poll ``get_job_status``.
"""

import asyncio
import uuid
from typing import Iterable, Optional

from assessment_validator.core.exceptions import (
    IndexingFailure,
    InvalidStateTransitionError,
    JobPrerequisiteError,
    ResourceNotFoundError,
)
from assessment_validator.core.logging import PipelineLogger
from assessment_validator.pipeline.lifecycle import fail_job, transition_job
from assessment_validator.pipeline.loop import ValidationLoop
from assessment_validator.pipeline.smart_questions import regenerate_smart_question
from assessment_validator.schemas import (
    TERMINAL_JOB_STATUSES,
    Document,
    DocumentType,
    IndexingOutcome,
    IndexingStatus,
    JobStatus,
    ProgressSnapshot,
    Requirement,
    ResultStatus,
    ResultSummary,
    Strategy,
    TriggerResponse,
    ValidationJob,
    ValidationResult,
)
from assessment_validator.services.progress import summarize_results
from assessment_validator.services.llm_factory import SUPPORTED_PROVIDERS


def _rejected(reason: str) -> TriggerResponse:
    return TriggerResponse(status="rejected", reason=reason)


class ValidationOrchestrator:
    """
    Entry point for StartIndexing, StartValidation, RevalidateRequirement and
    GetJobStatus.

    Attributes:
        container: DependencyContainer providing every service.
    """

    def __init__(self, container):
        self.container = container
        self._loop = ValidationLoop(container)
        self._logger = PipelineLogger("orchestrator")
        self._tasks: dict[str, asyncio.Task] = {}
        self._revalidations: dict[tuple[str, str], asyncio.Task] = {}

    # -- registration --------------------------------------------------------

    def register_document(self, name: str, text: str, job_id: Optional[str] = None, document_id: Optional[str] = None) -> Document:
        document = Document(id=document_id or uuid.uuid4().hex, name=name, text=text, job_id=job_id)
        return self.container.documents.add(document)

    def load_requirements(self, requirements: Iterable[Requirement]) -> list[Requirement]:
        return self.container.requirements.add_many(requirements)

    def create_job(
        self,
        document_ids: list[str],
        requirement_ids: Optional[list[str]] = None,
        unit_code: str = "",
        unit_title: str = "",
        document_type: DocumentType | str = DocumentType.BOTH,
        provider: Optional[str] = None,
        strategy: Optional[Strategy | str] = None,
    ) -> ValidationJob:
        """
        Create a pending job. Provider and strategy are fixed here.

        Raises:
            ResourceNotFoundError: If a document or requirement id is unknown.
            ValueError: If the provider is not supported.
        """
        config = self.container.config
        provider = provider or config.default_provider
        if provider not in SUPPORTED_PROVIDERS:
            raise ValueError(f"Unknown provider: '{provider}'. Supported: {', '.join(SUPPORTED_PROVIDERS)}.")

        # Ids repetidos cuentan una sola vez
        requirement_ids = list(dict.fromkeys(requirement_ids or []))
        documents = self.container.documents.get_many(document_ids)
        if requirement_ids:
            self.container.requirements.get_many(requirement_ids)
        elif unit_code:
            # Sin lista explicita: todos los requerimientos cargados para la unidad
            requirement_ids = [r.id for r in self.container.requirements.find_by_unit(unit_code)]

        job = ValidationJob(
            id=uuid.uuid4().hex,
            unit_code=unit_code,
            unit_title=unit_title,
            document_type=DocumentType(document_type),
            document_ids=list(document_ids),
            requirement_ids=requirement_ids,
            provider=provider,
            strategy=Strategy(strategy or config.default_strategy),
            total=len(requirement_ids),
        )
        self.container.jobs.add(job)
        for document in documents:
            if document.job_id is None:
                self.container.documents.update(document.id, job_id=job.id)
        self._logger.debug("create_job", f"Job {job.id}: {len(document_ids)} docs, {len(requirement_ids)} requirements")
        return job

    # -- StartIndexing -------------------------------------------------------

    async def start_indexing(self, document_id: str) -> IndexingOutcome:
        """
        Index one document; a failure fails only the job that owns it.

        Returns:
            ``accepted``, ``already-indexed`` or ``failed``.
        """
        document = self.container.documents.get(document_id)
        owner = self._owning_job(document)
        if owner is not None and owner.status == JobStatus.PENDING:
            transition_job(self.container.jobs, owner.id, JobStatus.INDEXING)

        try:
            outcome = await self.container.indexer.index(document_id)
        except IndexingFailure as e:
            if owner is not None:
                fail_job(self.container.jobs, owner.id, str(e), error_kind=e.kind)
            return IndexingOutcome(document_id=document_id, status="failed", reason=str(e))
        return outcome

    def _owning_job(self, document: Document) -> Optional[ValidationJob]:
        if document.job_id is None:
            return None
        try:
            return self.container.jobs.get(document.job_id)
        except ResourceNotFoundError:
            return None

    # -- StartValidation -----------------------------------------------------

    def _check_prerequisites(self, job: ValidationJob) -> Optional[str]:
        """
        Returns:
            A rejection reason when documents are still indexing, else None.

        Raises:
            JobPrerequisiteError: When the job can never run as configured.
        """
        if not job.requirement_ids:
            raise JobPrerequisiteError("Job has no requirements to validate", job_id=job.id)
        if not job.document_ids:
            raise JobPrerequisiteError("Job has no documents", job_id=job.id)

        documents = self.container.documents.get_many(job.document_ids)
        failed = [d.name for d in documents if d.status == IndexingStatus.FAILED]
        if failed:
            raise JobPrerequisiteError(f"Indexing failed for: {', '.join(failed)}", job_id=job.id)

        indexing = [d.name for d in documents if d.status == IndexingStatus.INDEXING]
        if indexing:
            return f"Documents still indexing: {', '.join(indexing)}"
        # La barrera aplica a ambas estrategias
        not_ready = [d.name for d in documents if d.status != IndexingStatus.INDEXED]
        if not_ready:
            return f"Documents not indexed yet: {', '.join(not_ready)}"
        return None

    async def start_validation(self, job_id: str, wait_for_indexing: bool = False) -> TriggerResponse:
        """
        Move a job to ``validating`` and run its requirements in the background.

        Documents not yet indexed cause a plain rejection with the job left as
        is, unless ``wait_for_indexing`` is set, in which case indexing is
        awaited first. A failed document or an empty requirement list fails
        the job.
        """
        job = self.container.jobs.get(job_id)
        if job.status != JobStatus.PENDING and job.status != JobStatus.INDEXING:
            return _rejected(f"Job is {job.status.value}")

        if wait_for_indexing:
            pending = [
                d.id for d in self.container.documents.get_many(job.document_ids)
                if d.status in (IndexingStatus.PENDING, IndexingStatus.INDEXING)
            ]
            if pending:
                await asyncio.gather(*(self.start_indexing(document_id) for document_id in pending))
                job = self.container.jobs.get(job_id)
                if job.status in TERMINAL_JOB_STATUSES:
                    return _rejected(job.error or f"Job is {job.status.value}")

        try:
            reason = self._check_prerequisites(job)
        except JobPrerequisiteError as e:
            self._logger.warning("start_validation", str(e))
            fail_job(self.container.jobs, job.id, str(e), error_kind=e.kind)
            return _rejected(str(e))
        if reason is not None:
            return _rejected(reason)

        if job_id in self._tasks and not self._tasks[job_id].done():
            return _rejected("Validation already running")
        try:
            if job.status == JobStatus.PENDING:
                # Documentos indexados antes de crear el job
                transition_job(self.container.jobs, job.id, JobStatus.INDEXING)
            transition_job(self.container.jobs, job.id, JobStatus.VALIDATING)
        except InvalidStateTransitionError as e:
            return _rejected(str(e))

        self._tasks[job_id] = asyncio.create_task(self._run_job(job_id), name=f"validate-{job_id}")
        return TriggerResponse(status="accepted")

    async def _run_job(self, job_id: str) -> None:
        try:
            await self._loop.run(job_id)
        except Exception as e:
            self._logger.error("run_job", e)
            fail_job(self.container.jobs, job_id, f"{type(e).__name__}: {e}")

    async def wait_for_job(self, job_id: str) -> ProgressSnapshot:
        """Await the background validation task of a job, if any."""
        task = self._tasks.get(job_id)
        if task is not None:
            await task
        return self.get_job_status(job_id)

    # -- RevalidateRequirement -----------------------------------------------

    async def revalidate_requirement(self, job_id: str, requirement_id: str, wait: bool = False) -> TriggerResponse:
        """
        Re-run one requirement of a finalized job, overwriting only its row.
        """
        job = self.container.jobs.get(job_id)
        if job.status != JobStatus.FINALIZED:
            return _rejected(f"Job is {job.status.value}; only finalized jobs can be re-validated")
        if requirement_id not in job.requirement_ids:
            return _rejected(f"Requirement '{requirement_id}' does not belong to job {job_id}")

        key = (job_id, requirement_id)
        running = self._revalidations.get(key)
        if running is not None and not running.done():
            return _rejected("Re-validation already running for this requirement")

        task = asyncio.create_task(self._loop.revalidate(job_id, requirement_id), name=f"revalidate-{job_id}-{requirement_id}")
        self._revalidations[key] = task
        if wait:
            await task
        return TriggerResponse(status="accepted")

    # -- SMART question --------------------------------------------------------

    async def regenerate_smart_question(
        self,
        job_id: str,
        requirement_id: str,
        user_context: Optional[str] = None,
    ) -> ValidationResult:
        """
        Replace the SMART question and benchmark answer of one succeeded row.

        The verdict, citations and every other row are left untouched.

        Raises:
            JobPrerequisiteError: If the job is not finalized, the row has no
                verdict yet, or a re-validation of the row is running.
        """
        job = self.container.jobs.get(job_id)
        if job.status != JobStatus.FINALIZED:
            raise JobPrerequisiteError(f"Job is {job.status.value}; SMART questions need a finalized job", job_id=job_id)
        if requirement_id not in job.requirement_ids:
            raise JobPrerequisiteError(f"Requirement '{requirement_id}' does not belong to the job", job_id=job_id)

        running = self._revalidations.get((job_id, requirement_id))
        if running is not None and not running.done():
            raise JobPrerequisiteError("Re-validation running for this requirement", job_id=job_id)
        result = self.container.results.get(job_id, requirement_id)
        if result is None or result.status != ResultStatus.SUCCEEDED:
            raise JobPrerequisiteError(f"Requirement '{requirement_id}' has no verdict to build on", job_id=job_id)

        requirement = self.container.requirements.get(requirement_id)
        return await regenerate_smart_question(self.container, job, requirement, result, user_context)

    # -- cancellation / reads ------------------------------------------------

    def cancel_job(self, job_id: str) -> TriggerResponse:
        """Request cancellation; in-flight requirements still complete and persist."""
        job = self.container.jobs.get(job_id)
        if job.status in TERMINAL_JOB_STATUSES:
            return _rejected(f"Job is {job.status.value}")
        self.container.jobs.update(job_id, cancel_requested=True)
        if job.status in (JobStatus.PENDING, JobStatus.INDEXING):
            transition_job(self.container.jobs, job_id, JobStatus.CANCELLED)
        return TriggerResponse(status="accepted")

    def get_job_status(self, job_id: str) -> ProgressSnapshot:
        return self.container.progress.snapshot(job_id)

    def get_results(self, job_id: str) -> tuple[list[ValidationResult], ResultSummary]:
        job = self.container.jobs.get(job_id)
        rows = {row.requirement_id: row for row in self.container.results.list_for_job(job_id)}
        ordered = [rows[rid] for rid in job.requirement_ids if rid in rows]
        return ordered, summarize_results(ordered)

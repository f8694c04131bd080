"""
Requirement validation loop.

Runs every requirement of a job through the per-requirement graph with
bounded concurrency. A failing requirement is recorded and the loop moves on;
the job finalizes once every requirement reached a terminal result. The
cancellation flag is checked before each requirement starts, so in-flight
requirements always complete and persist.
"""

import asyncio
from typing import Sequence

from assessment_validator.core.logging import PipelineLogger
from assessment_validator.pipeline.graph import build_requirement_graph
from assessment_validator.pipeline.lifecycle import transition_job
from assessment_validator.pipeline.nodes import RequirementNodes
from assessment_validator.pipeline.state import create_initial_state
from assessment_validator.schemas import (
    Document,
    JobStatus,
    ProgressSnapshot,
    Requirement,
    ResultStatus,
    ValidationJob,
    ValidationResult,
)


class ValidationLoop:
    """
    Drives one job (or one re-validated requirement) through the graph.

    Attributes:
        container: DependencyContainer providing repositories and services.
    """

    def __init__(self, container):
        self.container = container
        self._logger = PipelineLogger("loop")

    def _build_graph(self, job: ValidationJob, documents: Sequence[Document]):
        provider = self.container.provider_factory.create(job.provider, job.strategy)
        nodes = RequirementNodes(
            job=job,
            documents=documents,
            provider=provider,
            prompt_registry=self.container.prompt_registry,
            results=self.container.results,
            logger=PipelineLogger(f"job.{job.id[:8]}"),
        )
        return build_requirement_graph(nodes)

    def concurrency_for(self, job: ValidationJob) -> int:
        _, provider_concurrency = self.container.config.provider_limits(job.provider)
        return max(1, min(self.container.config.job_max_concurrency, provider_concurrency))

    async def _validate_requirement(self, graph, job: ValidationJob, requirement: Requirement) -> ResultStatus:
        try:
            await graph.ainvoke(create_initial_state(job.id, requirement))
        except Exception as e:
            # Los nodos capturan sus propios errores; esto cubre fallos del propio grafo
            self._logger.error("validate_requirement", e)
            self.container.results.upsert(
                ValidationResult(
                    job_id=job.id,
                    requirement_id=requirement.id,
                    status=ResultStatus.FAILED,
                    error_kind="internal_error",
                    error_message=f"{type(e).__name__}: {str(e)[:500]}",
                )
            )

        result = self.container.results.get(job.id, requirement.id)
        status = result.status if result is not None else ResultStatus.FAILED
        self.container.progress.set_status(job.id, requirement.id, status)
        return status

    async def run(self, job_id: str) -> ProgressSnapshot:
        """
        Validate every requirement of a job that is already ``validating``.

        Returns:
            The final progress snapshot.
        """
        container = self.container
        job = container.jobs.get(job_id)
        requirements = container.requirements.get_many(job.requirement_ids)
        documents = container.documents.get_many(job.document_ids)

        for requirement in requirements:
            container.results.upsert(ValidationResult(job_id=job.id, requirement_id=requirement.id))
        container.progress.register(job.id, [r.id for r in requirements])

        self._logger.job_start(job.id, len(requirements), job.provider, job.strategy.value)
        graph = self._build_graph(job, documents)
        semaphore = asyncio.Semaphore(self.concurrency_for(job))

        async def worker(requirement: Requirement) -> None:
            async with semaphore:
                if container.jobs.get(job.id).cancel_requested:
                    return
                await self._validate_requirement(graph, job, requirement)

        await asyncio.gather(*(worker(requirement) for requirement in requirements))

        snapshot = container.progress.snapshot(job.id)
        if container.jobs.get(job.id).cancel_requested and snapshot.pending:
            transition_job(container.jobs, job.id, JobStatus.CANCELLED)
        else:
            transition_job(container.jobs, job.id, JobStatus.FINALIZED)
        snapshot = container.progress.snapshot(job.id)
        self._logger.job_end(job.id, snapshot.status.value, snapshot.succeeded, snapshot.failed, snapshot.pending)
        return snapshot

    async def revalidate(self, job_id: str, requirement_id: str) -> ResultStatus:
        """
        Re-run one requirement of a finalized job.

        Only that requirement's result row is overwritten; the job status stays
        ``finalized`` throughout.
        """
        container = self.container
        job = container.jobs.get(job_id)
        requirement = container.requirements.get(requirement_id)
        documents = container.documents.get_many(job.document_ids)

        if not container.progress.is_tracked(job.id):
            container.progress.register(
                job.id,
                job.requirement_ids,
                {row.requirement_id: row.status for row in container.results.list_for_job(job.id)},
            )
        container.results.upsert(ValidationResult(job_id=job.id, requirement_id=requirement.id))
        container.progress.set_status(job.id, requirement.id, ResultStatus.PENDING)

        graph = self._build_graph(job, documents)
        self._logger.routing_decision("revalidate", "resolve_prompt", f"Job {job.id} requirement {requirement.id}")
        return await self._validate_requirement(graph, job, requirement)

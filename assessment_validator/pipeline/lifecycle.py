"""Job lifecycle transitions.

Job status only moves forward:

    pending → indexing → validating → finalized | failed | cancelled

``failed`` and ``cancelled`` are reachable from any non-terminal status.
Re-validating a single requirement of a finalized job does not touch the
job status.
"""

import threading
from datetime import datetime, timezone

from assessment_validator.core.exceptions import InvalidStateTransitionError
from assessment_validator.core.logging import PipelineLogger
from assessment_validator.schemas import JobStatus, ValidationJob
from assessment_validator.services.repositories import JobRepository

logger = PipelineLogger("lifecycle")

ALLOWED_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.INDEXING, JobStatus.FAILED, JobStatus.CANCELLED}),
    JobStatus.INDEXING: frozenset({JobStatus.VALIDATING, JobStatus.FAILED, JobStatus.CANCELLED}),
    JobStatus.VALIDATING: frozenset({JobStatus.FINALIZED, JobStatus.FAILED, JobStatus.CANCELLED}),
    JobStatus.FINALIZED: frozenset(),
    JobStatus.FAILED: frozenset(),
    JobStatus.CANCELLED: frozenset(),
}

_transition_lock = threading.Lock()


def can_transition(current: JobStatus, target: JobStatus) -> bool:
    return target == current or target in ALLOWED_TRANSITIONS[current]


def transition_job(jobs: JobRepository, job_id: str, target: JobStatus, **changes) -> ValidationJob:
    """
    Move a job to ``target``, applying ``changes`` in the same update.

    Raises:
        InvalidStateTransitionError: If ``target`` is not reachable from the current status.
    """
    with _transition_lock:
        job = jobs.get(job_id)
        if not can_transition(job.status, target):
            raise InvalidStateTransitionError(job_id, job.status.value, target.value)
        if target in (JobStatus.FINALIZED, JobStatus.FAILED, JobStatus.CANCELLED):
            changes.setdefault("finalized_at", datetime.now(timezone.utc))
        updated = jobs.update(job_id, status=target, **changes)
    if job.status != target:
        logger.transition(job_id, job.status.value, target.value)
    return updated


def fail_job(
    jobs: JobRepository,
    job_id: str,
    error_message: str,
    error_kind: str = "internal_error",
) -> ValidationJob:
    """Mark a job failed unless it already reached a terminal status."""
    try:
        return transition_job(jobs, job_id, JobStatus.FAILED, error=error_message, error_kind=error_kind)
    except InvalidStateTransitionError:
        return jobs.get(job_id)

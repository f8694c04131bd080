"""
Per-job progress tracking and result aggregation.

Counters are never incremented directly. Each job keeps a map of
requirement id → result status and ``succeeded``, ``failed`` and ``pending``
are derived from it under a lock, so ``succeeded + failed + pending == total``
holds for every snapshot a reader can observe. Every change is written
through to the job row.
"""

import threading
from collections import Counter
from typing import Iterable, Mapping

from assessment_validator.core.logging import get_logger
from assessment_validator.schemas import (
    JobStatus,
    ProgressSnapshot,
    ResultStatus,
    ResultSummary,
    ValidationResult,
    Verdict,
)
from assessment_validator.services.repositories import JobRepository

logger = get_logger(__name__)

LOW_CONFIDENCE_THRESHOLD = 0.5
LOW_COVERAGE_THRESHOLD = 50.0


class ProgressTracker:
    def __init__(self, jobs: JobRepository):
        self._jobs = jobs
        self._lock = threading.Lock()
        self._states: dict[str, dict[str, ResultStatus]] = {}

    def register(
        self,
        job_id: str,
        requirement_ids: Iterable[str],
        statuses: Mapping[str, ResultStatus] | None = None,
    ) -> ProgressSnapshot:
        """Start tracking a job; requirements without a known status are pending."""
        statuses = statuses or {}
        with self._lock:
            self._states[job_id] = {rid: statuses.get(rid, ResultStatus.PENDING) for rid in requirement_ids}
            logger.debug(f"Tracking job {job_id}: {len(self._states[job_id])} requirements")
            return self._publish(job_id)

    def is_tracked(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._states

    def set_status(self, job_id: str, requirement_id: str, status: ResultStatus) -> ProgressSnapshot:
        with self._lock:
            states = self._states.setdefault(job_id, {})
            states[requirement_id] = status
            return self._publish(job_id)

    def _publish(self, job_id: str) -> ProgressSnapshot:
        counts = Counter(self._states[job_id].values())
        job = self._jobs.update(
            job_id,
            total=len(self._states[job_id]),
            succeeded=counts[ResultStatus.SUCCEEDED],
            failed=counts[ResultStatus.FAILED],
        )
        return self._to_snapshot(job.id, job.status, self._states[job_id])

    @staticmethod
    def _to_snapshot(job_id: str, status: JobStatus, states: dict[str, ResultStatus]) -> ProgressSnapshot:
        counts = Counter(states.values())
        return ProgressSnapshot(
            job_id=job_id,
            status=status,
            total=len(states),
            succeeded=counts[ResultStatus.SUCCEEDED],
            failed=counts[ResultStatus.FAILED],
            pending=counts[ResultStatus.PENDING],
        )

    def snapshot(self, job_id: str) -> ProgressSnapshot:
        """Consistent point-in-time view of a job's progress."""
        with self._lock:
            job = self._jobs.get(job_id)
            states = self._states.get(job_id)
            if states is None:
                return ProgressSnapshot(
                    job_id=job.id,
                    status=job.status,
                    total=job.total,
                    succeeded=job.succeeded,
                    failed=job.failed,
                    pending=job.total - job.succeeded - job.failed,
                )
            return self._to_snapshot(job.id, job.status, dict(states))

    def has_pending(self, job_id: str) -> bool:
        with self._lock:
            return any(s == ResultStatus.PENDING for s in self._states.get(job_id, {}).values())


def summarize_results(results: list[ValidationResult]) -> ResultSummary:
    """
    Aggregate verdicts into an overall status with quality flags.

    Overall status is ``incomplete`` while anything is pending or failed,
    otherwise ``met`` when every verdict is Met, ``not_met`` when none is, and
    ``partial`` in between.
    """
    verdicts = Counter(r.verdict for r in results if r.status == ResultStatus.SUCCEEDED)
    statuses = Counter(r.status for r in results)
    judged = sum(verdicts.values())

    if statuses[ResultStatus.PENDING] or statuses[ResultStatus.FAILED] or judged == 0:
        overall = "incomplete"
    elif verdicts[Verdict.MET] == judged:
        overall = "met"
    elif verdicts[Verdict.MET] == 0 and verdicts[Verdict.PARTIALLY_MET] == 0:
        overall = "not_met"
    else:
        overall = "partial"

    confidences = [r.confidence for r in results if r.status == ResultStatus.SUCCEEDED and r.confidence is not None]
    average_confidence = round(sum(confidences) / len(confidences), 3) if confidences else None
    cited = sum(1 for r in results if r.status == ResultStatus.SUCCEEDED and r.citations)
    coverage = round(100.0 * cited / judged, 1) if judged else 0.0

    flags: list[str] = []
    if judged and cited == 0:
        flags.append("no_citations")
    elif judged and coverage < LOW_COVERAGE_THRESHOLD:
        flags.append("low_coverage")
    if average_confidence is not None and average_confidence < LOW_CONFIDENCE_THRESHOLD:
        flags.append("low_confidence")
    if judged and not flags:
        flags.append("good_quality")

    return ResultSummary(
        total=len(results),
        met=verdicts[Verdict.MET],
        partially_met=verdicts[Verdict.PARTIALLY_MET],
        not_met=verdicts[Verdict.NOT_MET],
        failed=statuses[ResultStatus.FAILED],
        pending=statuses[ResultStatus.PENDING],
        overall_status=overall,
        average_confidence=average_confidence,
        citation_coverage=coverage,
        quality_flags=flags,
    )

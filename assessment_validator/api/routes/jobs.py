"""Endpoints del ciclo de vida de los jobs de validacion."""

from fastapi import APIRouter, HTTPException, status

from assessment_validator.core.exceptions import (
    ProviderInvocationError,
    RateLimitError,
    SchemaValidationError,
    TransientProviderError,
)
from assessment_validator.core.logging import get_logger
from assessment_validator.schemas import (
    CreateJobRequest,
    JobResultsResponse,
    JobStatusResponse,
    RegenerateSmartQuestionRequest,
    TriggerResponse,
    ValidationJob,
    ValidationResult,
)
from assessment_validator.services.container import get_container

logger = get_logger(__name__)
router = APIRouter()


@router.post("/jobs", response_model=ValidationJob, status_code=201)
async def create_job(request: CreateJobRequest) -> ValidationJob:
    try:
        return get_container().orchestrator.create_job(
            document_ids=request.document_ids,
            requirement_ids=request.requirement_ids,
            unit_code=request.unit_code,
            unit_title=request.unit_title,
            document_type=request.document_type,
            provider=request.provider,
            strategy=request.strategy,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.get("/jobs", response_model=list[ValidationJob])
async def list_jobs() -> list[ValidationJob]:
    return get_container().jobs.list_all()


@router.post("/jobs/{job_id}/validate", response_model=TriggerResponse)
async def start_validation(job_id: str, wait_for_indexing: bool = False) -> TriggerResponse:
    """Arranca la validacion en segundo plano; el progreso se consulta en /status."""
    response = await get_container().orchestrator.start_validation(job_id, wait_for_indexing=wait_for_indexing)
    if response.status == "rejected":
        logger.warning(f"StartValidation rechazado para job {job_id}: {response.reason}")
    return response


@router.post("/jobs/{job_id}/requirements/{requirement_id}/revalidate", response_model=TriggerResponse)
async def revalidate_requirement(job_id: str, requirement_id: str) -> TriggerResponse:
    return await get_container().orchestrator.revalidate_requirement(job_id, requirement_id)


@router.post("/jobs/{job_id}/requirements/{requirement_id}/smart-question", response_model=ValidationResult)
async def regenerate_smart_question(
    job_id: str,
    requirement_id: str,
    request: RegenerateSmartQuestionRequest | None = None,
) -> ValidationResult:
    """Regenera solo la pregunta SMART de una fila; el veredicto no cambia."""
    user_context = request.user_context if request else None
    try:
        return await get_container().orchestrator.regenerate_smart_question(job_id, requirement_id, user_context)
    except (TransientProviderError, RateLimitError, ProviderInvocationError, SchemaValidationError) as e:
        logger.error(f"SMART question fallida para {job_id}/{requirement_id}: {e}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=f"{e.kind}: {e.message}")


@router.post("/jobs/{job_id}/cancel", response_model=TriggerResponse)
async def cancel_job(job_id: str) -> TriggerResponse:
    return get_container().orchestrator.cancel_job(job_id)


@router.get("/jobs/{job_id}/status", response_model=JobStatusResponse)
async def get_job_status(job_id: str) -> JobStatusResponse:
    container = get_container()
    snapshot = container.orchestrator.get_job_status(job_id)
    job = container.jobs.get(job_id)
    return JobStatusResponse(
        job_id=snapshot.job_id,
        status=snapshot.status,
        total=snapshot.total,
        succeeded=snapshot.succeeded,
        failed=snapshot.failed,
        pending=snapshot.pending,
        error=job.error,
        error_kind=job.error_kind,
    )


@router.get("/jobs/{job_id}/results", response_model=JobResultsResponse)
async def get_job_results(job_id: str) -> JobResultsResponse:
    container = get_container()
    results, summary = container.orchestrator.get_results(job_id)
    return JobResultsResponse(
        job_id=job_id,
        status=container.jobs.get(job_id).status,
        results=results,
        summary=summary,
    )

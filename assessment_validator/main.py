from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from assessment_validator.api import router
from assessment_validator.core import get_logger, settings
from assessment_validator.core.exceptions import (
    InvalidStateTransitionError,
    JobPrerequisiteError,
    MissingPromptError,
    ResourceNotFoundError,
    ValidatorBaseException,
)
from assessment_validator.pipeline.prompts import DEFAULT_PROMPT_TEMPLATES
from assessment_validator.schemas import HealthResponse
from assessment_validator.services.container import get_container

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Iniciando Assessment Validator [{settings.app_env}]")
    seeded = get_container().prompt_registry.seed(DEFAULT_PROMPT_TEMPLATES)
    logger.info(f"Prompts por defecto publicados: {seeded}")
    yield
    logger.info("Cerrando Assessment Validator")


app = FastAPI(
    title="Assessment Validation Orchestrator",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://127.0.0.1:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error_body(exc: ValidatorBaseException) -> dict:
    return {"detail": exc.message, "kind": exc.kind, "details": exc.details}


@app.exception_handler(ResourceNotFoundError)
async def not_found_handler(request: Request, exc: ResourceNotFoundError):
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content=_error_body(exc))


@app.exception_handler(MissingPromptError)
async def missing_prompt_handler(request: Request, exc: MissingPromptError):
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content=_error_body(exc))


@app.exception_handler(InvalidStateTransitionError)
@app.exception_handler(JobPrerequisiteError)
async def conflict_handler(request: Request, exc: ValidatorBaseException):
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content=_error_body(exc))


# Exception handler global
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {type(exc).__name__}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


# Routes
app.include_router(router, prefix="/api")


@app.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    rate_limits = get_container().rate_limiters.get_stats()
    exhausted = any(stats["tokens_available"] == 0 for stats in rate_limits.values())
    return HealthResponse(status="degraded" if exhausted else "ok", env=settings.app_env, rate_limits=rate_limits)

"""Coleccion de routers de la API."""

from assessment_validator.api.routes.documents import router as documents_router
from assessment_validator.api.routes.jobs import router as jobs_router
from assessment_validator.api.routes.prompts import router as prompts_router
from assessment_validator.api.routes.requirements import router as requirements_router

__all__ = ["documents_router", "jobs_router", "prompts_router", "requirements_router"]

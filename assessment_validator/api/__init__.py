from fastapi import APIRouter

from assessment_validator.api.routes import documents_router, jobs_router, prompts_router, requirements_router

router = APIRouter()
router.include_router(documents_router, tags=["Documents"])
router.include_router(requirements_router, tags=["Requirements"])
router.include_router(jobs_router, tags=["Jobs"])
router.include_router(prompts_router, tags=["Prompts"])

__all__ = ["router"]

"""Endpoints de carga de requerimientos."""

import uuid
from typing import Optional

from fastapi import APIRouter

from assessment_validator.schemas import LoadRequirementsRequest, Requirement
from assessment_validator.services.container import get_container

router = APIRouter()


@router.post("/requirements", response_model=list[Requirement], status_code=201)
async def load_requirements(request: LoadRequirementsRequest) -> list[Requirement]:
    requirements = [
        Requirement(id=item.id or uuid.uuid4().hex, **item.model_dump(exclude={"id"}))
        for item in request.requirements
    ]
    return get_container().orchestrator.load_requirements(requirements)


@router.get("/requirements", response_model=list[Requirement])
async def list_requirements(unit_code: Optional[str] = None) -> list[Requirement]:
    """Lista requerimientos, opcionalmente filtrados por unidad."""
    repository = get_container().requirements
    if unit_code:
        return repository.find_by_unit(unit_code)
    return repository.list_all()

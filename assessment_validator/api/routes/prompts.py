"""Endpoints del registro de prompts versionados."""

from fastapi import APIRouter, HTTPException, status

from assessment_validator.schemas import DocumentType, OutputSchema, PromptTemplate, PublishPromptRequest, TaskType
from assessment_validator.services.container import get_container

router = APIRouter()


@router.get("/prompts/resolve", response_model=PromptTemplate)
async def resolve_prompt(
    requirement_type: str,
    task_type: TaskType = TaskType.VALIDATION,
    document_type: DocumentType = DocumentType.BOTH,
) -> PromptTemplate:
    """Devuelve el template que usaria la validacion, aplicando la cadena de fallback."""
    try:
        return get_container().prompt_registry.resolve(task_type, requirement_type, document_type)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.post("/prompts", response_model=PromptTemplate, status_code=201)
async def publish_prompt(request: PublishPromptRequest) -> PromptTemplate:
    """Publica una nueva version; por defecto pasa a ser la activa de su clave."""
    if request.output_fields is not None:
        output_schema = OutputSchema(fields=request.output_fields)
    elif request.output_json_schema is not None:
        output_schema = OutputSchema.from_json_schema(request.output_json_schema)
    else:
        output_schema = None

    try:
        return get_container().prompt_registry.publish(
            task_type=request.task_type,
            requirement_type=request.requirement_type,
            document_type=request.document_type,
            prompt_text=request.prompt_text,
            name=request.name,
            system_instruction=request.system_instruction,
            output_schema=output_schema,
            generation_config=request.generation_config,
            make_default=request.make_default,
            description=request.description,
            created_by=request.created_by,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.get("/prompts/history", response_model=list[PromptTemplate])
async def prompt_history(
    requirement_type: str,
    task_type: TaskType = TaskType.VALIDATION,
    document_type: DocumentType = DocumentType.BOTH,
) -> list[PromptTemplate]:
    try:
        return get_container().prompt_registry.history(task_type, requirement_type, document_type)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

"""Endpoints de registro e indexacion de documentos."""

from fastapi import APIRouter

from assessment_validator.core.logging import get_logger
from assessment_validator.schemas import DocumentResponse, IndexingOutcome, RegisterDocumentRequest
from assessment_validator.services.container import get_container

logger = get_logger(__name__)
router = APIRouter()


def _to_response(document) -> DocumentResponse:
    return DocumentResponse(
        id=document.id,
        name=document.name,
        job_id=document.job_id,
        status=document.status,
        chunk_count=document.chunk_count,
        error=document.error,
    )


@router.post("/documents", response_model=DocumentResponse, status_code=201)
async def register_document(request: RegisterDocumentRequest) -> DocumentResponse:
    """Registra un documento con su texto ya extraido."""
    orchestrator = get_container().orchestrator
    document = orchestrator.register_document(
        name=request.name,
        text=request.text,
        job_id=request.job_id,
        document_id=request.id,
    )
    logger.info(f"Documento '{document.name}' registrado ({len(document.text)} chars)")
    return _to_response(document)


@router.get("/documents", response_model=list[DocumentResponse])
async def list_documents() -> list[DocumentResponse]:
    return [_to_response(document) for document in get_container().documents.list_all()]


@router.get("/documents/{document_id}", response_model=DocumentResponse)
async def get_document(document_id: str) -> DocumentResponse:
    return _to_response(get_container().documents.get(document_id))


@router.post("/documents/{document_id}/index", response_model=IndexingOutcome)
async def start_indexing(document_id: str) -> IndexingOutcome:
    """Chunk, embed y persistencia del documento. Idempotente para los mismos parametros."""
    return await get_container().orchestrator.start_indexing(document_id)


@router.get("/index/stats")
async def get_index_stats() -> dict:
    """Obtiene estadisticas del chunk store."""
    return await get_container().chunk_store.get_stats()

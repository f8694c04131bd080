"""
Estado del grafo por requerimiento (RequirementState) y utilidades relacionadas.
"""

from typing import TypedDict
from uuid import uuid4

from assessment_validator.schemas import PromptTemplate, Requirement, StructuredVerdict
from assessment_validator.services.providers import EvidenceContext


class RequirementState(TypedDict):
    job_id: str
    requirement: Requirement
    template: PromptTemplate | None
    prompt_text: str
    context: EvidenceContext | None
    verdict: StructuredVerdict | None
    attempts: int
    # Error que termina el requerimiento (kind + mensaje), None si va bien
    error_kind: str | None
    error_message: str | None
    # Identificador de trazabilidad por requerimiento
    trace_id: str


def has_error(state: RequirementState) -> bool:
    return state.get("error_kind") is not None


def create_initial_state(job_id: str, requirement: Requirement) -> dict:
    """Crea el estado inicial para invocar el grafo de un requerimiento."""
    return {
        "trace_id": uuid4().hex[:8],
        "job_id": job_id,
        "requirement": requirement,
        "template": None,
        "prompt_text": "",
        "context": None,
        "verdict": None,
        "attempts": 0,
        "error_kind": None,
        "error_message": None,
    }


NO_EVIDENCE_REASONING = (
    "No passage in the job documents cleared the similarity threshold for this requirement, "
    "so no supporting evidence exists."
)

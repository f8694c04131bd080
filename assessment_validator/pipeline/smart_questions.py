"""
Regeneration of the SMART question attached to one validation result.

Runs outside the validation graph: the verdict of the row is left as is and
only ``smart_question`` and ``benchmark_answer`` are overwritten.
"""

from typing import Optional

from assessment_validator.core.logging import PipelineLogger
from assessment_validator.schemas import Requirement, TaskType, ValidationJob, ValidationResult
from assessment_validator.services.providers.base import EvidenceContext


def _evidence_from_result(job: ValidationJob, result: ValidationResult) -> EvidenceContext:
    """Evidence summary from the earlier run; documents are not searched again."""
    sections = []
    if result.mapped_content:
        sections.append(f"Mapped content:\n{result.mapped_content}")
    if result.gaps:
        sections.append(f"Gaps:\n{result.gaps}")
    excerpts = [c.excerpt for c in result.citations if c.excerpt]
    if excerpts:
        sections.append("Cited excerpts:\n" + "\n---\n".join(excerpts))
    return EvidenceContext(strategy=job.strategy, text="\n\n".join(sections))


def smart_question_variables(
    job: ValidationJob,
    requirement: Requirement,
    result: ValidationResult,
    user_context: Optional[str],
) -> dict:
    return {
        "requirement_number": requirement.number,
        "requirement_text": requirement.text,
        "requirement_type": requirement.requirement_type.value,
        "element_text": requirement.element_text,
        "unit_code": requirement.unit_code or job.unit_code,
        "unit_title": job.unit_title,
        "document_type": job.document_type.value,
        "verdict": result.verdict.value if result.verdict else "Unknown",
        "reasoning": result.reasoning or "N/A",
        "current_question": result.smart_question or "None",
        "current_answer": result.benchmark_answer or "None",
        "user_context": user_context or "None",
    }


async def regenerate_smart_question(
    container,
    job: ValidationJob,
    requirement: Requirement,
    result: ValidationResult,
    user_context: Optional[str] = None,
) -> ValidationResult:
    """
    Ask the job's provider for a new SMART question and store it on the row.

    Raises:
        MissingPromptError: If no smart_question template resolves.
        SchemaValidationError: If the corrected answer is still invalid.
        TransientProviderError, RateLimitError: When retries are exhausted.
    """
    logger = PipelineLogger(f"smart_question.{job.id[:8]}")
    logger.node_enter("smart_question", requirement.id)

    template = container.prompt_registry.resolve(
        TaskType.SMART_QUESTION,
        requirement.requirement_type.value,
        job.document_type,
    )
    prompt_text = template.render(smart_question_variables(job, requirement, result, user_context))
    provider = container.provider_factory.create(job.provider, job.strategy)

    payload, attempts = await provider.generate_fields(template, prompt_text, _evidence_from_result(job, result))

    # Relee la fila: una revalidacion pudo escribirla mientras tanto
    current = container.results.get(job.id, requirement.id) or result
    updated = container.results.upsert(
        current.model_copy(
            update={
                "smart_question": payload.get("question"),
                "benchmark_answer": payload.get("benchmark_answer"),
            }
        )
    )
    logger.node_exit("smart_question", f"{template.name} v{template.version} (attempts: {attempts})")
    return updated

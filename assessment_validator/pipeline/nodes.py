"""
Nodes of the per-requirement validation graph.

Each node returns a partial state update. Errors never escape a node: they are
recorded as ``error_kind``/``error_message`` so the graph routes straight to
``persist`` and the failure stays scoped to this one requirement.
"""

from typing import Sequence

from assessment_validator.core.exceptions import ValidatorBaseException
from assessment_validator.core.logging import PipelineLogger
from assessment_validator.pipeline.state import NO_EVIDENCE_REASONING, RequirementState
from assessment_validator.schemas import (
    Document,
    ResultStatus,
    StructuredVerdict,
    TaskType,
    ValidationJob,
    ValidationResult,
    Verdict,
)
from assessment_validator.services.prompt_registry import PromptRegistry
from assessment_validator.services.providers import ModelProvider
from assessment_validator.services.repositories import ResultRepository


def _error_update(error: Exception, attempts: int = 0) -> dict:
    kind = error.kind if isinstance(error, ValidatorBaseException) else "internal_error"
    return {
        "error_kind": kind,
        "error_message": str(error)[:1000],
        "attempts": attempts or getattr(error, "attempts", 0),
    }


class RequirementNodes:
    """
    Node callables bound to one job's provider, documents and repositories.

    Attributes:
        job: The job being validated (provider and strategy fixed at creation).
    """

    def __init__(
        self,
        job: ValidationJob,
        documents: Sequence[Document],
        provider: ModelProvider,
        prompt_registry: PromptRegistry,
        results: ResultRepository,
        logger: PipelineLogger,
    ):
        self.job = job
        self._documents = list(documents)
        self._provider = provider
        self._prompt_registry = prompt_registry
        self._results = results
        self._logger = logger

    def _prompt_variables(self, state: RequirementState) -> dict:
        requirement = state["requirement"]
        return {
            "requirement_number": requirement.number,
            "requirement_text": requirement.text,
            "requirement_type": requirement.requirement_type.value,
            "element_text": requirement.element_text,
            "unit_code": requirement.unit_code or self.job.unit_code,
            "unit_title": self.job.unit_title,
            "document_type": self.job.document_type.value,
        }

    async def resolve_prompt(self, state: RequirementState) -> dict:
        requirement = state["requirement"]
        self._logger.node_enter("resolve_prompt", requirement.id)
        try:
            template = self._prompt_registry.resolve(
                TaskType.VALIDATION,
                requirement.requirement_type.value,
                self.job.document_type,
            )
        except Exception as e:
            self._logger.error("resolve_prompt", e)
            self._logger.routing_decision("resolve_prompt", "persist", "No prompt - requirement fails")
            return _error_update(e)

        prompt_text = template.render(self._prompt_variables(state))
        self._logger.node_exit("resolve_prompt", f"{template.name} v{template.version}")
        return {"template": template, "prompt_text": prompt_text}

    async def gather_context(self, state: RequirementState) -> dict:
        requirement = state["requirement"]
        self._logger.node_enter("gather_context", requirement.id)
        try:
            context = await self._provider.gather_context(requirement, self._documents)
        except Exception as e:
            self._logger.error("gather_context", e)
            return _error_update(e)

        self._logger.node_exit("gather_context", f"{len(context.text)} chars, {len(context.passages)} passages")
        return {"context": context}

    async def generate(self, state: RequirementState) -> dict:
        requirement = state["requirement"]
        context = state["context"]
        self._logger.node_enter("generate", requirement.id)

        if context is None or context.is_empty:
            self._logger.routing_decision("generate", "persist", "No evidence - recording Not Met without a model call")
            return {
                "verdict": StructuredVerdict(
                    verdict=Verdict.NOT_MET,
                    reasoning=NO_EVIDENCE_REASONING,
                    confidence=1.0,
                    gaps=requirement.text,
                ),
                "attempts": 0,
            }

        try:
            outcome = await self._provider.generate_structured(state["template"], state["prompt_text"], context)
        except Exception as e:
            self._logger.error("generate", e)
            return _error_update(e)

        self._logger.node_exit(
            "generate",
            f"{outcome.verdict.verdict.value} (attempts: {outcome.attempts}, corrected: {outcome.corrected})",
        )
        return {"verdict": outcome.verdict, "attempts": outcome.attempts}

    async def persist(self, state: RequirementState) -> dict:
        """Upsert the (job, requirement) result row with the outcome of the run."""
        requirement = state["requirement"]
        template = state.get("template")
        verdict = state.get("verdict")
        base = {
            "job_id": state["job_id"],
            "requirement_id": requirement.id,
            "attempt_count": state.get("attempts", 0),
            "prompt_version": template.version if template else None,
        }

        if state.get("error_kind") is not None or verdict is None:
            result = ValidationResult(
                **base,
                status=ResultStatus.FAILED,
                error_kind=state.get("error_kind") or "internal_error",
                error_message=state.get("error_message") or "No verdict produced",
            )
        else:
            result = ValidationResult(
                **base,
                status=ResultStatus.SUCCEEDED,
                verdict=verdict.verdict,
                reasoning=verdict.reasoning,
                citations=verdict.citations,
                confidence=verdict.confidence,
                mapped_content=verdict.mapped_content,
                gaps=verdict.gaps,
                smart_question=verdict.smart_question,
                benchmark_answer=verdict.benchmark_answer,
            )

        self._results.upsert(result)
        self._logger.requirement_done(
            requirement.id,
            result.verdict.value if result.verdict else f"FAILED ({result.error_kind})",
            result.attempt_count,
        )
        return {"attempts": result.attempt_count}

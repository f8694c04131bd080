"""
Abstract model provider.

A provider couples one LLM backend with one evidence strategy. The validation
loop only calls ``gather_context`` and ``generate_structured``, so it never
branches on which strategy a job selected.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, Sequence, TypeVar

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

from assessment_validator.core.exceptions import SchemaValidationError
from assessment_validator.core.logging import PipelineLogger
from assessment_validator.pipeline.prompts.default_prompts import CORRECTION_PROMPT
from assessment_validator.schemas import (
    Document,
    GenerationConfig,
    PromptTemplate,
    Requirement,
    RetrievedChunk,
    Strategy,
    StructuredVerdict,
)
from assessment_validator.services.embeddings import EmbeddingClient
from assessment_validator.services.providers.parsing import parse_payload, parse_structured_output
from assessment_validator.services.resilience import ProviderCallGuard, RetryPolicy, call_with_retry

ChatModelFactory = Callable[[str, GenerationConfig], BaseChatModel]
T = TypeVar("T")


@dataclass
class EvidenceContext:
    """Evidence handed to the model for one requirement."""

    strategy: Strategy
    text: str
    passages: list[RetrievedChunk] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.text.strip()


@dataclass
class GenerationOutcome:
    verdict: StructuredVerdict
    attempts: int
    corrected: bool = False


def _content_text(content) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and part.get("type") == "text":
                parts.append(part.get("text", ""))
        return "".join(parts)
    return str(content)


class ModelProvider(ABC):
    """
    Common behaviour for all provider/strategy combinations.

    Subclasses define how evidence is gathered. Message construction, guarded
    invocation, schema validation and the single corrective re-prompt are
    shared.

    Attributes:
        provider_name: Backend name used for rate limiting ('groq', 'openai').
        strategy: Evidence strategy implemented by the subclass.
    """

    strategy: Strategy

    def __init__(
        self,
        provider_name: str,
        chat_model_factory: ChatModelFactory,
        embedder: EmbeddingClient,
        guard: ProviderCallGuard,
        retry_policy: RetryPolicy,
        logger: PipelineLogger | None = None,
    ):
        self.provider_name = provider_name
        self._chat_model_factory = chat_model_factory
        self._embedder = embedder
        self._guard = guard
        self._retry_policy = retry_policy
        self._logger = logger or PipelineLogger(f"provider.{provider_name}")

    async def embed(self, text: str) -> list[float]:
        return await self._embedder.embed(text)

    async def embed_many(self, texts: Sequence[str]) -> list[list[float]]:
        return await self._embedder.embed_many(texts)

    @abstractmethod
    async def gather_context(self, requirement: Requirement, documents: Sequence[Document]) -> EvidenceContext:
        """Collect the evidence the model will judge the requirement against."""

    def _format_context(self, context: EvidenceContext) -> str:
        if context.is_empty:
            return "No evidence was found in the documents."
        return context.text

    def _build_messages(self, system_instruction: str, prompt_text: str, context: EvidenceContext) -> list[BaseMessage]:
        messages: list[BaseMessage] = []
        if system_instruction:
            messages.append(SystemMessage(content=system_instruction))
        messages.append(
            HumanMessage(
                content=f"{prompt_text}\n\n=== EVIDENCE ===\n{self._format_context(context)}"
            )
        )
        return messages

    async def _invoke(self, model: BaseChatModel, messages: list[BaseMessage]) -> tuple[str, int]:
        response, attempts = await call_with_retry(
            lambda: self._guard.call(lambda: model.ainvoke(messages)),
            self._retry_policy,
            operation_name=f"{self.provider_name}.ainvoke",
        )
        return _content_text(response.content), attempts

    async def _generate_validated(
        self,
        template: PromptTemplate,
        prompt_text: str,
        context: EvidenceContext,
        parse: Callable[[str], T],
    ) -> tuple[T, int, bool]:
        """
        Invoke the model and parse its answer, re-prompting once on a schema violation.

        Returns:
            The parsed answer, the number of model calls and whether a correction was needed.
        """
        model = self._chat_model_factory(self.provider_name, template.generation_config)
        messages = self._build_messages(template.system_instruction, prompt_text, context)

        raw, attempts = await self._invoke(model, messages)
        try:
            return parse(raw), attempts, False
        except SchemaValidationError as first_error:
            self._logger.warning("generate", f"Schema violation, re-prompting once: {first_error}")
            correction = CORRECTION_PROMPT.format(
                errors="\n".join(f"- {e}" for e in first_error.errors) or f"- {first_error.message}",
                schema=template.output_schema.describe() or '"status", "reasoning"',
            )
            messages = [*messages, AIMessage(content=raw), HumanMessage(content=correction)]

        try:
            raw, retry_attempts = await self._invoke(model, messages)
        except Exception as exc:
            exc.attempts = attempts + getattr(exc, "attempts", 0)
            raise
        attempts += retry_attempts
        try:
            return parse(raw), attempts, True
        except SchemaValidationError as second_error:
            second_error.attempts = attempts
            raise

    async def generate_structured(
        self,
        template: PromptTemplate,
        prompt_text: str,
        context: EvidenceContext,
    ) -> GenerationOutcome:
        """
        Ask the model for a verdict and validate it against the template schema.

        A schema violation triggers exactly one corrective re-prompt that
        includes the validation errors.

        Raises:
            SchemaValidationError: If the corrected answer is still invalid.
            TransientProviderError, RateLimitError: When retries are exhausted.
        """
        verdict, attempts, corrected = await self._generate_validated(
            template,
            prompt_text,
            context,
            lambda raw: parse_structured_output(raw, template.output_schema, context.passages),
        )
        return GenerationOutcome(verdict=verdict, attempts=attempts, corrected=corrected)

    async def generate_fields(
        self,
        template: PromptTemplate,
        prompt_text: str,
        context: EvidenceContext,
    ) -> tuple[dict, int]:
        """Schema-checked JSON object for tasks that do not produce a verdict."""
        payload, attempts, _ = await self._generate_validated(
            template,
            prompt_text,
            context,
            lambda raw: parse_payload(raw, template.output_schema),
        )
        return payload, attempts

"""
Unit tests for the provider strategies and the corrective re-prompt.
"""

import pytest

from assessment_validator.core.exceptions import ProviderInvocationError, SchemaValidationError
from assessment_validator.schemas import Document, Requirement, Strategy, Verdict
from assessment_validator.services.providers import (
    EvidenceContext,
    RetrievalAugmentedProvider,
    WholeContextProvider,
)


@pytest.fixture
def requirement():
    return Requirement(
        id="req-1",
        requirement_type="ke",
        number="R01",
        text="Identify each hazard and complete a safety report",
        unit_code="BSBWHS211",
    )


@pytest.fixture
def template(test_container):
    return test_container.prompt_registry.resolve("validation", "knowledge_evidence", "both")


@pytest.fixture
def whole_context(test_container):
    return test_container.provider_factory.create("groq", Strategy.WHOLE_CONTEXT)


class TestProviderFactory:
    """Tests for ProviderFactory.create()."""

    def test_creates_strategy_specific_providers(self, test_container):
        factory = test_container.provider_factory

        assert isinstance(factory.create("groq", "whole_context"), WholeContextProvider)
        assert isinstance(factory.create("openai", Strategy.RETRIEVAL_AUGMENTED), RetrievalAugmentedProvider)

    def test_unknown_strategy_raises(self, test_container):
        with pytest.raises(ValueError):
            test_container.provider_factory.create("groq", "telepathy")

    def test_available_strategies(self, test_container):
        assert set(test_container.provider_factory.available_strategies()) == {"whole_context", "retrieval_augmented"}


class TestGatherContext:
    """Tests for evidence gathering per strategy."""

    @pytest.mark.asyncio
    async def test_whole_context_includes_every_document(self, whole_context, requirement):
        documents = [
            Document(id="d1", name="Assessment Tool", text="Hazard identification task."),
            Document(id="d2", name="Learner Guide", text="Safety report chapter."),
        ]

        context = await whole_context.gather_context(requirement, documents)

        assert "Assessment Tool" in context.text
        assert "Safety report chapter." in context.text
        assert context.passages == []

    @pytest.mark.asyncio
    async def test_retrieval_returns_labelled_passages(self, test_container, requirement, assessment_text):
        test_container.documents.add(Document(id="doc-1", name="Assessment Tool", text=assessment_text))
        await test_container.indexer.index("doc-1")
        provider = test_container.provider_factory.create("groq", Strategy.RETRIEVAL_AUGMENTED)

        context = await provider.gather_context(requirement, [test_container.documents.get("doc-1")])

        assert 0 < len(context.passages) <= test_container.config.retrieval_k
        assert context.text.startswith("[E1] Assessment Tool")
        assert all(p.similarity >= test_container.config.retrieval_min_similarity for p in context.passages)

    @pytest.mark.asyncio
    async def test_retrieval_with_no_similar_chunk_is_empty(self, test_container, assessment_text):
        test_container.documents.add(Document(id="doc-1", name="Assessment Tool", text=assessment_text))
        await test_container.indexer.index("doc-1")
        provider = test_container.provider_factory.create("groq", Strategy.RETRIEVAL_AUGMENTED)
        unrelated = Requirement(id="req-x", requirement_type="ac", number="R99", text="Approve the annual budget")

        context = await provider.gather_context(unrelated, [test_container.documents.get("doc-1")])

        assert context.is_empty
        assert context.passages == []


class TestGenerateStructured:
    """Tests for ModelProvider.generate_structured()."""

    @pytest.mark.asyncio
    async def test_valid_answer_needs_one_call(self, whole_context, template, scripted_llm, verdict_json):
        scripted_llm.reply_for("R01", verdict_json("Met", "All evidence present", confidence=0.95))
        prompt = template.render({"requirement_number": "R01"})

        outcome = await whole_context.generate_structured(template, prompt, EvidenceContext(Strategy.WHOLE_CONTEXT, "evidence"))

        assert outcome.verdict.verdict == Verdict.MET
        assert outcome.attempts == 1
        assert outcome.corrected is False
        assert scripted_llm.ainvoke.await_count == 1

    @pytest.mark.asyncio
    async def test_schema_violation_triggers_one_corrective_reprompt(self, whole_context, template, scripted_llm, verdict_json):
        scripted_llm.reply_for("R01", ['{"verdict_text": "looks fine"}', verdict_json("Not Met", "Nothing found")])
        prompt = template.render({"requirement_number": "R01"})

        outcome = await whole_context.generate_structured(template, prompt, EvidenceContext(Strategy.WHOLE_CONTEXT, "evidence"))

        correction = scripted_llm.prompts()[-1]
        assert outcome.verdict.verdict == Verdict.NOT_MET
        assert outcome.corrected is True
        assert outcome.attempts == 2
        assert "could not be accepted" in correction
        assert "status" in correction

    @pytest.mark.asyncio
    async def test_second_violation_raises_schema_error(self, whole_context, template, scripted_llm):
        scripted_llm.reply_for("R01", "no json at all")
        prompt = template.render({"requirement_number": "R01"})

        with pytest.raises(SchemaValidationError) as exc_info:
            await whole_context.generate_structured(template, prompt, EvidenceContext(Strategy.WHOLE_CONTEXT, "evidence"))

        assert scripted_llm.ainvoke.await_count == 2
        assert exc_info.value.attempts == 2

    @pytest.mark.asyncio
    async def test_transient_failures_are_retried(self, whole_context, template, scripted_llm, verdict_json, mock_llm_response):
        replies = iter([RuntimeError("blip"), RuntimeError("blip")])
        default = verdict_json("Met", "ok")

        async def flaky(messages, *args, **kwargs):
            error = next(replies, None)
            if error is not None:
                raise error
            return mock_llm_response(default)

        scripted_llm.ainvoke.side_effect = flaky
        prompt = template.render({"requirement_number": "R01"})

        outcome = await whole_context.generate_structured(template, prompt, EvidenceContext(Strategy.WHOLE_CONTEXT, "evidence"))

        assert outcome.attempts == 3
        assert outcome.verdict.verdict == Verdict.MET

    @pytest.mark.asyncio
    async def test_permanent_provider_error_is_not_retried(self, whole_context, template, scripted_llm):
        scripted_llm.reply_for("R01", ProviderInvocationError("bad request", provider="groq", status_code=400))
        prompt = template.render({"requirement_number": "R01"})

        with pytest.raises(ProviderInvocationError) as exc_info:
            await whole_context.generate_structured(template, prompt, EvidenceContext(Strategy.WHOLE_CONTEXT, "evidence"))

        assert scripted_llm.ainvoke.await_count == 1
        assert exc_info.value.attempts == 1


class TestGenerateFields:
    """Tests for ModelProvider.generate_fields() on the SMART question template."""

    @pytest.fixture
    def smart_template(self, test_container):
        return test_container.prompt_registry.resolve("smart_question", "knowledge_evidence", "both")

    @pytest.mark.asyncio
    async def test_returns_schema_checked_fields(self, whole_context, smart_template, scripted_llm):
        scripted_llm.reply_for("R01", '{"question": "Name two hazards in a kitchen.", "question_type": "knowledge"}')
        prompt = smart_template.render({"requirement_number": "R01"})

        payload, attempts = await whole_context.generate_fields(smart_template, prompt, EvidenceContext(Strategy.WHOLE_CONTEXT, "evidence"))

        assert payload["question"] == "Name two hazards in a kitchen."
        assert payload["benchmark_answer"] is None
        assert attempts == 1

    @pytest.mark.asyncio
    async def test_invalid_answer_gets_one_correction(self, whole_context, smart_template, scripted_llm):
        scripted_llm.reply_for("R01", ['{"status": "Met"}', '{"question": "Describe the evacuation route."}'])
        prompt = smart_template.render({"requirement_number": "R01"})

        payload, attempts = await whole_context.generate_fields(smart_template, prompt, EvidenceContext(Strategy.WHOLE_CONTEXT, "evidence"))

        assert payload["question"] == "Describe the evacuation route."
        assert attempts == 2
        assert "question" in scripted_llm.prompts()[-1]

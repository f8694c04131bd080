"""
Pytest configuration and shared fixtures.

This module provides common fixtures for testing the assessment validator.
All fixtures use mocks or in-memory backends, so no test reaches a chat
model or the embeddings API.

Usage:
    async def test_example(test_container, scripted_llm):
        scripted_llm.reply_for("R01", '{"status": "Met", "reasoning": "ok"}')
        job = test_container.orchestrator.create_job(...)
"""

import json
import os
import re

# Settings exige estas claves al importarse; los tests nunca llaman a las APIs
os.environ.setdefault("GROQ_API_KEY", "test-groq-key")
os.environ.setdefault("HUGGINGFACE_API_KEY", "test-hf-key")

import pytest
from unittest.mock import AsyncMock, MagicMock

from langchain_core.embeddings import Embeddings


# =============================================================================
# SETTINGS FIXTURES
# =============================================================================


VOCABULARY = ["hazard", "safety", "report", "forklift", "marine", "weather", "budget"]


@pytest.fixture
def test_settings():
    """
    Settings tuned for tests: tiny embeddings, small chunks, no backoff delay
    and rate limits high enough never to block.
    """
    from assessment_validator.core.config import Settings

    return Settings(
        groq_api_key="test-groq-key",
        huggingface_api_key="test-hf-key",
        embedding_dimension=len(VOCABULARY) + 1,
        chunk_size=100,
        chunk_overlap_fraction=0.2,
        retrieval_k=4,
        retrieval_min_similarity=0.35,
        retry_max_attempts=3,
        retry_base_delay_seconds=0.0,
        retry_max_delay_seconds=0.0,
        groq_requests_per_minute=1000,
        openai_requests_per_minute=1000,
        embedding_requests_per_minute=1000,
        rate_limit_wait_ceiling_seconds=1.0,
        model_call_timeout_seconds=5.0,
        job_max_concurrency=4,
        whole_context_max_chars=5000,
    )


# =============================================================================
# EMBEDDINGS FIXTURES
# =============================================================================


class KeywordEmbeddings(Embeddings):
    """
    Bag-of-keywords embeddings over a fixed vocabulary plus a small bias term.

    Texts sharing keywords are similar; texts with disjoint keywords score
    close to zero. The bias keeps every vector non-zero.
    """

    def __init__(self, vocabulary=VOCABULARY, bias: float = 0.1):
        self.vocabulary = list(vocabulary)
        self.bias = bias
        self.calls = 0

    def _vector(self, text: str) -> list[float]:
        words = set(re.findall(r"[a-z]+", text.lower()))
        return [1.0 if word in words else 0.0 for word in self.vocabulary] + [self.bias]

    def embed_documents(self, texts):
        self.calls += 1
        return [self._vector(text) for text in texts]

    def embed_query(self, text):
        self.calls += 1
        return self._vector(text)


@pytest.fixture
def keyword_embeddings():
    return KeywordEmbeddings()


# =============================================================================
# LLM MOCK FIXTURES
# =============================================================================


@pytest.fixture
def mock_llm_response():
    """
    Factory fixture for creating mock LLM responses.

    Usage:
        def test_example(mock_llm_response):
            response = mock_llm_response('{"status": "Met"}')
            assert response.content == '{"status": "Met"}'
    """
    def _create_response(content: str = '{"status": "Met", "reasoning": "Mocked"}'):
        response = MagicMock()
        response.content = content
        return response
    return _create_response


@pytest.fixture
def verdict_json():
    """Factory for a schema-valid model answer."""
    def _create(status: str = "Met", reasoning: str = "Evidence found", **extra) -> str:
        return json.dumps({"status": status, "reasoning": reasoning, **extra})
    return _create


class ScriptedChatModel:
    """
    Chat model double whose ``ainvoke`` is an AsyncMock.

    Answers are looked up by a marker found in the last human message, so
    concurrent requirements each get their own scripted reply. A marker
    mapped to an exception raises it on every call.
    """

    def __init__(self, response_factory, default: str):
        self._response_factory = response_factory
        self._default = default
        self._scripts: dict[str, object] = {}
        self.ainvoke = AsyncMock(side_effect=self._answer)

    def reply_for(self, marker: str, reply) -> None:
        self._scripts[marker] = reply

    def forget(self, marker: str) -> None:
        self._scripts.pop(marker, None)

    def prompts(self) -> list[str]:
        return [call.args[0][-1].content for call in self.ainvoke.call_args_list]

    async def _answer(self, messages, *args, **kwargs):
        prompt = messages[-1].content
        # En el re-prompt correctivo el marcador esta en el primer mensaje humano
        full_text = "\n".join(str(message.content) for message in messages)
        for marker, reply in self._scripts.items():
            if marker in prompt or marker in full_text:
                if isinstance(reply, BaseException):
                    raise reply
                if isinstance(reply, list):
                    next_reply = reply.pop(0) if len(reply) > 1 else reply[0]
                    return self._response_factory(next_reply)
                return self._response_factory(reply)
        return self._response_factory(self._default)


@pytest.fixture
def scripted_llm(mock_llm_response, verdict_json):
    return ScriptedChatModel(mock_llm_response, default=verdict_json("Met", "Evidence found", confidence=0.9))


@pytest.fixture
def mock_llm(mock_llm_response):
    """
    AsyncMock that simulates LLM behavior with a fixed valid verdict.

    Usage:
        async def test_example(mock_llm):
            mock_llm.ainvoke.return_value.content = '{"status": "Not Met", "reasoning": "x"}'
    """
    llm = AsyncMock()
    llm.ainvoke.return_value = mock_llm_response('{"status": "Met", "reasoning": "Mocked"}')
    return llm


# =============================================================================
# CONTAINER FIXTURES
# =============================================================================


@pytest.fixture
def test_container(test_settings, scripted_llm, keyword_embeddings):
    """
    DependencyContainer with scripted chat model and keyword embeddings.

    The container owns a private rate limiter registry and is pre-seeded with
    the default prompt templates.
    """
    from assessment_validator.pipeline.prompts import DEFAULT_PROMPT_TEMPLATES
    from assessment_validator.services.container import DependencyContainer
    from assessment_validator.services.rate_limiter import RateLimiterRegistry

    container = DependencyContainer(config=test_settings, rate_limiters=RateLimiterRegistry(test_settings))
    container.override_chat_model(lambda provider, generation: scripted_llm)
    container.override_embeddings(keyword_embeddings)
    container.prompt_registry.seed(DEFAULT_PROMPT_TEMPLATES)
    return container


@pytest.fixture
def orchestrator(test_container):
    return test_container.orchestrator


# =============================================================================
# DOMAIN FIXTURES
# =============================================================================


@pytest.fixture
def make_requirements():
    """
    Factory for requirements numbered R01, R02...

    Usage:
        requirements = make_requirements(10, requirement_type="ke")
    """
    from assessment_validator.schemas import Requirement

    def _create(count: int, requirement_type: str = "knowledge_evidence", text: str = "Describe hazard safety report", unit_code: str = "BSBWHS211"):
        return [
            Requirement(
                id=f"req-{position:02d}",
                requirement_type=requirement_type,
                number=f"R{position:02d}",
                text=f"{text} ({position})",
                unit_code=unit_code,
            )
            for position in range(1, count + 1)
        ]
    return _create


@pytest.fixture
def assessment_text():
    """Roughly 600 characters of assessment-tool text mentioning safety keywords."""
    paragraphs = [
        "Section 1. Learners must identify each hazard in the workplace and explain the control measures.",
        "Section 2. Learners complete a safety report describing the incident, the people involved and the follow up.",
        "Section 3. The assessor observes the learner performing a forklift pre start check under supervision.",
        "Section 4. Learners answer written questions about consultation and the role of the safety committee.",
        "Section 5. Marine and weather related risks are outside the scope of this unit and are not assessed here.",
    ]
    return "\n".join(paragraphs)


# =============================================================================
# LOGGER FIXTURES
# =============================================================================


@pytest.fixture
def mock_logger():
    """
    Mock PipelineLogger for asserting on node logging.

    Usage:
        def test_example(mock_logger):
            mock_logger.node_enter.assert_called_once()
    """
    logger = MagicMock()
    logger.node_enter = MagicMock()
    logger.node_exit = MagicMock()
    logger.debug = MagicMock()
    logger.warning = MagicMock()
    logger.error = MagicMock()
    return logger


# =============================================================================
# PYTEST CONFIGURATION
# =============================================================================


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )

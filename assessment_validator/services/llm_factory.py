from functools import lru_cache

import httpx
from langchain_core.language_models.chat_models import BaseChatModel
from langchain_groq import ChatGroq

from assessment_validator.core.config import settings
from assessment_validator.core.logging import get_logger

logger = get_logger(__name__)

SUPPORTED_PROVIDERS = ("groq", "openai")

_MODELS_ENDPOINTS = {
    "groq": "https://api.groq.com/openai/v1/models",
    "openai": "https://api.openai.com/v1/models",
}


@lru_cache
def get_chat_model(
    provider: str = "groq",
    temperature: float = 0.0,
    max_tokens: int | None = None,
    top_p: float | None = None,
) -> BaseChatModel:
    """
    Factory singleton por combinacion de proveedor y parametros de generacion.

    Los reintentos del SDK se desactivan (max_retries=0): la politica de
    reintentos y el rate limiter por proveedor viven en ``services.resilience``.
    OpenAI se importa de forma lazy para no exigir el paquete si no se usa.
    """
    if provider == "groq":
        logger.info(f"Inicializando LLM: {settings.groq_model} (temp={temperature})")
        return ChatGroq(
            model=settings.groq_model,
            temperature=temperature,
            max_tokens=max_tokens,
            model_kwargs={"top_p": top_p} if top_p is not None else {},
            api_key=settings.groq_api_key,
            request_timeout=settings.model_call_timeout_seconds,
            max_retries=0,
        )

    if provider == "openai":
        from langchain_openai import ChatOpenAI

        logger.info(f"Inicializando LLM: {settings.openai_model} (temp={temperature})")
        return ChatOpenAI(
            model=settings.openai_model,
            temperature=temperature,
            max_tokens=max_tokens,
            top_p=top_p,
            api_key=settings.openai_api_key,
            timeout=settings.model_call_timeout_seconds,
            max_retries=0,
        )

    raise ValueError(f"Unknown LLM provider: '{provider}'. Supported: {', '.join(SUPPORTED_PROVIDERS)}.")


async def check_provider_health(provider: str) -> bool:
    """Verifica conectividad con la API del proveedor."""
    api_key = settings.groq_api_key if provider == "groq" else settings.openai_api_key
    endpoint = _MODELS_ENDPOINTS.get(provider)
    if endpoint is None or not api_key:
        return False
    try:
        async with httpx.AsyncClient(timeout=5.0) as client:
            response = await client.get(endpoint, headers={"Authorization": f"Bearer {api_key}"})
            return response.status_code == 200
    except httpx.HTTPError:
        return False

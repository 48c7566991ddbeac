"""Chat model factory for the pipeline stages.

Every stage gets the same provider chain, configured in agents.toml:

    OpenRouter (primary) -> Groq (optional) -> Ollama (optional, local)

Each provider is piped into a response-length check, so an empty or truncated
reply raises ``ShortResponseError`` and ``with_fallbacks()`` moves on to the
next provider. Retries of the whole stage belong to the workflow, never to the
provider clients.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import structlog
from langchain_core.runnables import Runnable, RunnableLambda
from langchain_openai import ChatOpenAI

from geo_diagnosis.config import AgentSettings, Settings, get_agent_settings, get_settings
from geo_diagnosis.errors import ShortResponseError, UpstreamUnavailable

logger = structlog.get_logger(__name__)

DEFAULT_OLLAMA_URL = "http://localhost:11434"


def _make_length_validator(min_chars: int) -> RunnableLambda:
    """Runnable that rejects replies shorter than min_chars (after stripping)."""

    def _validate(response):  # noqa: ANN001
        content = response.content or ""
        text = content if isinstance(content, str) else str(content)
        length = len(text.strip())
        if length < min_chars:
            raise ShortResponseError(f"Response too short ({length} chars, minimum {min_chars}).")
        return response

    return RunnableLambda(_validate)


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------


def _openrouter(
    agent_name: str, settings: Settings, agent_settings: AgentSettings, params: dict[str, Any]
) -> ChatOpenAI:
    if not settings.openrouter_api_key:
        raise UpstreamUnavailable("OPENROUTER_API_KEY is not configured", stage=agent_name)
    extra = {"max_tokens": params["max_tokens"]} if params["max_tokens"] is not None else {}
    return ChatOpenAI(
        model=agent_settings.get_model(agent_name),
        temperature=params["temperature"],
        openai_api_key=settings.openrouter_api_key,
        openai_api_base=settings.openrouter_base_url,
        timeout=params["timeout"],
        max_retries=0,
        **extra,
    )


def _groq(
    agent_name: str, settings: Settings, agent_settings: AgentSettings, params: dict[str, Any]
):
    if not (agent_settings.providers.groq.enabled and settings.groq_api_key):
        return None
    from langchain_groq import ChatGroq

    extra = {"max_tokens": params["max_tokens"]} if params["max_tokens"] is not None else {}
    return ChatGroq(
        model=agent_settings.get_groq_model(agent_name),
        temperature=params["temperature"],
        api_key=settings.groq_api_key,
        timeout=params["timeout"],
        max_retries=0,
        **extra,
    )


def _ollama(
    agent_name: str, settings: Settings, agent_settings: AgentSettings, params: dict[str, Any]
):
    if not agent_settings.providers.ollama.enabled:
        return None
    from langchain_ollama import ChatOllama

    extra = {"num_predict": params["max_tokens"]} if params["max_tokens"] is not None else {}
    return ChatOllama(
        model=agent_settings.get_ollama_model(agent_name),
        temperature=params["temperature"],
        base_url=agent_settings.providers.ollama.base_url or DEFAULT_OLLAMA_URL,
        client_kwargs={"timeout": params["timeout"]},
        **extra,
    )


_FALLBACKS: tuple[tuple[str, Callable[..., Any]], ...] = (
    ("groq", _groq),
    ("ollama", _ollama),
)


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def create_llm(
    agent_name: str,
    temperature: float | None = None,
    max_tokens: int | None = None,
    settings: Settings | None = None,
) -> Runnable:
    """Build the provider chain for one stage.

    Args:
        agent_name: Stage identifier used to look up config in agents.toml.
        temperature: Sampling temperature. None = read from agents.toml.
        max_tokens: Maximum tokens in response.
        settings: Optional Settings instance; loads from env if not provided.

    Raises:
        UpstreamUnavailable: if OPENROUTER_API_KEY is not configured.
    """
    settings = settings or get_settings()
    agent_settings = get_agent_settings()
    params = {
        "temperature": (
            agent_settings.get_temperature(agent_name) if temperature is None else temperature
        ),
        "max_tokens": max_tokens,
        "timeout": agent_settings.defaults.timeout,
    }
    validator = _make_length_validator(agent_settings.defaults.min_response_length)

    primary = _openrouter(agent_name, settings, agent_settings, params) | validator

    chain: list[str] = ["openrouter"]
    fallbacks: list[Runnable] = []
    for provider, build in _FALLBACKS:
        llm = build(agent_name, settings, agent_settings, params)
        if llm is not None:
            chain.append(provider)
            fallbacks.append(llm | validator)

    logger.debug("llm_created", agent=agent_name, providers=chain)
    return primary.with_fallbacks(fallbacks) if fallbacks else primary

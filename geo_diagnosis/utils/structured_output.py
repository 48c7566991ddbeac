"""Helpers for strict structured output from the text-generation capability.

Every stage talks to its model through ``invoke_structured``: one call under an
explicit timeout, transport errors translated to ``UpstreamUnavailable``, then
the first well-formed JSON value in the raw text is validated against a
pydantic schema. Anything that does not fit raises ``MalformedUpstreamOutput``.
"""

from __future__ import annotations

import asyncio
import json
import time
from typing import Any, TypeVar

import openai
import structlog
from langchain_core.messages import HumanMessage, SystemMessage
from pydantic import BaseModel, ValidationError

from geo_diagnosis.api.metrics import observe_stage_latency, record_stage_call
from geo_diagnosis.config import get_agent_settings
from geo_diagnosis.errors import (
    DiagnosisError,
    MalformedUpstreamOutput,
    ShortResponseError,
    UpstreamUnavailable,
)
from geo_diagnosis.models import create_llm

logger = structlog.get_logger(__name__)

T = TypeVar("T", bound=BaseModel)

_decoder = json.JSONDecoder()


def extract_json(text: str, expect: type = dict) -> Any:
    """Return the first well-formed JSON object (or array) embedded in text.

    The model may wrap JSON in commentary or markdown fences; each candidate
    opening bracket is tried in order until one decodes to the expected type.
    """
    if expect not in (dict, list):
        raise TypeError("expect must be dict or list")
    opener = "{" if expect is dict else "["
    text = text or ""
    idx = text.find(opener)
    while idx != -1:
        try:
            value, _ = _decoder.raw_decode(text, idx)
        except json.JSONDecodeError:
            value = None
        if isinstance(value, expect):
            return value
        idx = text.find(opener, idx + 1)
    kind = "object" if expect is dict else "array"
    raise MalformedUpstreamOutput(f"No parseable JSON {kind} found in model output")


def _schema_text(schema: type[BaseModel]) -> str:
    return json.dumps(schema.model_json_schema(), ensure_ascii=True)


def _message_text(response: Any) -> str:
    content = getattr(response, "content", response)
    if content is None:
        return ""
    return content if isinstance(content, str) else str(content)


async def ainvoke_text(
    llm: Any,
    messages: list,
    *,
    agent_name: str,
    timeout: float | None = None,
) -> str:
    """Run one model call and return its text, translating transport failures.

    Cancellation of the calling task propagates unchanged and aborts the
    in-flight request.
    """
    if timeout is None:
        timeout = get_agent_settings().defaults.timeout

    started = time.perf_counter()
    try:
        async with asyncio.timeout(timeout):
            response = await llm.ainvoke(messages)
    except TimeoutError as exc:
        record_stage_call(agent_name, "upstream_error")
        raise UpstreamUnavailable(
            f"{agent_name} timed out after {timeout:g}s", stage=agent_name
        ) from exc
    except openai.APIStatusError as exc:
        record_stage_call(agent_name, "upstream_error")
        raise UpstreamUnavailable(
            f"Model gateway error: {exc.status_code}", stage=agent_name
        ) from exc
    except openai.APIConnectionError as exc:  # includes APITimeoutError
        record_stage_call(agent_name, "upstream_error")
        raise UpstreamUnavailable(
            f"Model gateway unreachable: {exc}", stage=agent_name
        ) from exc
    except ShortResponseError as exc:
        record_stage_call(agent_name, "malformed")
        raise MalformedUpstreamOutput(str(exc), stage=agent_name) from exc
    except DiagnosisError:
        raise
    except openai.OpenAIError as exc:
        record_stage_call(agent_name, "upstream_error")
        raise UpstreamUnavailable(
            f"Model gateway error: {type(exc).__name__}: {exc}", stage=agent_name
        ) from exc
    except Exception as exc:
        # e.g. ValueError for an error body on HTTP 200, fallback client errors
        logger.warning(
            "upstream_unexpected_error",
            agent=agent_name,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        record_stage_call(agent_name, "upstream_error")
        raise UpstreamUnavailable(
            f"Model call failed: {type(exc).__name__}: {exc}", stage=agent_name
        ) from exc
    finally:
        observe_stage_latency(agent_name, time.perf_counter() - started)

    return _message_text(response)


def parse_structured(content: str, schema: type[T], expect: type = dict) -> T:
    """Extract JSON from content and validate it against schema."""
    data = extract_json(content, expect)
    try:
        return schema.model_validate(data)
    except ValidationError as exc:
        raise MalformedUpstreamOutput(
            f"Model output does not match {schema.__name__}: "
            f"{exc.error_count()} validation error(s)"
        ) from exc


async def invoke_structured(
    *,
    agent_name: str,
    messages: list,
    schema: type[T],
    expect: type = dict,
    llm: Any | None = None,
    max_attempts: int | None = None,
    memory_window: int | None = None,
) -> T:
    """Invoke a stage model and enforce a valid schema.

    Strategy:
    1) Primary model call
    2) Parse + validate
    3) If invalid and [json_fix] max_attempts > 1, ask a fixer call to repair
       the JSON with error memory, then parse again. With the default of 1 the
       first parse failure is final.

    Args:
        llm: Optional pre-built chat model used instead of creating one from
             agent_name (also used for fixer calls).
    """
    cfg = get_agent_settings().json_fix
    max_attempts = max_attempts or cfg.max_attempts
    memory_window = memory_window or cfg.memory_window

    if llm is None:
        llm = create_llm(agent_name)
        fixer = None
    else:
        fixer = llm
    content = await ainvoke_text(llm, messages, agent_name=agent_name)
    errors: list[str] = []
    attempt = 0

    while True:
        attempt += 1
        try:
            parsed = parse_structured(content, schema, expect)
        except MalformedUpstreamOutput as exc:
            errors.append(str(exc))
            logger.warning(
                "structured_parse_failed",
                agent=agent_name,
                attempt=attempt,
                error=str(exc),
            )
            if attempt >= max_attempts:
                record_stage_call(agent_name, "malformed")
                raise MalformedUpstreamOutput(str(exc), stage=agent_name) from exc

            recent = errors[-memory_window:]
            if fixer is None:
                fixer = create_llm(agent_name, temperature=0.0)
            fixer_messages = [
                SystemMessage(
                    content=(
                        "You are a JSON fixer. Return ONLY valid JSON that matches the given schema. "
                        "Do not include markdown, explanations, or extra keys."
                    )
                ),
                HumanMessage(
                    content=(
                        f"Schema JSON:\n{_schema_text(schema)}\n\n"
                        f"Invalid output:\n{content}\n\n"
                        f"Recent parsing/validation errors:\n- " + "\n- ".join(recent)
                    )
                ),
            ]
            content = await ainvoke_text(fixer, fixer_messages, agent_name=agent_name)
            continue

        record_stage_call(agent_name, "ok")
        return parsed

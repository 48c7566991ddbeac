"""Question Generator: writes probe questions that never name the brand.

Three categories (Open, Scoped, Suggestive) of exactly three questions each.
A response with a missing category, a wrong count, or a question that leaks
the brand name is rejected rather than patched.
"""

from __future__ import annotations

from typing import Any

import structlog
from langchain_core.messages import HumanMessage, SystemMessage
from langchain_core.runnables import RunnableConfig

from geo_diagnosis.agents.base import notify_stage, require_brand_name, stage_llm
from geo_diagnosis.errors import MalformedUpstreamOutput
from geo_diagnosis.prompts.templates import (
    QUESTION_GENERATOR_SYSTEM,
    QUESTION_GENERATOR_TASK,
)
from geo_diagnosis.schemas.diagnosis import QuestionSet
from geo_diagnosis.schemas.phases import Stage
from geo_diagnosis.schemas.state import DiagnosisState
from geo_diagnosis.utils.scoring import mentions_brand
from geo_diagnosis.utils.structured_output import invoke_structured

logger = structlog.get_logger(__name__)

AGENT_NAME = Stage.QUESTIONS.value


async def generate_questions(brand_name: str, *, llm: Any | None = None) -> QuestionSet:
    """Generate the 3 x 3 probe question set for a brand.

    Raises:
        InvalidInput: blank brand name (no request is sent).
        MalformedUpstreamOutput: no JSON object, wrong shape, or brand leak.
        UpstreamUnavailable: transport failure, timeout, or missing API key.
    """
    brand = require_brand_name(brand_name, AGENT_NAME)

    logger.info("question_generator_start", brand=brand)

    messages = [
        SystemMessage(content=QUESTION_GENERATOR_SYSTEM),
        HumanMessage(content=QUESTION_GENERATOR_TASK.format(brand_name=brand)),
    ]
    question_set = await invoke_structured(
        agent_name=AGENT_NAME,
        messages=messages,
        schema=QuestionSet,
        llm=llm,
    )

    leaked = [q.id for q in question_set.flatten() if mentions_brand(brand, q.text)]
    if leaked:
        logger.warning("question_generator_brand_leak", questions=leaked)
        raise MalformedUpstreamOutput(
            f"Generated questions mention the brand name: {', '.join(leaked)}",
            stage=AGENT_NAME,
        )

    logger.info("question_generator_done", count=len(question_set.flatten()))
    return question_set


async def question_generator_node(
    state: DiagnosisState, config: RunnableConfig
) -> dict:
    """Graph node: brand_name → question_set."""
    notify_stage(config, Stage.QUESTIONS)
    question_set = await generate_questions(
        state.get("brand_name", ""), llm=stage_llm(config, AGENT_NAME)
    )
    return {
        "question_set": question_set,
        "current_stage": Stage.ANSWERS,
        "messages": [f"[QuestionGenerator] {len(question_set.flatten())} questions"],
    }

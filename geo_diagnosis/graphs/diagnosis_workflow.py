"""Diagnosis Workflow Graph: runs the four stages strictly in sequence.

  START → question_generator → answer_generator → scorer → report_synthesizer → END

There is no branching and no loop back. A stage that raises stops the run;
the next stage never starts. LangGraph retries a node only when it raised
UpstreamUnavailable, with the backoff from the [retry] table of agents.toml.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Callable
from typing import Any

import structlog
from langgraph.graph import END, START, StateGraph
from langgraph.types import RetryPolicy

from geo_diagnosis.agents.answer_generator import answer_generator_node
from geo_diagnosis.agents.base import require_brand_name
from geo_diagnosis.agents.question_generator import question_generator_node
from geo_diagnosis.agents.report_synthesizer import report_synthesizer_node
from geo_diagnosis.agents.scorer import scorer_node
from geo_diagnosis.api.metrics import record_run_completed
from geo_diagnosis.config import get_agent_settings
from geo_diagnosis.errors import DiagnosisError, UpstreamUnavailable
from geo_diagnosis.logging_config import bind_run_context
from geo_diagnosis.schemas.diagnosis import DiagnosisResult
from geo_diagnosis.schemas.phases import Stage
from geo_diagnosis.schemas.state import DiagnosisState

logger = structlog.get_logger(__name__)

_PIPELINE = (
    (Stage.QUESTIONS, question_generator_node),
    (Stage.ANSWERS, answer_generator_node),
    (Stage.SCORING, scorer_node),
    (Stage.REPORT, report_synthesizer_node),
)


def build_diagnosis_workflow():
    """Build and compile the diagnosis graph.

    No checkpointer: a run is not resumable, a failed run is rerun from the
    beginning.
    """
    builder = StateGraph(DiagnosisState)

    agent_settings = get_agent_settings()
    retry = RetryPolicy(
        max_attempts=agent_settings.retry.max_attempts,
        initial_interval=agent_settings.retry.initial_interval,
        backoff_factor=agent_settings.retry.backoff_factor,
        retry_on=UpstreamUnavailable,
    )

    previous = START
    for stage, node in _PIPELINE:
        builder.add_node(stage.value, node, retry_policy=retry)
        builder.add_edge(previous, stage.value)
        previous = stage.value
    builder.add_edge(previous, END)

    return builder.compile()


async def run_diagnosis(
    brand_name: str,
    *,
    llm_factory: Callable[[str], Any] | None = None,
    on_stage: Callable[[Stage], None] | None = None,
) -> DiagnosisResult:
    """Run the whole pipeline for one brand.

    Args:
        brand_name: The brand to diagnose.
        llm_factory: Optional ``agent_name -> chat model`` hook. Stages build
            their own models from agents.toml when it is not given.
        on_stage: Optional callback invoked as each stage starts.

    Raises:
        DiagnosisError: the first stage failure, unchanged.
    """
    brand = require_brand_name(brand_name, Stage.QUESTIONS.value)
    bind_run_context(uuid.uuid4().hex[:12], brand)

    graph = build_diagnosis_workflow()
    configurable: dict[str, Any] = {}
    if llm_factory is not None:
        configurable["llm_factory"] = llm_factory
    if on_stage is not None:
        configurable["on_stage"] = on_stage

    logger.info("diagnosis_start")
    try:
        final_state = await graph.ainvoke(
            {"brand_name": brand, "messages": []},
            config={"configurable": configurable},
        )
    except asyncio.CancelledError:
        logger.info("diagnosis_cancelled")
        record_run_completed("cancelled")
        raise
    except DiagnosisError as exc:
        logger.error(
            "diagnosis_failed",
            stage=exc.stage,
            error_type=type(exc).__name__,
            error=exc.message,
        )
        record_run_completed("failed")
        raise
    except Exception:
        logger.exception("diagnosis_crashed")
        record_run_completed("failed")
        raise

    result = DiagnosisResult(
        brand_name=brand,
        scores=final_state["scores"],
        overall_score=final_state["overall_score"],
        report=final_state["report"],
    )
    record_run_completed("done")
    logger.info("diagnosis_done", overall_score=round(result.overall_score, 2))
    return result

"""Scorer: applies the GEO rubric to every question/answer pair.

Per pair:
  salience     counted in code from brand mentions (0 / 0.4 / 0.7 / 1.0)
  relevance    model judgement in [0, 1]
  specificity  model judgement in {0, 0.5, 1}
  geoScore     weighted sum, weights from [scoring] in agents.toml

The overall score is 100 x mean geoScore, computed here rather than asked
from the model, so identical records always aggregate identically.
Out-of-range judgements are rejected, never clamped.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from typing import Any

import structlog
from langchain_core.messages import HumanMessage, SystemMessage
from langchain_core.runnables import RunnableConfig
from pydantic import ValidationError

from geo_diagnosis.agents.base import notify_stage, require_brand_name, stage_llm
from geo_diagnosis.config import ScoringConfig, get_agent_settings
from geo_diagnosis.errors import InvalidInput, MalformedUpstreamOutput
from geo_diagnosis.prompts.templates import SCORER_SYSTEM, SCORER_TASK
from geo_diagnosis.schemas.agent_outputs import ScorerOutput
from geo_diagnosis.schemas.diagnosis import QAPair, ScoreRecord, ScoringResult
from geo_diagnosis.schemas.phases import Stage
from geo_diagnosis.schemas.state import DiagnosisState
from geo_diagnosis.utils.scoring import geo_score, overall_score, salience_score
from geo_diagnosis.utils.structured_output import invoke_structured, parse_structured

logger = structlog.get_logger(__name__)

AGENT_NAME = Stage.SCORING.value


def _normalize_pairs(pairs: Any) -> list[QAPair]:
    """Validate input pairs and give each a unique id (Q1..Qn when absent)."""
    if not isinstance(pairs, (list, tuple)) or not pairs:
        raise InvalidInput("Answers array is required", stage=AGENT_NAME)

    normalized: list[QAPair] = []
    for position, raw in enumerate(pairs, start=1):
        try:
            pair = raw if isinstance(raw, QAPair) else QAPair.model_validate(raw)
        except ValidationError as exc:
            raise InvalidInput(
                f"Answer {position} must have question and answer text", stage=AGENT_NAME
            ) from exc
        if not pair.question.strip():
            raise InvalidInput(f"Answer {position} has an empty question", stage=AGENT_NAME)
        normalized.append(pair if pair.id else pair.model_copy(update={"id": f"Q{position}"}))

    ids = [p.id for p in normalized]
    if len(set(ids)) != len(ids):
        raise InvalidInput("Answer ids must be unique", stage=AGENT_NAME)
    return normalized


def build_score_records(
    brand_name: str,
    pairs: Sequence[QAPair],
    judgements: ScorerOutput,
    weights: ScoringConfig | None = None,
) -> list[ScoreRecord]:
    """Combine model judgements with computed salience, in input order."""
    by_id = {}
    for judgement in judgements.scores:
        if judgement.id in by_id:
            raise MalformedUpstreamOutput(
                f"Duplicate score for id {judgement.id}", stage=AGENT_NAME
            )
        by_id[judgement.id] = judgement

    expected = [p.id for p in pairs]
    missing = [pid for pid in expected if pid not in by_id]
    unknown = sorted(set(by_id) - set(expected))
    if missing or unknown:
        raise MalformedUpstreamOutput(
            f"Scores do not cover the answers (missing={missing}, unknown={unknown})",
            stage=AGENT_NAME,
        )

    records: list[ScoreRecord] = []
    for pair in pairs:
        judgement = by_id[pair.id]
        salience = salience_score(brand_name, pair.answer)
        records.append(
            ScoreRecord(
                id=pair.id,
                question=pair.question,
                answer=pair.answer,
                salience=salience,
                relevance=judgement.relevance,
                specificity=judgement.specificity,
                geo_score=geo_score(salience, judgement.relevance, judgement.specificity, weights),
                analysis=judgement.analysis.strip(),
            )
        )
    return records


async def score_answers(
    brand_name: str, pairs: Sequence[QAPair | dict], *, llm: Any | None = None
) -> ScoringResult:
    """Score every pair and aggregate into an overall score in [0, 100]."""
    brand = require_brand_name(brand_name, AGENT_NAME)
    normalized = _normalize_pairs(pairs)

    logger.info("scorer_start", count=len(normalized))

    pairs_json = json.dumps(
        [{"id": p.id, "question": p.question, "answer": p.answer} for p in normalized],
        ensure_ascii=False,
        indent=2,
    )
    messages = [
        SystemMessage(content=SCORER_SYSTEM.format(brand_name=brand)),
        HumanMessage(content=SCORER_TASK.format(pairs_json=pairs_json)),
    ]
    judgements = await invoke_structured(
        agent_name=AGENT_NAME,
        messages=messages,
        schema=ScorerOutput,
        llm=llm,
    )

    records = build_score_records(
        brand, normalized, judgements, get_agent_settings().scoring
    )
    result = ScoringResult(scores=records, overall_score=overall_score(records))

    logger.info("scorer_done", count=len(records), overall_score=round(result.overall_score, 2))
    return result


def parse_scoring_result(raw: str) -> ScoringResult:
    """Parse a Scorer JSON document (e.g. a saved /score-geo response)."""
    return parse_structured(raw, ScoringResult)


async def scorer_node(state: DiagnosisState, config: RunnableConfig) -> dict:
    """Graph node: answers → scores + overall_score."""
    notify_stage(config, Stage.SCORING)
    result = await score_answers(
        state.get("brand_name", ""), state["answers"], llm=stage_llm(config, AGENT_NAME)
    )
    return {
        "scores": result.scores,
        "overall_score": result.overall_score,
        "current_stage": Stage.REPORT,
        "messages": [f"[Scorer] overall={result.overall_score:.1f}"],
    }

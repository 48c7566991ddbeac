"""Report Synthesizer: turns the scores into a five-section markdown report.

The model writes the narrative (dimension analysis, answer summaries,
bottlenecks, recommendations) as JSON. The document itself, including every
number, is rendered here so the section set and order cannot drift:

  1. Overall GEO Score
  2. Dimension Performance
  3. Per-Question Analysis
  4. Comprehension Bottlenecks
  5. Recommendations
"""

from __future__ import annotations

import json
import math
import re
from collections.abc import Sequence
from typing import Any

import structlog
from langchain_core.messages import HumanMessage, SystemMessage
from langchain_core.runnables import RunnableConfig
from pydantic import ValidationError

from geo_diagnosis.agents.base import notify_stage, require_brand_name, stage_llm
from geo_diagnosis.config import ScoringConfig, get_agent_settings
from geo_diagnosis.errors import InvalidInput, MalformedUpstreamOutput
from geo_diagnosis.prompts.templates import (
    REPORT_SYNTHESIZER_SYSTEM,
    REPORT_SYNTHESIZER_TASK,
)
from geo_diagnosis.schemas.agent_outputs import ReportNarrative
from geo_diagnosis.schemas.diagnosis import ScoreRecord
from geo_diagnosis.schemas.phases import Stage
from geo_diagnosis.schemas.state import DiagnosisState
from geo_diagnosis.utils.scoring import dimension_averages, rating_label
from geo_diagnosis.utils.structured_output import invoke_structured

logger = structlog.get_logger(__name__)

AGENT_NAME = Stage.REPORT.value

REPORT_SECTIONS = (
    "## 1. Overall GEO Score",
    "## 2. Dimension Performance",
    "## 3. Per-Question Analysis",
    "## 4. Comprehension Bottlenecks",
    "## 5. Recommendations",
)

_QUESTION_HEADING = re.compile(r"^### Question (\d+)\b", re.MULTILINE)


# ---------------------------------------------------------------------------
# Input validation
# ---------------------------------------------------------------------------


def _normalize_scores(scores: Any) -> list[ScoreRecord]:
    if not isinstance(scores, (list, tuple)) or not scores:
        raise InvalidInput("Scores array is required", stage=AGENT_NAME)
    records: list[ScoreRecord] = []
    for position, raw in enumerate(scores, start=1):
        try:
            record = raw if isinstance(raw, ScoreRecord) else ScoreRecord.model_validate(raw)
        except ValidationError as exc:
            raise InvalidInput(
                f"Score {position} is not a valid score record", stage=AGENT_NAME
            ) from exc
        records.append(record if record.id else record.model_copy(update={"id": f"Q{position}"}))
    return records


def _validate_overall(overall_score: Any) -> float:
    if isinstance(overall_score, bool) or not isinstance(overall_score, (int, float)):
        raise InvalidInput("overallScore must be a number", stage=AGENT_NAME)
    value = float(overall_score)
    if math.isnan(value) or not 0.0 <= value <= 100.0:
        raise InvalidInput("overallScore must be within [0, 100]", stage=AGENT_NAME)
    return value


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def _pct(value: float) -> str:
    return f"{value * 100:.0f}"


def _inline(text: str) -> str:
    """Collapse whitespace so model or user text cannot open a new heading."""
    return " ".join(text.split())


def _check_summaries(records: Sequence[ScoreRecord], narrative: ReportNarrative) -> list[str]:
    """Return answer summaries in record order, or raise if they do not line up."""
    summaries = narrative.question_summaries
    if len(summaries) != len(records):
        raise MalformedUpstreamOutput(
            f"Expected {len(records)} question summaries, got {len(summaries)}",
            stage=AGENT_NAME,
        )
    by_id = {s.id: _inline(s.answer_summary) for s in summaries}
    if set(by_id) == {r.id for r in records}:
        return [by_id[r.id] for r in records]
    # ids were rewritten by the model; fall back to order
    logger.warning("report_summaries_positional_fallback")
    return [_inline(s.answer_summary) for s in summaries]


def render_report(
    brand_name: str,
    records: Sequence[ScoreRecord],
    overall: float,
    narrative: ReportNarrative,
    weights: ScoringConfig | None = None,
) -> str:
    """Render the markdown document from numbers and narrative."""
    w = weights or ScoringConfig()
    summaries = _check_summaries(records, narrative)
    averages = dimension_averages(records)
    rating = rating_label(overall)
    analysis = narrative.dimension_analysis

    lines = [
        f"# {_inline(brand_name)} GEO Brand Comprehension Report",
        "",
        REPORT_SECTIONS[0],
        "",
        f"**Overall score:** {overall:.1f} / 100",
        "",
        f"**Rating:** {rating}",
    ]
    if narrative.rating_comment.strip():
        lines += ["", _inline(narrative.rating_comment)]

    lines += [
        "",
        REPORT_SECTIONS[1],
        "",
        "| Dimension | Average (0-100) | Weight |",
        "|---|---|---|",
        f"| Salience | {_pct(averages['salience'])} | {w.salience_weight:g} |",
        f"| Relevance | {_pct(averages['relevance'])} | {w.relevance_weight:g} |",
        f"| Specificity | {_pct(averages['specificity'])} | {w.specificity_weight:g} |",
        "",
        f"- **Salience:** {_inline(analysis.salience)}",
        f"- **Relevance:** {_inline(analysis.relevance)}",
        f"- **Specificity:** {_inline(analysis.specificity)}",
        "",
        REPORT_SECTIONS[2],
    ]

    for number, (record, summary) in enumerate(zip(records, summaries), start=1):
        lines += [
            "",
            f"### Question {number}",
            "",
            f"- **Question:** {_inline(record.question)}",
            f"- **Answer summary:** {summary}",
            (
                f"- **Scores:** salience {_pct(record.salience)}, "
                f"relevance {_pct(record.relevance)}, "
                f"specificity {_pct(record.specificity)}, "
                f"GEO {record.geo_score * 100:.1f}"
            ),
            f"- **Analysis:** {_inline(record.analysis) or '-'}",
        ]

    lines += ["", REPORT_SECTIONS[3], ""]
    lines += [f"- {_inline(b)}" for b in narrative.bottlenecks if b.strip()]

    lines += ["", REPORT_SECTIONS[4], ""]
    lines += [
        f"{i}. {_inline(r)}" for i, r in enumerate(narrative.recommendations, start=1)
    ]

    return "\n".join(lines) + "\n"


def validate_report_structure(report: str, question_count: int) -> None:
    """Check the five sections appear once, in order, and cover every question."""
    position = -1
    for heading in REPORT_SECTIONS:
        found = [m.start() for m in re.finditer(rf"^{re.escape(heading)}\s*$", report, re.MULTILINE)]
        if len(found) != 1:
            raise MalformedUpstreamOutput(
                f"Report section '{heading}' is missing or repeated", stage=AGENT_NAME
            )
        if found[0] < position:
            raise MalformedUpstreamOutput(
                f"Report section '{heading}' is out of order", stage=AGENT_NAME
            )
        position = found[0]

    start = report.index(REPORT_SECTIONS[2])
    end = report.index(REPORT_SECTIONS[3])
    numbers = [int(n) for n in _QUESTION_HEADING.findall(report[start:end])]
    if numbers != list(range(1, question_count + 1)):
        raise MalformedUpstreamOutput(
            f"Per-question analysis covers {len(numbers)} of {question_count} questions",
            stage=AGENT_NAME,
        )


# ---------------------------------------------------------------------------
# Stage
# ---------------------------------------------------------------------------


async def generate_report(
    brand_name: str,
    scores: Sequence[ScoreRecord | dict],
    overall_score: float,
    *,
    llm: Any | None = None,
) -> str:
    """Write the diagnosis report for a scored run."""
    brand = require_brand_name(brand_name, AGENT_NAME)
    records = _normalize_scores(scores)
    overall = _validate_overall(overall_score)
    averages = dimension_averages(records)
    rating = rating_label(overall)

    logger.info("report_synthesizer_start", count=len(records), overall_score=round(overall, 2))

    scores_json = json.dumps(
        [r.model_dump(by_alias=True) for r in records], ensure_ascii=False, indent=2
    )
    messages = [
        SystemMessage(content=REPORT_SYNTHESIZER_SYSTEM),
        HumanMessage(
            content=REPORT_SYNTHESIZER_TASK.format(
                brand_name=brand,
                overall_score=overall,
                rating=rating,
                salience=averages["salience"],
                relevance=averages["relevance"],
                specificity=averages["specificity"],
                scores_json=scores_json,
            )
        ),
    ]
    narrative = await invoke_structured(
        agent_name=AGENT_NAME,
        messages=messages,
        schema=ReportNarrative,
        llm=llm,
    )

    report = render_report(
        brand, records, overall, narrative, get_agent_settings().scoring
    )
    validate_report_structure(report, len(records))

    logger.info("report_synthesizer_done", chars=len(report))
    return report


async def report_synthesizer_node(
    state: DiagnosisState, config: RunnableConfig
) -> dict:
    """Graph node: scores + overall_score → report."""
    notify_stage(config, Stage.REPORT)
    report = await generate_report(
        state.get("brand_name", ""),
        state["scores"],
        state["overall_score"],
        llm=stage_llm(config, AGENT_NAME),
    )
    return {
        "report": report,
        "current_stage": Stage.DONE,
        "messages": ["[ReportSynthesizer] Report completed"],
    }

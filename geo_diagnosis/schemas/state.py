"""Graph state definition using TypedDict.

Each stage node reads the previous stage's output and adds its own.
Values are never mutated in place; nodes return new values only.
"""

from __future__ import annotations

import operator
from typing import Annotated, TypedDict

from geo_diagnosis.schemas.diagnosis import QAPair, QuestionSet, ScoreRecord


class DiagnosisState(TypedDict, total=False):
    """State for the diagnosis workflow: questions → answers → scores → report."""

    # ----- Input -----
    brand_name: str

    # ----- Stage tracking -----
    current_stage: str  # question_generator | answer_generator | scorer | report_synthesizer | done

    # ----- Question Generator output -----
    question_set: QuestionSet

    # ----- Answer Generator output -----
    answers: list[QAPair]

    # ----- Scorer output -----
    scores: list[ScoreRecord]
    overall_score: float

    # ----- Report Synthesizer output -----
    report: str

    # ----- Messages (for debugging / logging; these DO accumulate) -----
    messages: Annotated[list[str], operator.add]

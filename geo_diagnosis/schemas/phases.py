"""Pipeline stage definitions shared across graph nodes, logging and the CLI."""

from __future__ import annotations

from enum import StrEnum


class Stage(StrEnum):
    """Canonical stage values, in execution order."""

    QUESTIONS = "question_generator"
    ANSWERS = "answer_generator"
    SCORING = "scorer"
    REPORT = "report_synthesizer"
    DONE = "done"


STAGE_LABELS = {
    Stage.QUESTIONS: "Generating probe questions...",
    Stage.ANSWERS: "Collecting model answers...",
    Stage.SCORING: "Scoring GEO dimensions...",
    Stage.REPORT: "Writing diagnosis report...",
    Stage.DONE: "Diagnosis complete",
}

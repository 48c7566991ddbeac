"""Structured JSON output schemas for the model responses of each stage.

These validate what the text-generation capability returns, before the
stage turns it into the pipeline data contract.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, RootModel, field_validator

from geo_diagnosis.schemas.diagnosis import SPECIFICITY_LEVELS


def _id_as_text(value: object) -> object:
    return str(value) if isinstance(value, int) else value


class AnswerOut(BaseModel):
    id: str | None = None
    question: str = ""
    answer: str = Field(..., min_length=1)

    coerce_id = field_validator("id", mode="before")(_id_as_text)


class AnswerGeneratorOutput(RootModel[list[AnswerOut]]):
    root: list[AnswerOut] = Field(..., min_length=1)


class ScoreJudgement(BaseModel):
    id: str
    relevance: float = Field(..., ge=0.0, le=1.0)
    specificity: float
    analysis: str = Field(..., min_length=1)

    coerce_id = field_validator("id", mode="before")(_id_as_text)

    @field_validator("specificity")
    @classmethod
    def check_specificity(cls, value: float) -> float:
        if value not in SPECIFICITY_LEVELS:
            raise ValueError(f"specificity must be one of {SPECIFICITY_LEVELS}, got {value}")
        return float(value)


class ScorerOutput(BaseModel):
    scores: list[ScoreJudgement] = Field(..., min_length=1)


class DimensionAnalysis(BaseModel):
    salience: str = Field(..., min_length=1)
    relevance: str = Field(..., min_length=1)
    specificity: str = Field(..., min_length=1)


class QuestionSummary(BaseModel):
    id: str
    answer_summary: str = Field(..., min_length=1)

    coerce_id = field_validator("id", mode="before")(_id_as_text)


class ReportNarrative(BaseModel):
    rating_comment: str = ""
    dimension_analysis: DimensionAnalysis
    question_summaries: list[QuestionSummary] = Field(..., min_length=1)
    bottlenecks: list[str] = Field(..., min_length=1)
    recommendations: list[str] = Field(..., min_length=3, max_length=5)

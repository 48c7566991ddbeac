"""Pipeline data contract: questions, answers, score records and the final result.

JSON field names follow the HTTP contract (camelCase, e.g. ``geoScore``);
Python attributes are snake_case. Serialize with ``by_alias=True``.
"""

from __future__ import annotations

from collections.abc import Sequence
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from geo_diagnosis.config import get_agent_settings

# brand mentions 0, 1, 2, 3+
SALIENCE_LEVELS = (0.0, 0.4, 0.7, 1.0)
SPECIFICITY_LEVELS = (0.0, 0.5, 1.0)

GEO_SCORE_TOLERANCE = 1e-6


class QuestionCategory(StrEnum):
    """Probe categories, in the order they are asked."""

    OPEN = "A"        # no domain hint: unprompted recall
    SCOPED = "B"      # domain/scenario hint, no brand hint
    SUGGESTIVE = "C"  # feature-based hint, still no brand name


CATEGORY_LABELS = {
    QuestionCategory.OPEN: "Open",
    QuestionCategory.SCOPED: "Scoped",
    QuestionCategory.SUGGESTIVE: "Suggestive",
}

QUESTIONS_PER_CATEGORY = 3


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Question(_CamelModel):
    model_config = ConfigDict(frozen=True)

    id: str
    category: QuestionCategory
    text: str = Field(..., min_length=1)


class QuestionSet(BaseModel):
    """Exactly three categories of exactly three questions each."""

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="forbid")

    open: list[str] = Field(
        ..., alias="A", min_length=QUESTIONS_PER_CATEGORY, max_length=QUESTIONS_PER_CATEGORY
    )
    scoped: list[str] = Field(
        ..., alias="B", min_length=QUESTIONS_PER_CATEGORY, max_length=QUESTIONS_PER_CATEGORY
    )
    suggestive: list[str] = Field(
        ..., alias="C", min_length=QUESTIONS_PER_CATEGORY, max_length=QUESTIONS_PER_CATEGORY
    )

    @field_validator("open", "scoped", "suggestive")
    @classmethod
    def non_blank(cls, value: list[str]) -> list[str]:
        cleaned = [q.strip() for q in value]
        if any(not q for q in cleaned):
            raise ValueError("questions must be non-empty text")
        return cleaned

    def by_category(self) -> dict[QuestionCategory, list[str]]:
        return {
            QuestionCategory.OPEN: self.open,
            QuestionCategory.SCOPED: self.scoped,
            QuestionCategory.SUGGESTIVE: self.suggestive,
        }

    def flatten(self) -> list[Question]:
        """Category order (A, B, C), then within-category order. Ids are A1..C3."""
        return [
            Question(id=f"{category.value}{i}", category=category, text=text)
            for category, texts in self.by_category().items()
            for i, text in enumerate(texts, start=1)
        ]


class QAPair(_CamelModel):
    """One answer from the model under test, bound to its question."""

    id: str | None = None
    question: str = Field(..., min_length=1)
    answer: str


class ScoreRecord(_CamelModel):
    model_config = ConfigDict(frozen=True)

    id: str | None = None
    question: str
    answer: str
    salience: float
    relevance: float = Field(..., ge=0.0, le=1.0)
    specificity: float
    geo_score: float = Field(..., ge=0.0, le=1.0)
    analysis: str = ""

    @field_validator("salience")
    @classmethod
    def check_salience(cls, value: float) -> float:
        if value not in SALIENCE_LEVELS:
            raise ValueError(f"salience must be one of {SALIENCE_LEVELS}, got {value}")
        return float(value)

    @field_validator("specificity")
    @classmethod
    def check_specificity(cls, value: float) -> float:
        if value not in SPECIFICITY_LEVELS:
            raise ValueError(f"specificity must be one of {SPECIFICITY_LEVELS}, got {value}")
        return float(value)

    @model_validator(mode="after")
    def check_geo_score(self) -> "ScoreRecord":
        w = get_agent_settings().scoring
        expected = (
            w.salience_weight * self.salience
            + w.relevance_weight * self.relevance
            + w.specificity_weight * self.specificity
        )
        if abs(self.geo_score - expected) > GEO_SCORE_TOLERANCE:
            raise ValueError(
                f"geoScore {self.geo_score} does not match the weighted sum {expected:.6f}"
            )
        return self


def check_overall_score(scores: Sequence[ScoreRecord], overall: float) -> None:
    """Raise ValueError unless overall == 100 x mean geoScore."""
    expected = 100.0 * sum(s.geo_score for s in scores) / len(scores)
    if abs(overall - expected) > 100.0 * GEO_SCORE_TOLERANCE:
        raise ValueError(
            f"overallScore {overall} does not match 100 x mean geoScore ({expected:.4f})"
        )


class ScoringResult(_CamelModel):
    model_config = ConfigDict(frozen=True)

    scores: list[ScoreRecord] = Field(..., min_length=1)
    overall_score: float = Field(..., ge=0.0, le=100.0)

    @model_validator(mode="after")
    def consistent_overall(self) -> "ScoringResult":
        check_overall_score(self.scores, self.overall_score)
        return self


class DiagnosisResult(_CamelModel):
    """Terminal artifact of a run. Built once, read-only afterwards."""

    model_config = ConfigDict(frozen=True)

    brand_name: str = Field(..., min_length=1)
    scores: list[ScoreRecord] = Field(..., min_length=1)
    overall_score: float = Field(..., ge=0.0, le=100.0)
    report: str

    @model_validator(mode="after")
    def consistent_overall(self) -> "DiagnosisResult":
        check_overall_score(self.scores, self.overall_score)
        return self

"""Request/response Pydantic models for the API layer.

Request fields are typed loosely. A missing or wrong-typed field reaches the
stage, which raises InvalidInput with the same message the library API gives.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class _Request(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class BrandRequest(_Request):
    """Body for /generate-questions and /api/v1/diagnoses."""

    brand_name: Any = Field(default=None, alias="brandName")


class GenerateAnswersRequest(_Request):
    questions: Any = Field(
        default=None,
        description="Question texts, in the order they should be answered.",
    )


class ScoreRequest(_Request):
    brand_name: Any = Field(default=None, alias="brandName")
    answers: Any = Field(
        default=None,
        description="[{question, answer}] pairs, optionally with an id.",
    )


class ReportRequest(_Request):
    brand_name: Any = Field(default=None, alias="brandName")
    scores: Any = None
    overall_score: Any = Field(default=None, alias="overallScore")


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class ReportResponse(BaseModel):
    report: str


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "healthy"
    version: str = "0.1.0"


class ErrorResponse(BaseModel):
    """Standard error response."""

    error: str

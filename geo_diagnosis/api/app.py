"""FastAPI application for the GEO diagnosis pipeline.

Each stage is exposed as its own POST endpoint so a browser client can drive
the pipeline step by step; /api/v1/diagnoses runs all four stages at once.
Every failure is answered with HTTP 500 and ``{"error": message}``.

Usage:
    uvicorn geo_diagnosis.api.app:app --reload          # Development
    uvicorn geo_diagnosis.api.app:app --host 0.0.0.0    # Production (behind reverse proxy)
"""

from __future__ import annotations

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from geo_diagnosis.agents.answer_generator import generate_answers
from geo_diagnosis.agents.question_generator import generate_questions
from geo_diagnosis.agents.report_synthesizer import generate_report
from geo_diagnosis.agents.scorer import score_answers
from geo_diagnosis.api.metrics import get_metrics_text
from geo_diagnosis.api.schemas import (
    BrandRequest,
    ErrorResponse,
    GenerateAnswersRequest,
    HealthResponse,
    ReportRequest,
    ReportResponse,
    ScoreRequest,
)
from geo_diagnosis.config import get_settings
from geo_diagnosis.errors import DiagnosisError
from geo_diagnosis.graphs.diagnosis_workflow import run_diagnosis
from geo_diagnosis.logging_config import setup_logging

logger = structlog.get_logger(__name__)

CORS_ALLOW_HEADERS = ["authorization", "x-client-info", "apikey", "content-type"]

_ERROR_RESPONSES = {500: {"model": ErrorResponse}}


# ---------------------------------------------------------------------------
# App lifespan (startup / shutdown)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    setup_logging(settings.log_level, json_logs=True)
    logger.info("api_started")
    yield
    logger.info("api_shutdown")


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------

app = FastAPI(
    title="GEO Brand Comprehension Diagnosis API",
    description=(
        "Probe how well a generative model understands a brand: generate "
        "questions, collect answers, score them and write a diagnosis report."
    ),
    version="0.1.0",
    lifespan=lifespan,
)

@app.middleware("http")
async def unexpected_error_middleware(request: Request, call_next):
    """Answer any exception the handlers below do not map with 500 ``{error}``.

    Registered before CORSMiddleware so it runs inside it and the response
    still carries the CORS headers.
    """
    try:
        return await call_next(request)
    except Exception as exc:
        logger.exception("request_crashed", path=request.url.path, error_type=type(exc).__name__)
        return _error(str(exc) or type(exc).__name__)


# CORS: configurable via GEO_CORS_ORIGINS env var (comma separated, default "*")
cors_origins = [o.strip() for o in get_settings().geo_cors_origins.split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins or ["*"],
    allow_methods=["POST", "GET", "OPTIONS"],
    allow_headers=CORS_ALLOW_HEADERS,
)


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------


def _error(message: str) -> JSONResponse:
    return JSONResponse(status_code=500, content=ErrorResponse(error=message).model_dump())


@app.exception_handler(DiagnosisError)
async def diagnosis_error_handler(request: Request, exc: DiagnosisError) -> JSONResponse:
    logger.warning(
        "request_failed",
        path=request.url.path,
        stage=exc.stage,
        error_type=type(exc).__name__,
        error=exc.message,
    )
    return _error(exc.message)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    logger.warning("request_body_invalid", path=request.url.path, errors=len(exc.errors()))
    return _error("Request body must be a JSON object")


# ---------------------------------------------------------------------------
# Stage endpoints
# ---------------------------------------------------------------------------


@app.post("/functions/v1/generate-questions", responses=_ERROR_RESPONSES)
async def generate_questions_endpoint(body: BrandRequest):
    """Nine probe questions for a brand, grouped into categories A, B and C."""
    question_set = await generate_questions(body.brand_name)
    return question_set.model_dump(by_alias=True)


@app.post("/functions/v1/generate-answers", responses=_ERROR_RESPONSES)
async def generate_answers_endpoint(body: GenerateAnswersRequest):
    """Answers from the model under test, one per question, in input order."""
    pairs = await generate_answers(body.questions)
    return [p.model_dump(by_alias=True) for p in pairs]


@app.post("/functions/v1/score-geo", responses=_ERROR_RESPONSES)
async def score_geo_endpoint(body: ScoreRequest):
    """Per-answer GEO scores and the overall score in [0, 100]."""
    result = await score_answers(body.brand_name, body.answers)
    return result.model_dump(by_alias=True)


@app.post(
    "/functions/v1/generate-report",
    response_model=ReportResponse,
    responses=_ERROR_RESPONSES,
)
async def generate_report_endpoint(body: ReportRequest):
    """Five-section markdown diagnosis report."""
    report = await generate_report(body.brand_name, body.scores, body.overall_score)
    return ReportResponse(report=report)


# ---------------------------------------------------------------------------
# Full pipeline
# ---------------------------------------------------------------------------


@app.post("/api/v1/diagnoses", responses=_ERROR_RESPONSES)
async def create_diagnosis(body: BrandRequest):
    """Run all four stages for one brand and return the DiagnosisResult."""
    result = await run_diagnosis(body.brand_name)
    return result.model_dump(by_alias=True)


# ---------------------------------------------------------------------------
# Health & Metrics
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint for load balancers and monitoring."""
    return HealthResponse()


@app.get("/api/v1/metrics")
async def metrics():
    """Prometheus metrics endpoint."""
    return Response(
        content=get_metrics_text(),
        media_type="text/plain; charset=utf-8",
    )

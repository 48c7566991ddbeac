"""Tests for the HTTP layer: stage endpoints, CORS, error mapping."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from geo_diagnosis.api.app import app
from geo_diagnosis.api.schemas import ErrorResponse, HealthResponse
from geo_diagnosis.config import Settings
from geo_diagnosis.errors import MalformedUpstreamOutput, UpstreamUnavailable
from geo_diagnosis.schemas.diagnosis import (
    DiagnosisResult,
    QAPair,
    QuestionSet,
    ScoreRecord,
    ScoringResult,
)

from conftest import QUESTIONS_JSON

ORIGIN = {"Origin": "https://app.example.com"}


@pytest.fixture
def client():
    return TestClient(app)


def _record() -> ScoreRecord:
    return ScoreRecord(
        id="Q1",
        question="q",
        answer="Acme",
        salience=0.4,
        relevance=0.5,
        specificity=0.5,
        geo_score=0.46,
        analysis="ok",
    )


class TestStageEndpoints:
    def test_generate_questions(self, client):
        qs = QuestionSet.model_validate(QUESTIONS_JSON)
        with patch(
            "geo_diagnosis.api.app.generate_questions", AsyncMock(return_value=qs)
        ) as mock_stage:
            resp = client.post("/functions/v1/generate-questions", json={"brandName": "Acme"})
        assert resp.status_code == 200
        assert resp.json() == QUESTIONS_JSON
        mock_stage.assert_awaited_once_with("Acme")

    def test_generate_answers(self, client):
        pairs = [QAPair(id="Q1", question="q", answer="a")]
        with patch("geo_diagnosis.api.app.generate_answers", AsyncMock(return_value=pairs)):
            resp = client.post("/functions/v1/generate-answers", json={"questions": ["q"]})
        assert resp.status_code == 200
        assert resp.json() == [{"id": "Q1", "question": "q", "answer": "a"}]

    def test_score_geo_uses_camel_case(self, client):
        result = ScoringResult(scores=[_record()], overall_score=46.0)
        with patch("geo_diagnosis.api.app.score_answers", AsyncMock(return_value=result)):
            resp = client.post(
                "/functions/v1/score-geo",
                json={"brandName": "Acme", "answers": [{"question": "q", "answer": "Acme"}]},
            )
        body = resp.json()
        assert resp.status_code == 200
        assert body["overallScore"] == 46.0
        assert body["scores"][0]["geoScore"] == 0.46

    def test_generate_report(self, client):
        with patch(
            "geo_diagnosis.api.app.generate_report", AsyncMock(return_value="# report")
        ) as mock_stage:
            resp = client.post(
                "/functions/v1/generate-report",
                json={"brandName": "Acme", "scores": [{"x": 1}], "overallScore": 40},
            )
        assert resp.json() == {"report": "# report"}
        mock_stage.assert_awaited_once_with("Acme", [{"x": 1}], 40)

    def test_diagnoses_runs_pipeline(self, client):
        result = DiagnosisResult(
            brand_name="Acme", scores=[_record()], overall_score=46.0, report="# r"
        )
        with patch("geo_diagnosis.api.app.run_diagnosis", AsyncMock(return_value=result)):
            resp = client.post("/api/v1/diagnoses", json={"brandName": "Acme"})
        assert resp.status_code == 200
        assert resp.json()["brandName"] == "Acme"


class TestErrorMapping:
    def test_blank_brand_is_500_error(self, client):
        resp = client.post("/functions/v1/generate-questions", json={"brandName": "  "})
        assert resp.status_code == 500
        assert resp.json() == {"error": "Brand name is required"}

    def test_missing_questions(self, client):
        resp = client.post("/functions/v1/generate-answers", json={})
        assert resp.status_code == 500
        assert resp.json() == {"error": "Questions array is required"}

    def test_missing_answers(self, client):
        resp = client.post("/functions/v1/score-geo", json={"brandName": "Acme"})
        assert resp.json() == {"error": "Answers array is required"}

    def test_missing_scores(self, client):
        resp = client.post("/functions/v1/generate-report", json={"brandName": "Acme"})
        assert resp.json() == {"error": "Scores array is required"}

    def test_malformed_body(self, client):
        resp = client.post(
            "/functions/v1/generate-questions",
            content="not json",
            headers={"content-type": "application/json"},
        )
        assert resp.status_code == 500
        assert "error" in resp.json()

    def test_malformed_upstream_output(self, client):
        with patch(
            "geo_diagnosis.api.app.generate_questions",
            AsyncMock(side_effect=MalformedUpstreamOutput("No parseable JSON object found in model output")),
        ):
            resp = client.post("/functions/v1/generate-questions", json={"brandName": "Acme"})
        assert resp.status_code == 500
        assert resp.json()["error"].startswith("No parseable JSON")

    def test_missing_api_key(self, client):
        with patch(
            "geo_diagnosis.models.get_settings",
            return_value=Settings(_env_file=None, openrouter_api_key=""),
        ):
            resp = client.post("/functions/v1/generate-questions", json={"brandName": "Acme"})
        assert resp.status_code == 500
        assert resp.json() == {"error": "OPENROUTER_API_KEY is not configured"}


class TestCors:
    def test_preflight(self, client):
        resp = client.options(
            "/functions/v1/score-geo",
            headers={
                **ORIGIN,
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "authorization, x-client-info, apikey, content-type",
            },
        )
        assert resp.status_code == 200
        assert resp.headers["access-control-allow-origin"] == "*"
        allowed = resp.headers["access-control-allow-headers"].lower()
        for header in ("authorization", "x-client-info", "apikey", "content-type"):
            assert header in allowed

    def test_headers_on_success(self, client):
        resp = client.get("/api/v1/health", headers=ORIGIN)
        assert resp.headers["access-control-allow-origin"] == "*"

    def test_headers_on_error(self, client):
        resp = client.post("/functions/v1/generate-questions", json={}, headers=ORIGIN)
        assert resp.status_code == 500
        assert resp.headers["access-control-allow-origin"] == "*"

    def test_headers_on_upstream_error(self, client):
        with patch(
            "geo_diagnosis.api.app.score_answers",
            AsyncMock(side_effect=UpstreamUnavailable("Model gateway error: 503")),
        ):
            resp = client.post(
                "/functions/v1/score-geo", json={"brandName": "Acme", "answers": []}, headers=ORIGIN
            )
        assert resp.status_code == 500
        assert resp.headers["access-control-allow-origin"] == "*"
        assert json.loads(resp.text) == {"error": "Model gateway error: 503"}

    def test_headers_on_untyped_model_error(self, client):
        broken = MagicMock()
        broken.ainvoke = AsyncMock(side_effect=ValueError("Provider returned error"))
        with patch("geo_diagnosis.utils.structured_output.create_llm", return_value=broken):
            resp = client.post(
                "/functions/v1/generate-questions", json={"brandName": "Acme"}, headers=ORIGIN
            )
        assert resp.status_code == 500
        assert resp.headers["access-control-allow-origin"] == "*"
        assert "Provider returned error" in resp.json()["error"]

    def test_headers_on_unexpected_exception(self, client):
        with patch(
            "geo_diagnosis.api.app.generate_report",
            AsyncMock(side_effect=RuntimeError("renderer exploded")),
        ):
            resp = client.post(
                "/functions/v1/generate-report",
                json={"brandName": "Acme", "scores": [], "overallScore": 0},
                headers=ORIGIN,
            )
        assert resp.status_code == 500
        assert resp.headers["access-control-allow-origin"] == "*"
        assert resp.json() == {"error": "renderer exploded"}


class TestHealthAndMetrics:
    def test_health(self, client):
        resp = client.get("/api/v1/health")
        assert resp.json() == HealthResponse().model_dump()

    def test_metrics_exposes_stage_counters(self, client):
        resp = client.get("/api/v1/metrics")
        assert resp.status_code == 200
        assert "geo_stage_calls_total" in resp.text
        assert "geo_runs_completed_total" in resp.text


class TestSchemas:
    def test_error_response(self):
        assert ErrorResponse(error="x").model_dump() == {"error": "x"}

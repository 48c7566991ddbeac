"""Prometheus metrics for the diagnosis pipeline.

Tracks stage calls, stage latency and completed runs.
Metrics are exposed via /api/v1/metrics endpoint in Prometheus format.
"""

from __future__ import annotations

from prometheus_client import Counter, Histogram, generate_latest

# ---------------------------------------------------------------------------
# Metric definitions
# ---------------------------------------------------------------------------

STAGE_CALLS = Counter(
    "geo_stage_calls_total",
    "Outbound model calls per stage, by outcome",
    ["stage", "outcome"],
)
STAGE_LATENCY = Histogram(
    "geo_stage_latency_seconds",
    "Latency of outbound model calls per stage",
    ["stage"],
    buckets=(0.5, 1, 2, 5, 10, 20, 30, 60, 120),
)
RUNS_COMPLETED = Counter(
    "geo_runs_completed_total",
    "Diagnosis runs finished, by status",
    ["status"],
)


# ---------------------------------------------------------------------------
# Helper functions
# ---------------------------------------------------------------------------


def record_stage_call(stage: str, outcome: str) -> None:
    STAGE_CALLS.labels(stage=stage, outcome=outcome).inc()


def observe_stage_latency(stage: str, seconds: float) -> None:
    STAGE_LATENCY.labels(stage=stage).observe(seconds)


def record_run_completed(status: str) -> None:
    RUNS_COMPLETED.labels(status=status).inc()


def get_metrics_text() -> str:
    """Generate Prometheus metrics text output."""
    return generate_latest().decode("utf-8")

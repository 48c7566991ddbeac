"""Tests for the diagnosis workflow graph: structure, retry policy, end-to-end runs."""

from __future__ import annotations

import asyncio
import inspect
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import openai
import pytest
from langchain_core.messages import AIMessage
from langchain_core.runnables import RunnableConfig

from geo_diagnosis.agents.report_synthesizer import REPORT_SECTIONS
from geo_diagnosis.config import AgentSettings
from geo_diagnosis.errors import InvalidInput, MalformedUpstreamOutput, UpstreamUnavailable
from geo_diagnosis.graphs.diagnosis_workflow import (
    _PIPELINE,
    build_diagnosis_workflow,
    run_diagnosis,
)
from geo_diagnosis.schemas.diagnosis import DiagnosisResult
from geo_diagnosis.schemas.phases import Stage

from conftest import QUESTION_IDS

STAGE_NODES = ["question_generator", "answer_generator", "scorer", "report_synthesizer"]

_FAST_RETRY = AgentSettings.model_validate(
    {"retry": {"max_attempts": 2, "initial_interval": 0.01, "backoff_factor": 1.0}}
)


def _factory(llms: dict):
    return lambda agent_name: llms[agent_name]


class TestDiagnosisWorkflowGraph:
    def test_has_correct_nodes(self):
        nodes = set(build_diagnosis_workflow().get_graph().nodes.keys())
        assert nodes == {"__start__", "__end__", *STAGE_NODES}

    def test_edges_are_linear(self):
        edges = {(e.source, e.target) for e in build_diagnosis_workflow().get_graph().edges}
        assert edges == {
            ("__start__", "question_generator"),
            ("question_generator", "answer_generator"),
            ("answer_generator", "scorer"),
            ("scorer", "report_synthesizer"),
            ("report_synthesizer", "__end__"),
        }

    def test_nodes_accept_run_config(self):
        for _, node in _PIPELINE:
            annotation = inspect.signature(node).parameters["config"].annotation
            assert annotation in (RunnableConfig, "RunnableConfig"), node.__name__


class TestRetryPolicy:
    def test_stage_nodes_have_retry(self):
        graph = build_diagnosis_workflow()
        for name in STAGE_NODES:
            assert graph.builder.nodes[name].retry_policy is not None, f"{name} missing retry"

    def test_retry_values_match_config(self):
        from geo_diagnosis.config import get_agent_settings

        cfg = get_agent_settings().retry
        policy = build_diagnosis_workflow().builder.nodes["scorer"].retry_policy
        assert policy.max_attempts == cfg.max_attempts
        assert policy.initial_interval == cfg.initial_interval
        assert policy.backoff_factor == cfg.backoff_factor

    def test_retry_only_on_upstream_unavailable(self):
        policy = build_diagnosis_workflow().builder.nodes["scorer"].retry_policy
        assert policy.retry_on is UpstreamUnavailable


class TestRunDiagnosis:
    @pytest.mark.asyncio
    async def test_acme_end_to_end(self, stage_llms):
        stages = []
        factory = MagicMock(side_effect=_factory(stage_llms))
        result = await run_diagnosis("Acme", llm_factory=factory, on_stage=stages.append)

        assert isinstance(result, DiagnosisResult)
        assert result.brand_name == "Acme"
        assert stages == [Stage.QUESTIONS, Stage.ANSWERS, Stage.SCORING, Stage.REPORT]
        assert [c.args[0] for c in factory.call_args_list] == STAGE_NODES

        assert [s.id for s in result.scores] == QUESTION_IDS
        assert [s.salience for s in result.scores] == [0.4, 0.0, 0.7, 0.4, 1.0, 0.0, 0.4, 0.0, 0.7]
        for record in result.scores:
            assert record.geo_score == pytest.approx(
                0.4 * record.salience + 0.4 * record.relevance + 0.2 * record.specificity,
                abs=1e-6,
            )
        assert 0.0 <= result.overall_score <= 100.0

        positions = [result.report.index(h) for h in REPORT_SECTIONS]
        assert positions == sorted(positions)
        for n in range(1, 10):
            assert f"### Question {n}" in result.report

    @pytest.mark.asyncio
    async def test_blank_brand_fails_before_any_stage(self, stage_llms):
        factory = MagicMock(side_effect=_factory(stage_llms))
        with pytest.raises(InvalidInput):
            await run_diagnosis("  ", llm_factory=factory)
        factory.assert_not_called()

    @pytest.mark.asyncio
    async def test_malformed_output_halts_without_retry(self, stage_llms):
        bad = MagicMock()
        bad.ainvoke = AsyncMock(return_value=AIMessage(content="Sorry, no JSON today."))
        stage_llms["question_generator"] = bad
        stage_llms["answer_generator"] = MagicMock()
        stage_llms["answer_generator"].ainvoke = AsyncMock()

        with pytest.raises(MalformedUpstreamOutput):
            await run_diagnosis("Acme", llm_factory=_factory(stage_llms))
        assert bad.ainvoke.await_count == 1
        stage_llms["answer_generator"].ainvoke.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_upstream_failure_is_retried(self, stage_llms, questions_response):
        flaky = MagicMock()
        flaky.ainvoke = AsyncMock(
            side_effect=[
                openai.APIConnectionError(request=httpx.Request("POST", "https://openrouter.ai")),
                AIMessage(content=questions_response),
            ]
        )
        stage_llms["question_generator"] = flaky
        with patch(
            "geo_diagnosis.graphs.diagnosis_workflow.get_agent_settings", return_value=_FAST_RETRY
        ):
            result = await run_diagnosis("Acme", llm_factory=_factory(stage_llms))
        assert flaky.ainvoke.await_count == 2
        assert len(result.scores) == 9

    @pytest.mark.asyncio
    async def test_upstream_failure_surfaces_after_retries(self, stage_llms):
        down = MagicMock()
        down.ainvoke = AsyncMock(
            side_effect=openai.APIConnectionError(request=httpx.Request("POST", "https://openrouter.ai"))
        )
        stage_llms["scorer"] = down
        with patch(
            "geo_diagnosis.graphs.diagnosis_workflow.get_agent_settings", return_value=_FAST_RETRY
        ):
            with pytest.raises(UpstreamUnavailable) as info:
                await run_diagnosis("Acme", llm_factory=_factory(stage_llms))
        assert info.value.stage == "scorer"
        assert down.ainvoke.await_count == 2

    @pytest.mark.asyncio
    async def test_cancellation_stops_the_run(self, stage_llms):
        started = asyncio.Event()

        async def _hang(_messages):
            started.set()
            await asyncio.sleep(30)

        slow = MagicMock()
        slow.ainvoke = _hang
        stage_llms["question_generator"] = slow
        stage_llms["answer_generator"] = MagicMock()
        stage_llms["answer_generator"].ainvoke = AsyncMock()

        task = asyncio.create_task(run_diagnosis("Acme", llm_factory=_factory(stage_llms)))
        await asyncio.wait_for(started.wait(), timeout=5)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        stage_llms["answer_generator"].ainvoke.assert_not_awaited()

"""Shared test fixtures."""

from __future__ import annotations

import json
import os

import pytest
from langchain_core.language_models.fake_chat_models import FakeListChatModel

# Ensure tests don't accidentally call real APIs
os.environ.setdefault("OPENROUTER_API_KEY", "test-key")
os.environ.setdefault("GROQ_API_KEY", "test-key")

QUESTION_IDS = ["A1", "A2", "A3", "B1", "B2", "B3", "C1", "C2", "C3"]

QUESTIONS_JSON = {
    "A": [
        "Which hardware tool brands do you know?",
        "Name five companies that make industrial supplies.",
        "What brands come to mind for mail-order gadgets?",
    ],
    "B": [
        "Which brands sell rocket-powered roller skates?",
        "Who supplies giant magnets and anvils by mail?",
        "Which catalog companies serve desert hunters?",
    ],
    "C": [
        "A mail-order company famous for explosive gadgets: who are its customers?",
        "A brand whose products often backfire on the buyer: what does it sell?",
        "A catalog supplier to a persistent coyote: describe its reputation.",
    ],
}

ANSWER_TEXTS = [
    "Acme, Stanley and Bosch.",          # 1 mention
    "Grainger and Fastenal.",            # 0
    "Acme is the classic; Acme again.",  # 2
    "Acme Corporation, per cartoons.",   # 1
    "Acme. Acme. Acme.",                 # 3
    "Probably outdoor retailers.",       # 0
    "Acme's buyers are mostly coyotes.",  # 1
    "It sells traps and rockets.",       # 0
    "Acme has an unreliable reputation, though Acme ships fast.",  # 2
]


def _answers_payload():
    flat = [q for cat in ("A", "B", "C") for q in QUESTIONS_JSON[cat]]
    return [
        {"id": qid, "question": q, "answer": a}
        for qid, q, a in zip(QUESTION_IDS, flat, ANSWER_TEXTS)
    ]


def _judge_payload():
    return {
        "scores": [
            {"id": qid, "relevance": 0.8, "specificity": 0.5, "analysis": f"Judged {qid}."}
            for qid in QUESTION_IDS
        ]
    }


def _narrative_payload(ids=QUESTION_IDS):
    return {
        "rating_comment": "Acme is recognised but thinly described.",
        "dimension_analysis": {
            "salience": "Acme surfaces unprompted in several answers.",
            "relevance": "Answers match the brand's catalog identity.",
            "specificity": "Details are mostly generic.",
        },
        "question_summaries": [
            {"id": qid, "answer_summary": f"Summary for {qid}."} for qid in ids
        ],
        "bottlenecks": ["Product range is rarely described."],
        "recommendations": [
            "Publish a structured product catalog.",
            "Seed reviews on comparison sites.",
            "Clarify safety record in FAQs.",
        ],
    }


@pytest.fixture
def questions_response() -> str:
    return "Here you go:\n```json\n" + json.dumps(QUESTIONS_JSON) + "\n```"


@pytest.fixture
def answers_response() -> str:
    return json.dumps(_answers_payload())


@pytest.fixture
def judge_response() -> str:
    return json.dumps(_judge_payload())


@pytest.fixture
def narrative_response() -> str:
    return json.dumps(_narrative_payload())


@pytest.fixture
def narrative_payload():
    return _narrative_payload


@pytest.fixture
def fake_llm():
    """Build a scripted chat model from a list of raw response texts."""

    def _make(*responses: str) -> FakeListChatModel:
        return FakeListChatModel(responses=list(responses))

    return _make


@pytest.fixture
def stage_llms(fake_llm, questions_response, answers_response, judge_response, narrative_response):
    """One scripted model per stage, keyed by agent name."""
    return {
        "question_generator": fake_llm(questions_response),
        "answer_generator": fake_llm(answers_response),
        "scorer": fake_llm(judge_response),
        "report_synthesizer": fake_llm(narrative_response),
    }

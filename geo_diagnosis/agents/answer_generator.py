"""Answer Generator: the model under test answers every probe question.

All questions go out in one batched request. Answers are matched back to
their questions by the ids echoed in the response (falling back to position
when the model drops the ids) and always come out in input order, carrying
the input question text verbatim.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import structlog
from langchain_core.messages import HumanMessage, SystemMessage
from langchain_core.runnables import RunnableConfig

from geo_diagnosis.agents.base import notify_stage, stage_llm
from geo_diagnosis.errors import InvalidInput, MalformedUpstreamOutput
from geo_diagnosis.prompts.templates import ANSWER_GENERATOR_SYSTEM, ANSWER_GENERATOR_TASK
from geo_diagnosis.schemas.agent_outputs import AnswerGeneratorOutput, AnswerOut
from geo_diagnosis.schemas.diagnosis import QAPair, Question
from geo_diagnosis.schemas.phases import Stage
from geo_diagnosis.schemas.state import DiagnosisState
from geo_diagnosis.utils.structured_output import invoke_structured

logger = structlog.get_logger(__name__)

AGENT_NAME = Stage.ANSWERS.value


def _normalize_questions(questions: Any) -> list[tuple[str, str]]:
    """Validate input and return (id, text) pairs. Plain strings get ids Q1..Qn."""
    if not isinstance(questions, (list, tuple)) or not questions:
        raise InvalidInput("Questions array is required", stage=AGENT_NAME)

    normalized: list[tuple[str, str]] = []
    for position, item in enumerate(questions, start=1):
        if isinstance(item, Question):
            qid, text = item.id, item.text
        elif isinstance(item, str):
            qid, text = f"Q{position}", item
        else:
            raise InvalidInput(
                f"Question {position} must be text, got {type(item).__name__}",
                stage=AGENT_NAME,
            )
        if not text.strip():
            raise InvalidInput(f"Question {position} is empty", stage=AGENT_NAME)
        normalized.append((qid, text.strip()))

    ids = [qid for qid, _ in normalized]
    if len(set(ids)) != len(ids):
        raise InvalidInput("Question ids must be unique", stage=AGENT_NAME)
    return normalized


def _align(questions: list[tuple[str, str]], answers: list[AnswerOut]) -> list[QAPair]:
    """Pair answers with questions, by id when every answer carries a known id."""
    if len(answers) != len(questions):
        raise MalformedUpstreamOutput(
            f"Expected {len(questions)} answers, got {len(answers)}", stage=AGENT_NAME
        )

    expected_ids = [qid for qid, _ in questions]
    returned_ids = [a.id for a in answers]
    if all(returned_ids):
        if sorted(returned_ids) != sorted(expected_ids):
            raise MalformedUpstreamOutput(
                "Answer ids do not match question ids", stage=AGENT_NAME
            )
        by_id = {a.id: a for a in answers}
        ordered = [by_id[qid] for qid in expected_ids]
    else:
        logger.warning("answer_generator_positional_fallback")
        ordered = answers

    return [
        QAPair(id=qid, question=text, answer=answer.answer.strip())
        for (qid, text), answer in zip(questions, ordered)
    ]


async def generate_answers(
    questions: Sequence[str | Question], *, llm: Any | None = None
) -> list[QAPair]:
    """Collect one answer per question, aligned with the input order."""
    normalized = _normalize_questions(questions)

    logger.info("answer_generator_start", count=len(normalized))

    questions_text = "\n".join(f"{qid}. {text}" for qid, text in normalized)
    messages = [
        SystemMessage(content=ANSWER_GENERATOR_SYSTEM),
        HumanMessage(
            content=ANSWER_GENERATOR_TASK.format(
                count=len(normalized), questions_text=questions_text
            )
        ),
    ]
    parsed = await invoke_structured(
        agent_name=AGENT_NAME,
        messages=messages,
        schema=AnswerGeneratorOutput,
        expect=list,
        llm=llm,
    )
    pairs = _align(normalized, parsed.root)

    logger.info("answer_generator_done", count=len(pairs))
    return pairs


async def answer_generator_node(
    state: DiagnosisState, config: RunnableConfig
) -> dict:
    """Graph node: question_set → answers."""
    notify_stage(config, Stage.ANSWERS)
    questions = state["question_set"].flatten()
    answers = await generate_answers(questions, llm=stage_llm(config, AGENT_NAME))
    return {
        "answers": answers,
        "current_stage": Stage.SCORING,
        "messages": [f"[AnswerGenerator] {len(answers)} answers"],
    }

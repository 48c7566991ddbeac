"""Tests for prompt template formatting safety."""

from geo_diagnosis.prompts.templates import (
    ANSWER_GENERATOR_TASK,
    QUESTION_GENERATOR_TASK,
    REPORT_SYNTHESIZER_TASK,
    SCORER_SYSTEM,
    SCORER_TASK,
)


def test_question_task_names_brand_and_forbids_it():
    text = QUESTION_GENERATOR_TASK.format(brand_name="Acme")
    assert text.count("Acme") == 2
    assert "must not appear" in text


def test_scorer_system_format_keeps_json_example():
    text = SCORER_SYSTEM.format(brand_name="Acme")
    assert '"Acme"' in text
    assert '"scores": [' in text
    assert '{"id": "Q1"' in text


def test_scorer_task_embeds_pairs():
    assert "[]" in SCORER_TASK.format(pairs_json="[]")


def test_answer_task_lists_questions():
    text = ANSWER_GENERATOR_TASK.format(count=2, questions_text="Q1. a\nQ2. b")
    assert "(2 questions)" in text
    assert "Q2. b" in text


def test_report_task_formats_numbers():
    text = REPORT_SYNTHESIZER_TASK.format(
        brand_name="Acme",
        overall_score=41.234,
        rating="Fair",
        salience=0.5,
        relevance=0.25,
        specificity=1.0,
        scores_json="[]",
    )
    assert "41.2 / 100 (Fair)" in text
    assert "salience=0.50, relevance=0.25, specificity=1.00" in text

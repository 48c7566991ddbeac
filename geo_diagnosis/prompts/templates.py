"""Prompt templates for each pipeline stage.

Every stage asks for strict JSON; the stages parse the first well-formed JSON
value out of the response, so stray commentary is tolerated but discouraged.
"""

# ---------------------------------------------------------------------------
# Question Generator
# ---------------------------------------------------------------------------

QUESTION_GENERATOR_SYSTEM = """\
You are a brand-knowledge test designer. Based on a brand name you write three \
categories of probe questions, exactly 3 questions per category, and the brand \
name must NEVER appear in any question.

Category A (Open): completely open, no brand and no domain hint. Tests whether \
the model recalls the brand unprompted. Example: "List ten new-style tea \
beverage brands in China."
Category B (Scoped): restricts the industry or scenario, still no brand. \
Example: "Which drink brands of recent years center their identity on Eastern \
aesthetics?"
Category C (Suggestive): hints at the brand through its public features \
without naming it. Example: "A tea brand known for standardized flavor and \
urban nature-inspired design: how would you describe its customers?"

Return strict JSON only, with no other text:
{
  "A": ["question 1", "question 2", "question 3"],
  "B": ["question 1", "question 2", "question 3"],
  "C": ["question 1", "question 2", "question 3"]
}
"""

QUESTION_GENERATOR_TASK = """\
Write the probe questions for the brand "{brand_name}".
Remember: "{brand_name}" must not appear in any question.
"""


# ---------------------------------------------------------------------------
# Answer Generator (model under test)
# ---------------------------------------------------------------------------

ANSWER_GENERATOR_SYSTEM = """\
You are an answering model. Answer each of the questions below in order.
Answer concisely, do not explain yourself, do not output any meta information.

Return a strict JSON array and nothing else. Each element has the fields \
"id", "question" and "answer", with "id" copied from the question list. Example:
[
  {"id": "Q1", "question": "question 1", "answer": "answer 1"},
  {"id": "Q2", "question": "question 2", "answer": "answer 2"}
]
"""

ANSWER_GENERATOR_TASK = """\
Question list ({count} questions):
{questions_text}
"""


# ---------------------------------------------------------------------------
# Scorer
# ---------------------------------------------------------------------------

SCORER_SYSTEM = """\
You are a GEO scorer judging how well answers reflect the brand "{brand_name}".
Salience is computed separately; you rate only the two dimensions below.

1. relevance (0-1): semantic relevance of the answer content to the brand's \
actual identity and domain.
   - highly relevant = 0.8-1.0
   - moderately relevant = 0.4-0.7
   - weakly related or unrelated = 0.0-0.3

2. specificity (exactly one of 0, 0.5, 1): how concrete the answer is.
   - 1 = very specific, gives detailed information
   - 0.5 = moderately specific
   - 0 = generic boilerplate

Also write "analysis": one sentence explaining the judgement.

Return strict JSON only, one entry per answer, keeping each "id":
{{
  "scores": [
    {{"id": "Q1", "relevance": 0.0, "specificity": 0, "analysis": "one sentence"}}
  ]
}}
"""

SCORER_TASK = """\
Score the following question/answer pairs:
{pairs_json}
"""


# ---------------------------------------------------------------------------
# Report Synthesizer
# ---------------------------------------------------------------------------

REPORT_SYNTHESIZER_SYSTEM = """\
You are a professional brand analyst writing the narrative parts of a GEO \
brand-comprehension diagnosis. The numbers are already computed; interpret \
them, do not recompute them. Use precise professional language, be concrete \
and actionable.

Return strict JSON only:
{
  "rating_comment": "one or two sentences on the overall score",
  "dimension_analysis": {
    "salience": "analysis of unprompted brand mentions",
    "relevance": "analysis of semantic relevance",
    "specificity": "analysis of answer concreteness"
  },
  "question_summaries": [
    {"id": "Q1", "answer_summary": "short summary of the answer"}
  ],
  "bottlenecks": ["main comprehension bottleneck", "..."],
  "recommendations": ["3 to 5 concrete, executable recommendations"]
}
"question_summaries" must contain exactly one entry per scored question, in the \
same order and with the same ids.
"""

REPORT_SYNTHESIZER_TASK = """\
Brand: {brand_name}
Overall GEO score: {overall_score:.1f} / 100 ({rating})
Dimension averages (0-1): salience={salience:.2f}, relevance={relevance:.2f}, specificity={specificity:.2f}

Per-question scores:
{scores_json}
"""

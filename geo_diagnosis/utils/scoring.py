"""Deterministic GEO scoring rules.

The scoring model only supplies relevance and specificity judgements.
Salience, the weighted geoScore and the run-level overall score are computed
here so that identical inputs always give identical numbers.
"""

from __future__ import annotations

import unicodedata
from collections.abc import Sequence

from geo_diagnosis.config import ScoringConfig
from geo_diagnosis.schemas.diagnosis import SALIENCE_LEVELS, ScoreRecord

_RATING_BANDS = (
    (80.0, "Excellent"),
    (60.0, "Good"),
    (40.0, "Fair"),
    (20.0, "Weak"),
)


def normalize_text(text: str) -> str:
    """NFKC-normalize and case-fold, so full-width and case variants match."""
    return unicodedata.normalize("NFKC", text).casefold()


def count_mentions(brand_name: str, text: str) -> int:
    """Count non-overlapping, case-insensitive occurrences of the brand in text."""
    needle = normalize_text(brand_name.strip())
    if not needle:
        return 0
    return normalize_text(text).count(needle)


def mentions_brand(brand_name: str, text: str) -> bool:
    return count_mentions(brand_name, text) > 0


def salience_from_mentions(mentions: int) -> float:
    if mentions < 0:
        raise ValueError("mentions cannot be negative")
    return SALIENCE_LEVELS[min(mentions, len(SALIENCE_LEVELS) - 1)]


def salience_score(brand_name: str, answer: str) -> float:
    return salience_from_mentions(count_mentions(brand_name, answer))


def geo_score(
    salience: float,
    relevance: float,
    specificity: float,
    weights: ScoringConfig | None = None,
) -> float:
    """Weighted composite of the three dimensions, in [0, 1]."""
    w = weights or ScoringConfig()
    value = (
        w.salience_weight * salience
        + w.relevance_weight * relevance
        + w.specificity_weight * specificity
    )
    # guard float drift at the edges of the interval
    return max(0.0, min(1.0, value))


def overall_score(scores: Sequence[ScoreRecord]) -> float:
    """100 x mean geoScore across all questions."""
    if not scores:
        raise ValueError("overall score needs at least one score record")
    mean = sum(s.geo_score for s in scores) / len(scores)
    return max(0.0, min(100.0, mean * 100.0))


def dimension_averages(scores: Sequence[ScoreRecord]) -> dict[str, float]:
    """Mean salience, relevance and specificity, each in [0, 1]."""
    if not scores:
        return {"salience": 0.0, "relevance": 0.0, "specificity": 0.0}
    n = len(scores)
    return {
        "salience": sum(s.salience for s in scores) / n,
        "relevance": sum(s.relevance for s in scores) / n,
        "specificity": sum(s.specificity for s in scores) / n,
    }


def rating_label(overall: float) -> str:
    for threshold, label in _RATING_BANDS:
        if overall >= threshold:
            return label
    return "Poor"

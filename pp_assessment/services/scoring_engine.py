"""
Scoring Engine — pure functions from responses to pillar scores.

Pillar score arithmetic:

    score = mean(fraction(response) * 100) over answered, scored questions

Question ``weight`` is intentionally NOT part of the mean; it only feeds
``classify_question_impact``. Task adjustments are tracked elsewhere and
combined here with ``combine_score`` which clamps to [0, 100].

Usage:
    from pp_assessment.services.scoring_engine import compute_pillar_score, combine_score
    raw = compute_pillar_score("security", store)
    shown = combine_score(raw, tracker.adjustment_for("security"))
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Mapping

from pp_assessment.services.catalog import (
    MATURITY_LEVELS,
    MATURITY_RECOMMENDATIONS,
    PILLARS,
    Pillar,
    Question,
    get_pillar,
)
from pp_assessment.services.responses import (
    BooleanResponse,
    PercentageResponse,
    Response,
    ScaleResponse,
    TextResponse,
    normalize,
)

logger = logging.getLogger(__name__)

SCORE_MIN = 0.0
SCORE_MAX = 100.0

# RAG keys match the export fills
RAG_GREEN = "green"
RAG_AMBER = "amber"
RAG_RED = "red"
RAG_GREY = "grey"
_RAG_SEVERITY = {RAG_GREY: 0, RAG_GREEN: 1, RAG_AMBER: 2, RAG_RED: 3}

HIGH_IMPACT_SHARE = 0.25
MEDIUM_IMPACT_SHARE = 0.15


def _clamp(value: float) -> float:
    return max(SCORE_MIN, min(SCORE_MAX, value))


def _resolve(pillar: Pillar | str) -> Pillar:
    return pillar if isinstance(pillar, Pillar) else get_pillar(pillar)


# ── Pillar score ─────────────────────────────────────────────────────────


def compute_pillar_score(pillar: Pillar | str, responses: Mapping[str, Response],
                         weights: Mapping[str, float] | None = None) -> float:
    """Return the unweighted maturity score of a pillar.

    Args:
        pillar: Pillar or pillar id.
        responses: question id → response (a ``ResponseStore`` works too).
        weights: Accepted for interface symmetry with impact labelling and
            not applied to the arithmetic.

    Returns:
        Mean of ``fraction * 100`` over answered scored questions, clamped
        to [0, 100]; 0.0 when nothing scored is answered.
    """
    pillar = _resolve(pillar)
    fractions = []
    for question in pillar.questions:
        response = responses.get(question.id)
        if response is None:
            continue
        fraction = normalize(response)
        if fraction is not None:
            fractions.append(fraction)
    if not fractions:
        return 0.0
    return _clamp(sum(f * 100 for f in fractions) / len(fractions))


def combine_score(raw_score: float, adjustment: float) -> float:
    """Displayed score: raw score plus task adjustment, clamped to [0, 100]."""
    return _clamp(raw_score + adjustment)


def compute_overall_score(pillar_scores: Mapping[str, float]) -> float:
    """Mean of pillar scores (0.0 for an empty mapping)."""
    if not pillar_scores:
        return 0.0
    return sum(pillar_scores.values()) / len(pillar_scores)


def completion_percentage(pillar: Pillar | str, responses: Mapping[str, Response]) -> float:
    pillar = _resolve(pillar)
    if not pillar.questions:
        return 0.0
    answered = sum(1 for q in pillar.questions if responses.get(q.id) is not None)
    return answered / len(pillar.questions) * 100


def calculate_gap_contribution(question: Question, pillar: Pillar | str,
                               responses: Mapping[str, Response]) -> float:
    """Points the pillar score would gain if this answered question were maxed out.

    Returns 0.0 for unanswered or text questions.
    """
    pillar = _resolve(pillar)
    response = responses.get(question.id)
    fraction = normalize(response) if response is not None else None
    if fraction is None:
        return 0.0
    scored = [normalize(responses.get(q.id)) for q in pillar.questions
              if responses.get(q.id) is not None]
    scored = [f for f in scored if f is not None]
    return (1 - fraction) * 100 / len(scored)


# ── Impact & RAG ─────────────────────────────────────────────────────────


def classify_question_impact(question: Question, pillar: Pillar | str | None = None) -> str:
    """Label a question by its share of the pillar's total question weight.

    ≥ 25 % → "High Impact", ≥ 15 % → "Medium Impact", otherwise "Low Impact".
    """
    pillar = _resolve(pillar or question.pillar_id)
    total = pillar.total_question_weight
    share = question.weight / total if total else 0
    if share >= HIGH_IMPACT_SHARE:
        return "High Impact"
    if share >= MEDIUM_IMPACT_SHARE:
        return "Medium Impact"
    return "Low Impact"


def question_rag(response: Response | None) -> str:
    """RAG status for a single answer; unanswered questions are grey."""
    if response is None:
        return RAG_GREY
    if isinstance(response, BooleanResponse):
        return RAG_GREEN if response.value else RAG_RED
    if isinstance(response, ScaleResponse):
        if response.value >= 4:
            return RAG_GREEN
        return RAG_AMBER if response.value == 3 else RAG_RED
    if isinstance(response, PercentageResponse):
        if response.value >= 75:
            return RAG_GREEN
        return RAG_AMBER if response.value >= 25 else RAG_RED
    if isinstance(response, TextResponse):
        return RAG_AMBER
    raise TypeError(f"Unsupported response type: {type(response).__name__}")


def worst_rag(rags: Iterable[str]) -> str:
    """Most severe RAG of a collection; grey when empty or all grey."""
    return max(rags, key=_RAG_SEVERITY.__getitem__, default=RAG_GREY)


def pillar_rag(pillar: Pillar | str, responses: Mapping[str, Response]) -> str:
    pillar = _resolve(pillar)
    return worst_rag(question_rag(responses.get(q.id)) for q in pillar.questions)


# ── Maturity ─────────────────────────────────────────────────────────────


@dataclass
class MaturityAssessment:
    level: int
    name: str
    description: str
    score: float
    next_level_gap: float
    recommendations: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "level": self.level,
            "name": self.name,
            "description": self.description,
            "score": round(self.score, 1),
            "next_level_gap": round(self.next_level_gap, 1),
            "recommendations": self.recommendations,
        }


def assess_maturity(overall_score: float, responses: Mapping[str, Response] | None = None,
                    pillars: Iterable[Pillar] = PILLARS) -> MaturityAssessment:
    """Map an overall score onto the five-level maturity model.

    Thresholds: Initial < 40 ≤ Repeatable < 60 ≤ Defined < 75 ≤ Capable < 90 ≤ Efficient.
    Recommendations are the level's three standard actions followed by
    "Critical: <best practice>" for each required question answered below
    3, capped at five.
    """
    current = MATURITY_LEVELS[0]
    for level in MATURITY_LEVELS:
        if overall_score >= level.min_score:
            current = level
    if current.level < len(MATURITY_LEVELS):
        next_threshold = MATURITY_LEVELS[current.level].min_score
    else:
        next_threshold = SCORE_MAX

    recommendations = list(MATURITY_RECOMMENDATIONS[current.level])
    if responses is not None:
        for pillar in pillars:
            for question in pillar.questions:
                response = responses.get(question.id)
                fraction = normalize(response) if response is not None else None
                if question.required and fraction is not None and fraction < 0.6:
                    recommendations.append(f"Critical: {question.best_practice}")

    return MaturityAssessment(
        level=current.level,
        name=current.name,
        description=current.description,
        score=overall_score,
        next_level_gap=max(0.0, next_threshold - overall_score),
        recommendations=recommendations[:5],
    )


# ── Aggregate scorecard ──────────────────────────────────────────────────


@dataclass
class PillarScore:
    """Scorecard row for one pillar."""
    pillar_id: str
    name: str
    raw_score: float
    adjustment: float
    score: float
    target: float
    rag: str
    completion: float

    @property
    def gap(self) -> float:
        return max(0.0, self.target - self.score)

    def to_dict(self) -> dict:
        return {
            "pillar_id": self.pillar_id,
            "name": self.name,
            "raw_score": round(self.raw_score, 2),
            "adjustment": round(self.adjustment, 2),
            "score": round(self.score, 2),
            "target": self.target,
            "gap": round(self.gap, 2),
            "rag": self.rag,
            "completion": round(self.completion, 1),
        }


def score_pillars(responses: Mapping[str, Response], adjustments: Mapping[str, float] | None = None,
                  pillars: Iterable[Pillar] = PILLARS) -> list[PillarScore]:
    """Score every pillar, combining raw scores with task adjustments."""
    adjustments = adjustments or {}
    rows = []
    for pillar in pillars:
        raw = compute_pillar_score(pillar, responses)
        adj = adjustments.get(pillar.id, 0.0)
        rows.append(PillarScore(
            pillar_id=pillar.id,
            name=pillar.name,
            raw_score=raw,
            adjustment=adj,
            score=combine_score(raw, adj),
            target=pillar.target,
            rag=pillar_rag(pillar, responses),
            completion=completion_percentage(pillar, responses),
        ))
    return rows

"""
Tests — response variants and the scoring engine.

Covers:
    - Response variants (validation, normalisation, coercion from raw JSON)
    - ResponseStore (set/clear/serialisation)
    - compute_pillar_score / combine_score / compute_overall_score
    - RAG status per question and per pillar
    - Maturity assessment thresholds and critical recommendations
    - Impact classification from question weights
    - score_pillars scorecard rows
"""

import pytest

from pp_assessment.core.exceptions import NotFoundError, ValidationError
from pp_assessment.services.catalog import get_pillar, get_question
from pp_assessment.services.responses import (
    BooleanResponse,
    PercentageResponse,
    ResponseStore,
    ScaleResponse,
    TextResponse,
    coerce_response,
    normalize,
)
from pp_assessment.services.scoring_engine import (
    RAG_AMBER,
    RAG_GREEN,
    RAG_GREY,
    RAG_RED,
    assess_maturity,
    calculate_gap_contribution,
    classify_question_impact,
    combine_score,
    completion_percentage,
    compute_overall_score,
    compute_pillar_score,
    pillar_rag,
    question_rag,
    score_pillars,
)


# ── Helpers ──────────────────────────────────────────────────────────────

def _store(**answers) -> ResponseStore:
    store = ResponseStore()
    for qid, raw in answers.items():
        qid = qid.replace("_", "-")
        store.set(qid, coerce_response(get_question(qid), raw))
    return store


# ═════════════════════════════════════════════════════════════════════════════
# Responses
# ═════════════════════════════════════════════════════════════════════════════

class TestResponses:
    def test_scale_normalises_to_fifths(self):
        assert normalize(ScaleResponse(5)) == 1.0
        assert normalize(ScaleResponse(3)) == pytest.approx(0.6)

    def test_boolean_false_scores_zero(self):
        assert normalize(BooleanResponse(False)) == 0.0
        assert normalize(BooleanResponse(True)) == 1.0

    def test_percentage_normalises(self):
        assert normalize(PercentageResponse(45)) == pytest.approx(0.45)

    def test_text_is_not_scored(self):
        assert normalize(TextResponse("Azure DevOps pipelines")) is None

    @pytest.mark.parametrize("value", [0, 6, True])
    def test_scale_out_of_range_rejected(self, value):
        with pytest.raises(ValidationError):
            ScaleResponse(value)

    def test_percentage_above_100_rejected(self):
        with pytest.raises(ValidationError):
            PercentageResponse(101)

    def test_coerce_scale_accepts_numeric_string_and_whole_float(self):
        q = get_question("rel-2025-1")
        assert coerce_response(q, "4") == ScaleResponse(4)
        assert coerce_response(q, 4.0) == ScaleResponse(4)

    def test_coerce_boolean_accepts_yes(self):
        assert coerce_response(get_question("sec-2025-4"), "yes") == BooleanResponse(True)

    def test_coerce_rejects_none(self):
        with pytest.raises(ValidationError):
            coerce_response(get_question("rel-2025-1"), None)

    def test_coerce_percentage_strips_sign(self):
        assert coerce_response(get_question("exp-2025-4"), "45%") == PercentageResponse(45.0)

    def test_store_set_returns_previous(self):
        store = ResponseStore()
        assert store.set("rel-2025-1", ScaleResponse(2)) is None
        assert store.set("rel-2025-1", ScaleResponse(4)) == ScaleResponse(2)
        assert store.get("rel-2025-1") == ScaleResponse(4)

    def test_store_serialisation_round_trip(self):
        store = _store(rel_2025_1=4, sec_2025_4=False, exp_2025_4=30, ops_2025_6="GitHub Actions")
        assert ResponseStore.from_dict(store.to_dict()) == store


# ═════════════════════════════════════════════════════════════════════════════
# Pillar and overall scores
# ═════════════════════════════════════════════════════════════════════════════

class TestPillarScore:
    def test_two_answers_average(self):
        store = _store(rel_2025_1=5, rel_2025_2=3)
        assert compute_pillar_score("reliability", store) == pytest.approx(80.0)

    def test_unanswered_pillar_is_zero(self):
        assert compute_pillar_score("performance", ResponseStore()) == 0.0

    def test_text_answers_do_not_dilute(self):
        store = _store(ops_2025_1=5, ops_2025_6="Azure DevOps")
        assert compute_pillar_score("operations", store) == pytest.approx(100.0)

    def test_boolean_false_pulls_score_down(self):
        store = _store(sec_2025_1=5, sec_2025_4=False)
        assert compute_pillar_score("security", store) == pytest.approx(50.0)

    def test_unknown_pillar_raises(self):
        with pytest.raises(NotFoundError):
            compute_pillar_score("nonexistent", ResponseStore())

    @pytest.mark.parametrize("raw,adj,expected", [
        (80.0, 10.0, 90.0),
        (95.0, 20.0, 100.0),
        (10.0, -30.0, 0.0),
    ])
    def test_combine_score_clamps(self, raw, adj, expected):
        assert combine_score(raw, adj) == pytest.approx(expected)

    def test_overall_is_mean_of_pillars(self):
        assert compute_overall_score({"a": 80.0, "b": 40.0}) == pytest.approx(60.0)
        assert compute_overall_score({}) == 0.0

    def test_completion_percentage(self):
        pillar = get_pillar("reliability")
        store = _store(rel_2025_1=5)
        assert completion_percentage(pillar, store) == pytest.approx(100 / len(pillar.questions))


# ═════════════════════════════════════════════════════════════════════════════
# RAG
# ═════════════════════════════════════════════════════════════════════════════

class TestRag:
    @pytest.mark.parametrize("response,expected", [
        (None, RAG_GREY),
        (ScaleResponse(5), RAG_GREEN),
        (ScaleResponse(3), RAG_AMBER),
        (ScaleResponse(2), RAG_RED),
        (BooleanResponse(True), RAG_GREEN),
        (BooleanResponse(False), RAG_RED),
        (PercentageResponse(80), RAG_GREEN),
        (PercentageResponse(50), RAG_AMBER),
        (PercentageResponse(10), RAG_RED),
    ])
    def test_question_rag(self, response, expected):
        assert question_rag(response) == expected

    def test_pillar_rag_is_worst_answer(self):
        store = _store(rel_2025_1=5, rel_2025_2=2)
        assert pillar_rag("reliability", store) == RAG_RED

    def test_empty_pillar_is_grey(self):
        assert pillar_rag("performance", ResponseStore()) == RAG_GREY


# ═════════════════════════════════════════════════════════════════════════════
# Maturity & impact
# ═════════════════════════════════════════════════════════════════════════════

class TestMaturity:
    @pytest.mark.parametrize("score,level", [(0, 1), (39.9, 1), (40, 2), (60, 3), (75, 4), (90, 5), (100, 5)])
    def test_levels(self, score, level):
        assert assess_maturity(score).level == level

    def test_next_level_gap(self):
        assert assess_maturity(55).next_level_gap == pytest.approx(5.0)
        assert assess_maturity(95).next_level_gap == pytest.approx(5.0)

    def test_critical_recommendations_for_low_required_answers(self):
        store = _store(sec_2025_1=1)
        result = assess_maturity(50, store)
        assert any(r.startswith("Critical:") for r in result.recommendations)
        assert len(result.recommendations) <= 5


class TestImpact:
    def test_classification_uses_weight_share(self):
        labels = {classify_question_impact(q) for q in get_pillar("governance").questions}
        assert labels <= {"High Impact", "Medium Impact", "Low Impact"}

    def test_gap_contribution_zero_for_max_answer(self):
        q = get_question("rel-2025-1")
        store = _store(rel_2025_1=5, rel_2025_2=3)
        assert calculate_gap_contribution(q, "reliability", store) == 0.0

    def test_gap_contribution_for_partial_answer(self):
        q = get_question("rel-2025-2")
        store = _store(rel_2025_1=5, rel_2025_2=3)
        assert calculate_gap_contribution(q, "reliability", store) == pytest.approx(20.0)


class TestScorePillars:
    def test_rows_combine_adjustments(self):
        store = _store(rel_2025_1=5, rel_2025_2=3)
        rows = {r.pillar_id: r for r in score_pillars(store, {"reliability": 10.0})}
        row = rows["reliability"]
        assert row.raw_score == pytest.approx(80.0)
        assert row.score == pytest.approx(90.0)
        assert row.gap == 0.0
        assert len(rows) == 6

"""
Tests — baseline snapshots, assessment snapshots and gap-closure analysis.
"""

from dataclasses import FrozenInstanceError
from datetime import datetime, timedelta, timezone

import pytest

from pp_assessment.services.gap_closure import (
    BaselineSnapshot,
    GapStatus,
    calculate_gap_closure,
    create_assessment_snapshot,
    create_baseline_snapshot,
    project_completion,
)

T0 = datetime(2025, 2, 1, 9, 0, tzinfo=timezone.utc)
TARGETS = {"security": 90.0, "governance": 80.0, "experience": 60.0}


def _baseline(**scores):
    scores = scores or {"security": 50.0, "governance": 60.0, "experience": 70.0}
    overall = sum(scores.values()) / len(scores)
    return create_baseline_snapshot(overall, scores, targets=TARGETS, timestamp=T0)


def _progress(analysis, pillar):
    return next(p for p in analysis.gap_progress if p.pillar == pillar)


class TestBaseline:
    def test_gaps_never_negative(self):
        baseline = _baseline()
        assert baseline.gap_for("security").gap == 40.0
        assert baseline.gap_for("governance").gap == 20.0
        assert baseline.gap_for("experience").gap == 0.0

    def test_snapshot_is_frozen(self):
        baseline = _baseline()
        with pytest.raises(FrozenInstanceError):
            baseline.overall_score = 99.0

    def test_pillar_scores_are_read_only(self):
        scores = {"security": 50.0, "governance": 60.0}
        baseline = create_baseline_snapshot(55.0, scores, targets=TARGETS, timestamp=T0)
        with pytest.raises(TypeError):
            baseline.pillar_scores["security"] = 100.0
        scores["security"] = 0.0
        assert baseline.pillar_scores["security"] == 50.0

    def test_unknown_pillar_defaults_to_target_100(self):
        baseline = create_baseline_snapshot(30.0, {"custom": 30.0}, targets={}, timestamp=T0)
        assert baseline.gap_for("custom").gap == 70.0

    def test_round_trip(self):
        baseline = _baseline()
        assert BaselineSnapshot.from_dict(baseline.to_dict()) == baseline


class TestAssessmentSnapshot:
    def test_counts_closed_gaps_and_rate(self):
        baseline = _baseline()
        snapshot = create_assessment_snapshot(
            baseline, {"security": 82.0, "governance": 65.0, "experience": 70.0},
            timestamp=T0 + timedelta(days=10))
        # security recovered 32 of 40 (80 %); experience had no gap
        assert snapshot.gaps_closed == 2
        assert snapshot.improvement_rate == pytest.approx((60 - 23) / 60 * 100)

    def test_evidence_counts_non_empty_lists(self):
        snapshot = create_assessment_snapshot(_baseline(), {"security": 50.0},
                                              evidence={"a": ["x.pdf"], "b": []}, timestamp=T0)
        assert snapshot.evidence_uploaded == 1


class TestGapClosure:
    def test_statuses(self):
        baseline = _baseline()
        current = create_assessment_snapshot(
            baseline, {"security": 90.0, "governance": 70.0, "experience": 40.0},
            timestamp=T0 + timedelta(days=5))
        analysis = calculate_gap_closure(baseline, current)

        assert _progress(analysis, "security").status == GapStatus.CLOSED
        assert _progress(analysis, "governance").status == GapStatus.IN_PROGRESS
        assert _progress(analysis, "governance").percentage_closed == pytest.approx(50.0)

    def test_zero_gap_is_closed_even_after_regression(self):
        baseline = _baseline()
        current = create_assessment_snapshot(baseline, {"experience": 40.0}, timestamp=T0)
        progress = _progress(calculate_gap_closure(baseline, current), "experience")
        assert progress.percentage_closed == 100.0
        assert progress.status == GapStatus.CLOSED
        assert progress.improvement == pytest.approx(-30.0)

    def test_regression_is_clamped_but_raw_kept(self):
        baseline = _baseline()
        current = create_assessment_snapshot(baseline, {"security": 40.0}, timestamp=T0)
        progress = _progress(calculate_gap_closure(baseline, current), "security")
        assert progress.status == GapStatus.OPEN
        assert progress.percentage_closed == 0.0
        assert progress.raw_percentage_closed == pytest.approx(-25.0)

    def test_overshoot_is_clamped_to_100(self):
        baseline = _baseline()
        current = create_assessment_snapshot(baseline, {"governance": 100.0}, timestamp=T0)
        progress = _progress(calculate_gap_closure(baseline, current), "governance")
        assert progress.percentage_closed == 100.0
        assert progress.raw_percentage_closed == pytest.approx(200.0)

    def test_missing_current_pillar_falls_back_to_baseline(self):
        baseline = _baseline()
        current = create_assessment_snapshot(baseline, {}, timestamp=T0)
        progress = _progress(calculate_gap_closure(baseline, current), "security")
        assert progress.improvement == 0.0
        assert progress.status == GapStatus.OPEN

    def test_projection_is_linear(self):
        baseline = _baseline(security=50.0)
        current = create_assessment_snapshot(baseline, {"security": 70.0},
                                             timestamp=T0 + timedelta(days=10))
        analysis = calculate_gap_closure(baseline, current)
        assert analysis.average_gap_closure == pytest.approx(50.0)
        assert analysis.time_elapsed == timedelta(days=10)
        assert analysis.projected_completion_time == T0 + timedelta(days=20)


class TestProjectCompletion:
    @pytest.mark.parametrize("pct", [0.0, 100.0, -5.0])
    def test_not_computable_at_bounds(self, pct):
        assert project_completion(T0, T0 + timedelta(days=1), pct) is None

    def test_no_elapsed_time(self):
        assert project_completion(T0, T0, 50.0) is None

    def test_quarter_done(self):
        assert project_completion(T0, T0 + timedelta(days=1), 25.0) == T0 + timedelta(days=4)

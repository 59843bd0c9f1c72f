"""
Tests — task tracker: statuses, history, time estimates and the
per-pillar adjustment accumulator.
"""

import math
from datetime import timedelta

import pytest

from pp_assessment.core.exceptions import ValidationError
from pp_assessment.services.catalog import Impact
from pp_assessment.services.task_tracker import (
    AdjustmentTracker,
    HistoryAction,
    Task,
    TaskStatus,
    TimeEstimationFactors,
    add_comment,
    add_team_member,
    calculate_adaptive_estimate,
    calculate_score_impact,
    initialize_task,
    task_timeline,
    task_type_for,
    update_task_status,
    update_time_estimate,
)


def _task(task_id="sec-2025-3-t1", impact=Impact.MEDIUM, pillar_id="security") -> Task:
    return Task(
        id=task_id,
        name="Configure key vault",
        description="Provision the customer-managed key",
        recommendation_id="sec-2025-3",
        recommendation_title="Configure Customer-Managed Keys",
        category="Encryption",
        pillar_id=pillar_id,
        impact=impact,
        phase_number=1,
        phase_name="Planning",
        baseline_hours=24,
        estimated_hours=29,
    )


# ═════════════════════════════════════════════════════════════════════════════
# Status & history
# ═════════════════════════════════════════════════════════════════════════════

class TestTaskStatus:
    def test_initialize_records_not_started(self, clock):
        task = initialize_task(_task(), "Dana", clock=clock)
        assert len(task.history) == 1
        assert task.history[0].new_value == "Not Started"
        assert task.history[0].previous_value is None
        assert task.last_updated_by == "Dana"

    def test_status_change_appends_history(self, clock):
        task = _task()
        added = update_task_status(task, "In Progress", "Dana", clock=clock)
        assert task.status == TaskStatus.IN_PROGRESS
        assert len(added) == 1
        assert added[0].previous_value == "Not Started"
        assert added[0].new_value == "In Progress"

    def test_blocking_with_notes_records_blocker(self, clock):
        task = _task()
        added = update_task_status(task, TaskStatus.BLOCKED, "Dana", "Waiting on licence", clock=clock)
        assert [h.action for h in added] == [HistoryAction.STATUS_CHANGE, HistoryAction.BLOCKED]
        assert task.blocker_notes == "Waiting on licence"

    def test_unblocking_clears_notes(self, clock):
        task = _task()
        update_task_status(task, "Blocked", "Dana", "Waiting on licence", clock=clock)
        added = update_task_status(task, "In Progress", "Dana", clock=clock)
        assert added[-1].action == HistoryAction.UNBLOCKED
        assert task.blocker_notes is None

    def test_unknown_status_rejected(self, clock):
        with pytest.raises(ValidationError):
            update_task_status(_task(), "Done-ish", "Dana", clock=clock)

    def test_team_member_assignment(self, clock):
        task = _task()
        add_team_member(task, "Sam", "Dana", clock=clock)
        entry = add_team_member(task, "Alex", "Dana", clock=clock)
        assert task.assigned_to == ["Sam", "Alex"]
        assert entry.previous_value == "Sam"
        assert entry.new_value == "Sam, Alex"

    def test_blank_member_rejected(self, clock):
        with pytest.raises(ValidationError):
            add_team_member(_task(), "  ", "Dana", clock=clock)

    def test_time_estimate_update(self, clock):
        task = _task()
        entry = update_time_estimate(task, 40, "Dana", "Extra environments", clock=clock)
        assert task.estimated_hours == 40
        assert entry.previous_value == "29"
        assert entry.comment == "Extra environments"

    @pytest.mark.parametrize("hours", [-1, "ten", True, math.nan, math.inf, -math.inf])
    def test_invalid_time_estimate_rejected(self, clock, hours):
        task = _task()
        with pytest.raises(ValidationError):
            update_time_estimate(task, hours, "Dana", clock=clock)
        assert task.estimated_hours == 29
        assert task.history == []

    def test_comment_requires_text(self, clock):
        task = _task()
        add_comment(task, " Kick-off booked ", "Dana", clock=clock)
        assert task.history[-1].comment == "Kick-off booked"
        with pytest.raises(ValidationError):
            add_comment(task, "", "Dana", clock=clock)

    def test_timeline_is_newest_first(self, clock):
        task = initialize_task(_task(), "Dana", clock=clock)
        clock.advance(hours=2)
        update_task_status(task, "In Progress", "Sam", clock=clock)
        events = task_timeline(task, now=clock.now + timedelta(minutes=5))
        assert events[0]["user"] == "Sam"
        assert events[0]["description"] == 'Sam changed status from "Not Started" to "In Progress" 5m ago'
        assert events[1]["description"].endswith("2h ago")

    def test_round_trip_keeps_history(self, clock):
        task = initialize_task(_task(), "Dana", clock=clock)
        update_task_status(task, "Blocked", "Dana", "Waiting", clock=clock)
        assert Task.from_dict(task.to_dict()) == task


# ═════════════════════════════════════════════════════════════════════════════
# Estimates
# ═════════════════════════════════════════════════════════════════════════════

class TestEstimates:
    @pytest.mark.parametrize("name,task_type", [
        ("Assess current DLP coverage", "analysis"),
        ("Deploy policies to production", "deployment"),
        ("Migrate legacy flows", "migration"),
        ("Something else entirely", "implementation"),
    ])
    def test_task_type_keywords(self, name, task_type):
        assert task_type_for(name) == task_type

    def test_default_factors_scale_by_team_experience(self):
        assert calculate_adaptive_estimate(16, TimeEstimationFactors()) == 19

    def test_factors_multiply(self):
        factors = TimeEstimationFactors(organization_size="large", team_experience="beginner")
        assert calculate_adaptive_estimate(16, factors) == 31

    def test_invalid_factor_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            TimeEstimationFactors(organization_size="galactic")
        assert "organization_size" in exc_info.value.details

    def test_factors_from_partial_dict(self):
        factors = TimeEstimationFactors.from_dict({"team_experience": "expert"})
        assert factors.team_experience == "expert"
        assert factors.organization_size == "medium"


# ═════════════════════════════════════════════════════════════════════════════
# Score impact & adjustments
# ═════════════════════════════════════════════════════════════════════════════

class TestScoreImpact:
    def test_medium_single_task_phase_adds_ten(self):
        impact = calculate_score_impact(Impact.MEDIUM, 1, 1, False, 80.0)
        assert impact.projected_score == pytest.approx(90.0)
        assert impact.delta == pytest.approx(10.0)

    def test_evidence_adds_two_points(self):
        impact = calculate_score_impact(Impact.LOW, 1, 2, True, 50.0)
        assert impact.delta == pytest.approx(4.5)

    def test_projection_capped_at_100(self):
        impact = calculate_score_impact(Impact.HIGH, 1, 1, True, 95.0)
        assert impact.projected_score == 100.0
        assert impact.delta == pytest.approx(5.0)

    def test_empty_phase_rejected(self):
        with pytest.raises(ValidationError):
            calculate_score_impact(Impact.HIGH, 0, 0, False, 50.0)


class TestAdjustmentTracker:
    def test_complete_then_revert_restores_score(self):
        tracker = AdjustmentTracker()
        task = _task()
        impact = tracker.apply_task_completion("security", task, 1, False, 80.0, completed_count=1)
        assert impact.projected_score == pytest.approx(90.0)
        assert tracker.adjustment_for("security") == pytest.approx(10.0)

        removed = tracker.revert_task_completion("security", task, 1, False, 90.0, completed_count=0)
        assert removed == pytest.approx(10.0)
        assert tracker.adjustment_for("security") == 0.0
        assert not tracker.is_counted(task.id)

    def test_double_completion_rejected(self):
        tracker = AdjustmentTracker()
        task = _task()
        tracker.apply_task_completion("security", task, 1, False, 80.0, completed_count=1)
        with pytest.raises(ValidationError):
            tracker.apply_task_completion("security", task, 1, False, 90.0, completed_count=1)
        assert tracker.adjustment_for("security") == pytest.approx(10.0)

    def test_revert_without_contribution_recomputes(self):
        tracker = AdjustmentTracker(adjustments={"security": 10.0})
        removed = tracker.revert_task_completion("security", _task(), 1, False, 90.0, completed_count=0)
        assert removed == pytest.approx(10.0)
        assert tracker.adjustment_for("security") == 0.0

    def test_accumulator_floored_at_zero(self):
        tracker = AdjustmentTracker(adjustments={"security": 3.0})
        removed = tracker.revert_task_completion("security", _task(), 1, False, 83.0, completed_count=0)
        assert removed == pytest.approx(3.0)
        assert tracker.adjustment_for("security") == 0.0

    def test_round_trip(self):
        tracker = AdjustmentTracker()
        tracker.apply_task_completion("security", _task(), 2, True, 40.0, completed_count=1)
        assert AdjustmentTracker.from_dict(tracker.to_dict()) == tracker

"""
Tests — append-only audit log, timestamp normalisation and the summary
report.
"""

from dataclasses import FrozenInstanceError
from datetime import datetime, timedelta, timezone

import pytest

from pp_assessment.core.exceptions import ValidationError
from pp_assessment.services.audit_trail import (
    AuditEntry,
    AuditEntryType,
    AuditLog,
    VerificationStatus,
    generate_report,
    make_entry,
    normalize_timestamp,
)

T0 = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def _entry(entry_type=AuditEntryType.TASK_COMPLETED, at=T0, pillar="security", **details):
    return make_entry(entry_type, pillar=pillar, category="Encryption", user="Dana",
                      details=details, session_id="session-test", clock=lambda: at)


class TestNormalizeTimestamp:
    @pytest.mark.parametrize("value", [
        "2025-03-01T12:00:00Z",
        "2025-03-01T12:00:00+00:00",
        "2025-03-01T13:00:00+01:00",
        datetime(2025, 3, 1, 12, 0),
        int(T0.timestamp() * 1000),
    ])
    def test_accepted_forms(self, value):
        assert normalize_timestamp(value) == T0
        assert normalize_timestamp(value).tzinfo == timezone.utc

    @pytest.mark.parametrize("value", ["yesterday", None, True])
    def test_rejected_forms(self, value):
        with pytest.raises(ValidationError):
            normalize_timestamp(value)


class TestAuditLog:
    def test_entries_are_immutable(self):
        entry = _entry(task_name="Configure key vault")
        with pytest.raises(FrozenInstanceError):
            entry.user = "Mallory"
        with pytest.raises(TypeError):
            entry.details["task_name"] = "tampered"

    def test_get_entries_returns_tuple_copy(self):
        log = AuditLog()
        log.add_entry(_entry())
        entries = log.get_entries()
        assert isinstance(entries, tuple)
        assert len(entries) == 1
        assert not hasattr(log, "remove_entry")

    def test_clock_stepping_back_is_clamped(self):
        log = AuditLog()
        log.add_entry(_entry(at=T0))
        stored = log.add_entry(_entry(at=T0 - timedelta(minutes=5)))
        assert stored.timestamp == T0
        timestamps = [e.timestamp for e in log.get_entries()]
        assert timestamps == sorted(timestamps)

    def test_make_entry_drops_none_details_and_stamps_metadata(self):
        entry = _entry(task_name="Configure key vault", score_improvement=None)
        assert "score_improvement" not in entry.details
        assert entry.metadata["session_id"] == "session-test"
        assert entry.metadata["environment_id"] == "production"

    def test_filter_by_type_and_pillar(self):
        log = AuditLog()
        log.add_entry(_entry(AuditEntryType.TASK_COMPLETED, pillar="security"))
        log.add_entry(_entry(AuditEntryType.EVIDENCE_UPLOADED, pillar="security"))
        log.add_entry(_entry(AuditEntryType.TASK_COMPLETED, pillar="governance"))
        assert len(log.filter(entry_type="task_completed")) == 2
        assert len(log.filter(entry_type=AuditEntryType.TASK_COMPLETED, pillar="security")) == 1

    def test_sorted_entries_descending(self):
        log = AuditLog()
        first = log.add_entry(_entry(at=T0))
        second = log.add_entry(_entry(at=T0 + timedelta(hours=1)))
        assert log.sorted_entries() == [second, first]
        assert log.sorted_entries(descending=False) == [first, second]

    def test_round_trip(self):
        log = AuditLog()
        log.add_entry(_entry(task_name="Configure key vault", completion_percentage=50))
        restored = AuditLog.from_list(log.to_list())
        assert restored.get_entries() == log.get_entries()

    def test_from_list_keeps_stored_timestamps_out_of_order(self):
        later = _entry(at=T0 + timedelta(days=1)).to_dict()
        earlier = _entry(at=T0).to_dict()
        restored = AuditLog.from_list([later, earlier])
        assert [e.timestamp for e in restored.get_entries()] == [T0 + timedelta(days=1), T0]
        assert restored.to_list() == [later, earlier]
        assert restored.sorted_entries(descending=False)[0].timestamp == T0

    def test_from_list_rejects_malformed_entry(self):
        with pytest.raises(ValidationError):
            AuditLog.from_list([{"timestamp": "2025-03-01T12:00:00Z"}])

    def test_from_list_accepts_legacy_z_timestamps(self):
        log = AuditLog.from_list([{
            "id": "audit-legacy",
            "timestamp": "2025-03-01T12:00:00Z",
            "type": "score_updated",
            "pillar": "security",
        }])
        assert log.get_entries()[0].timestamp == T0


class TestReport:
    def test_summary_and_breakdown(self):
        entries = [
            _entry(AuditEntryType.TASK_COMPLETED, at=T0, task_name="A", completion_percentage=100),
            _entry(AuditEntryType.EVIDENCE_UPLOADED, at=T0 + timedelta(minutes=1),
                   recommendation_title="Keys", evidence_files=["a.pdf"]),
            _entry(AuditEntryType.SCORE_UPDATED, at=T0 + timedelta(minutes=2),
                   score_improvement=12.0, verification_status=VerificationStatus.VERIFIED.value),
            _entry(AuditEntryType.SCORE_UPDATED, at=T0 + timedelta(minutes=3),
                   score_improvement=2.0, verification_status=VerificationStatus.PENDING.value),
        ]
        report = generate_report(entries, {"security": 2}, now=T0 + timedelta(hours=1))

        summary = report["summary"]
        assert summary["total_entries"] == 4
        assert summary["tasks_completed"] == 1
        assert summary["evidence_uploaded"] == 1
        assert summary["score_updates"] == 2
        assert summary["compliance_score"] == 50.0

        row = report["pillar_breakdown"]["security"]
        assert row["completed_tasks"] == 1
        assert row["score_improvement"] == pytest.approx(14.0)
        assert report["period"]["start"] == T0.isoformat()

    def test_timeline_newest_first_with_impact(self):
        entries = [
            _entry(AuditEntryType.TASK_COMPLETED, at=T0, task_name="A", completion_percentage=100),
            _entry(AuditEntryType.SCORE_UPDATED, at=T0 + timedelta(minutes=2), score_improvement=12.0),
        ]
        timeline = generate_report(entries, now=T0 + timedelta(hours=1))["timeline"]
        assert timeline[0]["description"] == "Score improved by 12.0 points in security"
        assert timeline[0]["impact"] == "high"
        assert timeline[1]["description"] == "Completed task: A (100% progress)"

    def test_status_change_undoes_completion_in_breakdown(self):
        entries = [
            _entry(AuditEntryType.TASK_COMPLETED, at=T0, task_name="A"),
            _entry(AuditEntryType.TASK_STATUS_CHANGE, at=T0 + timedelta(minutes=1), task_name="A",
                   previous_status="Completed", new_status="In Progress"),
        ]
        report = generate_report(entries, {"security": 1}, now=T0 + timedelta(hours=1))
        assert report["pillar_breakdown"]["security"]["completed_tasks"] == 0

    def test_recommends_evidence_for_completed_work(self):
        entries = [_entry(AuditEntryType.TASK_COMPLETED, at=T0, task_name="A")]
        report = generate_report(entries, {"security": 1}, now=T0)
        assert any("Upload evidence" in r for r in report["recommendations"])

    def test_empty_log(self):
        report = generate_report([], now=T0)
        assert report["summary"]["total_entries"] == 0
        assert report["summary"]["compliance_score"] == 0.0
        assert report["period"]["start"] == T0.isoformat()

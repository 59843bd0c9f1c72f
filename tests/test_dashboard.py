"""
Tests — dashboard section registry and failure isolation.
"""

import pytest

from pp_assessment.core.exceptions import NotFoundError
from pp_assessment.services.dashboard_service import DashboardEngine

PID = "contoso-assessment"
SECTIONS = {"scores", "maturity", "gap_closure", "security", "compliance", "tasks", "audit_report"}


class _Reporter:
    def __init__(self):
        self.reports = []

    def report(self, exc, source, **context):
        self.reports.append((source, str(exc)))


def test_all_sections_registered():
    assert {s["section"] for s in DashboardEngine.list_sections()} == SECTIONS


def test_build_empty_project(service, project):
    dashboard = DashboardEngine.build(service, PID)
    assert dashboard["project"]["id"] == PID
    sections = dashboard["sections"]
    assert set(sections) == SECTIONS
    assert sections["gap_closure"] == {"title": "Gap Closure", "available": False}
    assert sections["scores"]["overall"] == 0.0
    assert sections["maturity"]["level"] == 1
    assert sections["tasks"]["total"] == 0
    assert sections["tasks"]["completion_percentage"] == 0


def test_build_after_demo(service, project):
    service.load_demo_data(PID)
    service.generate_plans(PID)
    task_id = next(iter(service.get_project(PID).tasks))
    service.change_task_status(PID, task_id, "Blocked", blocker_notes="Licensing")

    sections = DashboardEngine.build(service, PID)["sections"]
    assert sections["gap_closure"]["available"] is True
    assert len(sections["scores"]["pillars"]) == 6
    assert sections["security"]["score"] in ("High", "Medium", "Low")
    assert all(set(r) == {"id", "title", "impact"} for r in sections["security"]["recommendations"])
    assert sections["tasks"]["by_status"]["Blocked"] == 1
    assert sections["tasks"]["blocked"][0]["blocker_notes"] == "Licensing"
    assert sections["audit_report"]["summary"]["total_entries"] == 2


def test_selected_sections_only(service, project):
    sections = DashboardEngine.build(service, PID, ["scores", "compliance"])["sections"]
    assert set(sections) == {"scores", "compliance"}


def test_unknown_section_placeholder(service, project):
    sections = DashboardEngine.build(service, PID, ["nope"])["sections"]
    assert sections["nope"] == {"error": "Unknown dashboard section: nope"}


def test_failing_section_does_not_break_others(service, project, monkeypatch):
    def _boom(project, service):
        raise RuntimeError("maturity exploded")

    reporter = _Reporter()
    service.error_reporter = reporter
    monkeypatch.setitem(DashboardEngine._SECTIONS, "maturity", {"fn": _boom, "label": "Maturity Level"})

    sections = DashboardEngine.build(service, PID)["sections"]
    assert sections["maturity"] == {"error": "maturity exploded", "title": "Maturity Level"}
    assert "overall" in sections["scores"]
    assert reporter.reports == [("dashboard.maturity", "maturity exploded")]


def test_unknown_project(service):
    with pytest.raises(NotFoundError):
        DashboardEngine.build(service, "ghost")

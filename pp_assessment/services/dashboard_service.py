"""
Dashboard composition.

The dashboard is a set of independently computed sections. Each section
returns a plain dict; a section that raises is logged, reported and
replaced by an ``{"error": ...}`` placeholder so the rest still render.
"""

import logging

from pp_assessment.services.audit_trail import generate_report
from pp_assessment.services.gap_closure import calculate_gap_closure
from pp_assessment.services.project_service import Project, ProjectService
from pp_assessment.services.recommendations import calculate_security_score, perform_compliance_check
from pp_assessment.services.scoring_engine import assess_maturity
from pp_assessment.services.task_tracker import TaskStatus

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════════════
# SECTION REGISTRY
# ═════════════════════════════════════════════════════════════════════════════

class DashboardEngine:
    """Compute data for individual dashboard sections."""

    _SECTIONS: dict = {}

    @classmethod
    def register(cls, section: str, label: str):
        """Decorator to register a section."""
        def decorator(fn):
            cls._SECTIONS[section] = {"fn": fn, "label": label}
            return fn
        return decorator

    @classmethod
    def compute(cls, section: str, project: Project, service: ProjectService) -> dict:
        """Compute one section; failures become an error placeholder."""
        entry = cls._SECTIONS.get(section)
        if not entry:
            return {"error": f"Unknown dashboard section: {section}"}
        try:
            return entry["fn"](project, service)
        except Exception as e:
            logger.exception("Dashboard section %s failed: %s", section, e,
                             extra={"project_id": project.id, "error_source": f"dashboard.{section}"})
            if service.error_reporter is not None:
                service.error_reporter.report(e, source=f"dashboard.{section}", project_id=project.id)
            return {"error": str(e), "title": entry["label"]}

    @classmethod
    def list_sections(cls) -> list[dict]:
        return [{"section": k, "label": v["label"]} for k, v in cls._SECTIONS.items()]

    @classmethod
    def build(cls, service: ProjectService, project_id: str, sections: list[str] | None = None) -> dict:
        """Build the whole dashboard for a project.

        Raises:
            NotFoundError: If the project does not exist. Section failures
                never propagate.
        """
        project = service.get_project(project_id)
        wanted = sections or list(cls._SECTIONS)
        return {
            "project": project.summary(),
            "sections": {name: cls.compute(name, project, service) for name in wanted},
        }


# ═════════════════════════════════════════════════════════════════════════════
# SECTION IMPLEMENTATIONS
# ═════════════════════════════════════════════════════════════════════════════

# 1 ── Pillar scores ─────────────────────────────────────────────────────
@DashboardEngine.register("scores", "Pillar Scores")
def _scores(project, service):
    rows = project.score_rows()
    return {
        "title": "Pillar Scores",
        "overall": round(project.overall_score(), 2),
        "pillars": [row.to_dict() for row in rows],
    }


# 2 ── Maturity ──────────────────────────────────────────────────────────
@DashboardEngine.register("maturity", "Maturity Level")
def _maturity(project, service):
    return {
        "title": "Maturity Level",
        **assess_maturity(project.overall_score(), project.responses).to_dict(),
    }


# 3 ── Gap closure ───────────────────────────────────────────────────────
@DashboardEngine.register("gap_closure", "Gap Closure")
def _gap_closure(project, service):
    if project.baseline is None:
        return {"title": "Gap Closure", "available": False}
    snapshot = service.snapshot_for(project, service.clock())
    analysis = calculate_gap_closure(project.baseline, snapshot)
    return {"title": "Gap Closure", "available": True, **analysis.to_dict()}


# 4 ── Security posture ──────────────────────────────────────────────────
@DashboardEngine.register("security", "Security Posture")
def _security(project, service):
    result = calculate_security_score(project.responses)
    return {
        "title": "Security Posture",
        "score": result["score"],
        "numeric_score": result["numeric_score"],
        "recommendations": [{"id": r.id, "title": r.title, "impact": r.impact.value}
                            for r in result["recommendations"]],
    }


# 5 ── Compliance ────────────────────────────────────────────────────────
@DashboardEngine.register("compliance", "Compliance Readiness")
def _compliance(project, service):
    return {"title": "Compliance Readiness", **perform_compliance_check(project.responses)}


# 6 ── Task progress ─────────────────────────────────────────────────────
@DashboardEngine.register("tasks", "Task Progress")
def _tasks(project, service):
    by_status = {s.value: 0 for s in TaskStatus}
    hours_total = hours_done = 0.0
    for task in project.tasks.values():
        by_status[task.status.value] += 1
        hours_total += task.estimated_hours
        if task.is_completed:
            hours_done += task.estimated_hours
    total = len(project.tasks)
    done = by_status[TaskStatus.COMPLETED.value]
    return {
        "title": "Task Progress",
        "total": total,
        "by_status": by_status,
        "completion_percentage": round(done / total * 100, 1) if total else 0,
        "estimated_hours": hours_total,
        "completed_hours": hours_done,
        "blocked": [
            {"id": t.id, "name": t.name, "blocker_notes": t.blocker_notes}
            for t in project.tasks.values() if t.status == TaskStatus.BLOCKED
        ],
    }


# 7 ── Audit report ──────────────────────────────────────────────────────
@DashboardEngine.register("audit_report", "Audit Report")
def _audit_report(project, service):
    report = generate_report(project.audit_log.get_entries(), project.task_totals(), now=service.clock())
    return {"title": "Audit Report", **report}

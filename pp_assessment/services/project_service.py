"""
Project service — the assessment aggregate and every operation on it.

Each operation loads the project list from the ``AssessmentStore``,
mutates one project, appends audit entries for score-affecting changes
and saves before returning, so a follow-up read always sees the write.

Score-affecting operations and the audit entry each writes:
    set_response / clear_response / load_demo_data → assessment_changed
    baseline creation                               → assessment_changed
    reset_baseline                                  → score_updated
    task → Completed                                → task_completed
    Completed → any other status                    → task_status_change
    upload_evidence                                 → evidence_uploaded
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable

from pp_assessment.core.exceptions import NotFoundError, ValidationError
from pp_assessment.services.audit_trail import (
    AuditEntryType,
    AuditLog,
    VerificationStatus,
    generate_report,
    make_entry,
    normalize_timestamp,
)
from pp_assessment.services.catalog import (
    DEMO_RESPONSES,
    PILLARS,
    get_pillar,
    get_question,
)
from pp_assessment.services.gap_closure import (
    AssessmentSnapshot,
    BaselineSnapshot,
    GapClosureAnalysis,
    calculate_gap_closure,
    create_assessment_snapshot,
    create_baseline_snapshot,
)
from pp_assessment.services.persistence import AssessmentStore
from pp_assessment.services.planner import (
    AdaptivePlan,
    ImplementationContext,
    create_adaptive_plan,
    fallback_plan,
)
from pp_assessment.services.recommendations import Recommendation, derive_recommendations
from pp_assessment.services.responses import ResponseStore, coerce_response, response_to_dict
from pp_assessment.services.scoring_engine import (
    PillarScore,
    assess_maturity,
    compute_overall_score,
    score_pillars,
)
from pp_assessment.services.task_tracker import (
    BASELINE_ESTIMATES,
    AdjustmentTracker,
    Task,
    TaskStatus,
    TimeEstimationFactors,
    add_comment,
    add_team_member,
    calculate_adaptive_estimate,
    initialize_task,
    parse_status,
    task_type_for,
    update_task_status,
    update_time_estimate,
)

logger = logging.getLogger(__name__)

DEFAULT_USER = "Assessor"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def slugify(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


# ═════════════════════════════════════════════════════════════════════════════
# Aggregate
# ═════════════════════════════════════════════════════════════════════════════

@dataclass
class EvidenceFile:
    name: str
    size: int
    content_type: str
    uploaded_at: datetime

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "size": self.size,
            "content_type": self.content_type,
            "uploaded_at": self.uploaded_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "EvidenceFile":
        return cls(
            name=data["name"],
            size=int(data.get("size", 0)),
            content_type=data.get("content_type", "application/octet-stream"),
            uploaded_at=normalize_timestamp(data["uploaded_at"]),
        )


@dataclass
class Project:
    """One client assessment and everything derived from working it."""
    id: str
    name: str
    created_at: datetime
    last_modified_at: datetime
    client_name: str = ""
    assessor: dict = field(default_factory=dict)
    organization_factors: TimeEstimationFactors = field(default_factory=TimeEstimationFactors)
    responses: ResponseStore = field(default_factory=ResponseStore)
    question_notes: dict[str, str] = field(default_factory=dict)
    risk_owners: dict[str, str] = field(default_factory=dict)
    developer_notes: dict[str, str] = field(default_factory=dict)
    tracker: AdjustmentTracker = field(default_factory=AdjustmentTracker)
    plans: dict[str, AdaptivePlan] = field(default_factory=dict)
    tasks: dict[str, Task] = field(default_factory=dict)
    evidence: dict[str, list[EvidenceFile]] = field(default_factory=dict)
    baseline: BaselineSnapshot | None = None
    audit_log: AuditLog = field(default_factory=AuditLog)

    # ── Derived views ────────────────────────────────────────────────────

    def score_rows(self) -> list[PillarScore]:
        return score_pillars(self.responses, self.tracker.adjustments)

    def pillar_scores(self) -> dict[str, float]:
        """pillar id → displayed score (raw + adjustment, clamped)."""
        return {row.pillar_id: row.score for row in self.score_rows()}

    def overall_score(self) -> float:
        return compute_overall_score(self.pillar_scores())

    def has_evidence(self, recommendation_title: str) -> bool:
        return bool(self.evidence.get(recommendation_title))

    def phase_tasks(self, task: Task) -> list[Task]:
        return [t for t in self.tasks.values()
                if t.recommendation_id == task.recommendation_id and t.phase_number == task.phase_number]

    def task_totals(self) -> dict[str, int]:
        totals: dict[str, int] = {}
        for task in self.tasks.values():
            totals[task.pillar_id] = totals.get(task.pillar_id, 0) + 1
        return totals

    def get_task(self, task_id: str) -> Task:
        task = self.tasks.get(task_id)
        if task is None:
            raise NotFoundError(resource="Task", resource_id=task_id)
        return task

    def summary(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "client_name": self.client_name,
            "overall_score": round(self.overall_score(), 2),
            "answered": len(self.responses),
            "task_count": len(self.tasks),
            "has_baseline": self.baseline is not None,
            "created_at": self.created_at.isoformat(),
            "last_modified_at": self.last_modified_at.isoformat(),
        }

    # ── Serialisation ────────────────────────────────────────────────────

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "client_name": self.client_name,
            "assessor": dict(self.assessor),
            "organization_factors": self.organization_factors.to_dict(),
            "responses": self.responses.to_dict(),
            "question_notes": dict(self.question_notes),
            "risk_owners": dict(self.risk_owners),
            "developer_notes": dict(self.developer_notes),
            "tracker": self.tracker.to_dict(),
            "plans": {rid: p.to_dict() for rid, p in self.plans.items()},
            "tasks": [t.to_dict() for t in self.tasks.values()],
            "evidence": {title: [f.to_dict() for f in files] for title, files in self.evidence.items()},
            "baseline": self.baseline.to_dict() if self.baseline else None,
            "audit_log": self.audit_log.to_list(),
            "created_at": self.created_at.isoformat(),
            "last_modified_at": self.last_modified_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Project":
        tasks = [Task.from_dict(t) for t in data.get("tasks") or []]
        return cls(
            id=data["id"],
            name=data["name"],
            client_name=data.get("client_name", ""),
            assessor=dict(data.get("assessor") or {}),
            organization_factors=TimeEstimationFactors.from_dict(data.get("organization_factors")),
            responses=ResponseStore.from_dict(data.get("responses")),
            question_notes=dict(data.get("question_notes") or {}),
            risk_owners=dict(data.get("risk_owners") or {}),
            developer_notes=dict(data.get("developer_notes") or {}),
            tracker=AdjustmentTracker.from_dict(data.get("tracker")),
            plans={rid: AdaptivePlan.from_dict(p) for rid, p in (data.get("plans") or {}).items()},
            tasks={t.id: t for t in tasks},
            evidence={title: [EvidenceFile.from_dict(f) for f in files]
                      for title, files in (data.get("evidence") or {}).items()},
            baseline=BaselineSnapshot.from_dict(data["baseline"]) if data.get("baseline") else None,
            audit_log=AuditLog.from_list(data.get("audit_log")),
            created_at=normalize_timestamp(data["created_at"]),
            last_modified_at=normalize_timestamp(data["last_modified_at"]),
        )


# ═════════════════════════════════════════════════════════════════════════════
# Service
# ═════════════════════════════════════════════════════════════════════════════

class ProjectService:
    """Operations on stored projects.

    Args:
        store: Persistence port the project list is loaded from and saved to.
        error_reporter: Optional ``ErrorReporter`` notified of planner and
            dashboard failures.
        clock: Time source for audit entries, task history and snapshots.
        environment_id: Stamped into every audit entry's metadata.
    """

    def __init__(self, store: AssessmentStore, error_reporter=None,
                 clock: Callable[[], datetime] = _utcnow, environment_id: str = "production"):
        self.store = store
        self.error_reporter = error_reporter
        self.clock = clock
        self.environment_id = environment_id
        self.session_id = f"session-{int(clock().timestamp() * 1000)}"

    # ── Load / save ──────────────────────────────────────────────────────

    def _load(self) -> dict[str, Project]:
        return {p["id"]: Project.from_dict(p) for p in self.store.load_projects()}

    def _save(self, projects: dict[str, Project]) -> None:
        self.store.save([p.to_dict() for p in projects.values()])

    @staticmethod
    def _get(projects: dict[str, Project], project_id: str) -> Project:
        project = projects.get(project_id)
        if project is None:
            raise NotFoundError(resource="Project", resource_id=project_id)
        return project

    def _commit(self, projects: dict[str, Project], project: Project) -> None:
        project.last_modified_at = self.clock()
        self._save(projects)

    def _audit(self, project: Project, entry_type: AuditEntryType, *, pillar: str, category: str,
               user: str, details: dict):
        entry = make_entry(entry_type, pillar=pillar, category=category, user=user, details=details,
                           session_id=self.session_id, environment_id=self.environment_id,
                           clock=self.clock)
        stored = project.audit_log.add_entry(entry)
        logger.info("Audit %s on %s", entry_type.value, pillar,
                    extra={"project_id": project.id, "pillar_id": pillar, "event_type": entry_type.value})
        return stored

    # ── Projects ─────────────────────────────────────────────────────────

    def list_projects(self) -> list[Project]:
        return list(self._load().values())

    def get_project(self, project_id: str) -> Project:
        return self._get(self._load(), project_id)

    def create_project(self, name: str, client_name: str = "", assessor: dict | None = None,
                       organization_factors: dict | None = None) -> Project:
        """Create an empty project; the id is derived from the name.

        Raises:
            ValidationError: If the name is blank or already used.
        """
        name = (name or "").strip()
        if not name:
            raise ValidationError("Project name is required", details={"name": "required"})
        project_id = slugify(name)
        if not project_id:
            raise ValidationError("Project name must contain letters or digits", details={"name": name})

        projects = self._load()
        if project_id in projects:
            raise ValidationError("A project with this name already exists", details={"name": name})

        now = self.clock()
        project = Project(
            id=project_id,
            name=name,
            client_name=(client_name or "").strip(),
            assessor=dict(assessor or {}),
            organization_factors=TimeEstimationFactors.from_dict(organization_factors),
            created_at=now,
            last_modified_at=now,
        )
        projects[project_id] = project
        self._save(projects)
        logger.info("Project created", extra={"project_id": project_id})
        return project

    def update_project(self, project_id: str, data: dict) -> Project:
        """Update name, client, assessor or organisation factors."""
        projects = self._load()
        project = self._get(projects, project_id)
        if "name" in data:
            name = (data.get("name") or "").strip()
            if not name:
                raise ValidationError("Project name cannot be empty", details={"name": "required"})
            project.name = name
        if "client_name" in data:
            project.client_name = (data.get("client_name") or "").strip()
        if "assessor" in data:
            project.assessor = dict(data.get("assessor") or {})
        if "organization_factors" in data:
            project.organization_factors = TimeEstimationFactors.from_dict(data["organization_factors"])
        self._commit(projects, project)
        return project

    def delete_project(self, project_id: str) -> None:
        projects = self._load()
        self._get(projects, project_id)
        del projects[project_id]
        self._save(projects)
        logger.info("Project deleted", extra={"project_id": project_id})

    # ── Responses ────────────────────────────────────────────────────────

    def set_response(self, project_id: str, question_id: str, value, user: str = DEFAULT_USER) -> dict:
        """Record an answer, audit the pillar score change and make sure a baseline exists."""
        question = get_question(question_id)
        response = coerce_response(question, value)

        projects = self._load()
        project = self._get(projects, project_id)
        before = project.pillar_scores()[question.pillar_id]
        previous = project.responses.set(question_id, response)
        after = project.pillar_scores()[question.pillar_id]

        self._audit(project, AuditEntryType.ASSESSMENT_CHANGED, pillar=question.pillar_id,
                    category=question.category, user=user, details={
                        "question_id": question_id,
                        "previous_value": previous.value if previous is not None else None,
                        "new_value": response.value,
                        "previous_score": before,
                        "new_score": after,
                        "score_improvement": after - before,
                    })
        self._ensure_baseline(project, user)
        self._commit(projects, project)
        return {
            "question_id": question_id,
            "response": response_to_dict(response),
            "pillar_id": question.pillar_id,
            "previous_score": round(before, 2),
            "new_score": round(after, 2),
        }

    def clear_response(self, project_id: str, question_id: str, user: str = DEFAULT_USER) -> dict:
        question = get_question(question_id)
        projects = self._load()
        project = self._get(projects, project_id)
        if question_id not in project.responses:
            raise NotFoundError(resource="Response", resource_id=question_id)

        before = project.pillar_scores()[question.pillar_id]
        previous = project.responses.clear(question_id)
        after = project.pillar_scores()[question.pillar_id]
        self._audit(project, AuditEntryType.ASSESSMENT_CHANGED, pillar=question.pillar_id,
                    category=question.category, user=user, details={
                        "question_id": question_id,
                        "previous_value": previous.value,
                        "previous_score": before,
                        "new_score": after,
                        "score_improvement": after - before,
                    })
        self._commit(projects, project)
        return {"question_id": question_id, "previous_score": round(before, 2), "new_score": round(after, 2)}

    def update_question_metadata(self, project_id: str, question_id: str, *, note: str | None = None,
                                 risk_owner: str | None = None, developer_note: str | None = None) -> dict:
        """Set the free-text note, risk owner or developer note of a question.

        An empty string removes the value; ``None`` leaves it unchanged.
        """
        get_question(question_id)
        projects = self._load()
        project = self._get(projects, project_id)
        for target, value in ((project.question_notes, note), (project.risk_owners, risk_owner),
                              (project.developer_notes, developer_note)):
            if value is None:
                continue
            if value.strip():
                target[question_id] = value.strip()
            else:
                target.pop(question_id, None)
        self._commit(projects, project)
        return {
            "question_id": question_id,
            "note": project.question_notes.get(question_id),
            "risk_owner": project.risk_owners.get(question_id),
            "developer_note": project.developer_notes.get(question_id),
        }

    def load_demo_data(self, project_id: str, user: str = DEFAULT_USER) -> Project:
        """Fill in the demo answer set as a single audited change."""
        projects = self._load()
        project = self._get(projects, project_id)
        before = project.overall_score()
        for question_id, raw in DEMO_RESPONSES.items():
            project.responses.set(question_id, coerce_response(get_question(question_id), raw))
        after = project.overall_score()
        self._audit(project, AuditEntryType.ASSESSMENT_CHANGED, pillar="all", category="Demo Data",
                    user=user, details={
                        "action": "demo_data_loaded",
                        "questions_answered": len(DEMO_RESPONSES),
                        "previous_score": before,
                        "new_score": after,
                        "score_improvement": after - before,
                    })
        self._ensure_baseline(project, user)
        self._commit(projects, project)
        return project

    # ── Baseline ─────────────────────────────────────────────────────────

    def _capture_baseline(self, project: Project) -> BaselineSnapshot:
        return create_baseline_snapshot(
            project.overall_score(),
            project.pillar_scores(),
            derive_recommendations(project.responses),
            timestamp=self.clock(),
        )

    def _ensure_baseline(self, project: Project, user: str) -> BaselineSnapshot:
        if project.baseline is not None:
            return project.baseline
        project.baseline = self._capture_baseline(project)
        self._audit(project, AuditEntryType.ASSESSMENT_CHANGED, pillar="all", category="Baseline",
                    user=user, details={
                        "action": "baseline_created",
                        "new_score": project.baseline.overall_score,
                        "total_recommendations": project.baseline.total_recommendations,
                    })
        return project.baseline

    def ensure_baseline(self, project_id: str, user: str = DEFAULT_USER) -> BaselineSnapshot:
        """Return the baseline, capturing it first if the project has none."""
        projects = self._load()
        project = self._get(projects, project_id)
        if project.baseline is not None:
            return project.baseline
        baseline = self._ensure_baseline(project, user)
        self._commit(projects, project)
        return baseline

    def reset_baseline(self, project_id: str, user: str = DEFAULT_USER) -> BaselineSnapshot:
        """Replace the baseline with the current scores. The only path that changes it."""
        projects = self._load()
        project = self._get(projects, project_id)
        previous = project.baseline
        project.baseline = self._capture_baseline(project)
        new_score = project.baseline.overall_score
        old_score = previous.overall_score if previous else None
        self._audit(project, AuditEntryType.SCORE_UPDATED, pillar="all", category="Baseline",
                    user=user, details={
                        "action": "baseline_reset",
                        "previous_score": old_score,
                        "new_score": new_score,
                        "score_improvement": new_score - old_score if old_score is not None else 0.0,
                        "verification_status": VerificationStatus.PENDING.value,
                    })
        self._commit(projects, project)
        return project.baseline

    # ── Scores & gap closure ─────────────────────────────────────────────

    def pillar_scores(self, project_id: str) -> list[PillarScore]:
        return self.get_project(project_id).score_rows()

    def overall_score(self, project_id: str) -> float:
        return self.get_project(project_id).overall_score()

    def maturity(self, project_id: str):
        project = self.get_project(project_id)
        return assess_maturity(project.overall_score(), project.responses)

    @staticmethod
    def snapshot_for(project: Project, now: datetime) -> AssessmentSnapshot:
        if project.baseline is None:
            raise NotFoundError(resource="Baseline", resource_id=project.id)
        evidence = {title: [f.name for f in files] for title, files in project.evidence.items()}
        return create_assessment_snapshot(project.baseline, project.pillar_scores(),
                                          project.tasks.values(), evidence, timestamp=now)

    def current_snapshot(self, project_id: str) -> AssessmentSnapshot:
        return self.snapshot_for(self.get_project(project_id), self.clock())

    def gap_closure(self, project_id: str) -> GapClosureAnalysis:
        """Gap closure of the current scores against the baseline.

        Raises:
            NotFoundError: If the project has no baseline yet.
        """
        project = self.get_project(project_id)
        snapshot = self.snapshot_for(project, self.clock())
        return calculate_gap_closure(project.baseline, snapshot)

    # ── Recommendations & plans ──────────────────────────────────────────

    def recommendations(self, project_id: str) -> list[Recommendation]:
        return derive_recommendations(self.get_project(project_id).responses)

    def _context(self, project: Project, options: dict) -> ImplementationContext:
        maturity = assess_maturity(project.overall_score())
        return ImplementationContext(
            current_maturity_level=maturity.level,
            pillar_scores=project.pillar_scores(),
            organization_factors=project.organization_factors,
            existing_capabilities=list(options.get("existing_capabilities") or []),
            blockers=list(options.get("blockers") or []),
            available_team_members=int(options.get("available_team_members", 3)),
            budget_constraints=bool(options.get("budget_constraints", False)),
            time_constraints=bool(options.get("time_constraints", False)),
        )

    def _plan_for(self, rec: Recommendation, context: ImplementationContext, project: Project) -> AdaptivePlan:
        result = create_adaptive_plan(rec, context)
        if result.ok:
            return result.plan
        logger.warning("Using static roadmap for %s: %s", rec.id, result.error,
                       extra={"project_id": project.id})
        if self.error_reporter is not None:
            self.error_reporter.report(RuntimeError(result.error), source="planner",
                                       project_id=project.id, recommendation_id=rec.id)
        return fallback_plan(rec)

    def _materialize_tasks(self, project: Project, plan: AdaptivePlan, user: str) -> list[Task]:
        created = []
        for phase in plan.adapted_phases:
            for item in phase.tasks:
                if item.id in project.tasks:
                    continue
                baseline_hours = BASELINE_ESTIMATES[task_type_for(item.name)]
                task = Task(
                    id=item.id,
                    name=item.name,
                    description=item.description,
                    recommendation_id=plan.recommendation_id,
                    recommendation_title=plan.recommendation_title,
                    category=plan.category,
                    pillar_id=plan.pillar_id,
                    impact=plan.impact,
                    phase_number=phase.phase,
                    phase_name=phase.name,
                    baseline_hours=baseline_hours,
                    estimated_hours=calculate_adaptive_estimate(baseline_hours, project.organization_factors),
                    planned_hours=item.estimated_hours,
                    assigned_to=[item.assigned_to] if item.assigned_to else [],
                    acceptance_criteria=list(item.acceptance_criteria),
                )
                project.tasks[task.id] = initialize_task(task, user=user, clock=self.clock)
                created.append(task)
        return created

    def generate_plans(self, project_id: str, options: dict | None = None,
                       user: str = DEFAULT_USER) -> list[AdaptivePlan]:
        """Plan every current recommendation that has no plan yet and create its tasks.

        Tasks are created once, here; regenerating never duplicates or
        resets existing tasks.
        """
        projects = self._load()
        project = self._get(projects, project_id)
        context = self._context(project, options or {})

        new_plans = []
        for rec in derive_recommendations(project.responses):
            if rec.id in project.plans:
                continue
            plan = self._plan_for(rec, context, project)
            project.plans[rec.id] = plan
            self._materialize_tasks(project, plan, user)
            new_plans.append(plan)

        if new_plans:
            logger.info("Generated %d plans", len(new_plans), extra={"project_id": project.id})
            self._commit(projects, project)
        return sorted(project.plans.values(), key=lambda p: p.priority_score, reverse=True)

    # ── Tasks ────────────────────────────────────────────────────────────

    def list_tasks(self, project_id: str, pillar_id: str | None = None,
                   status: str | None = None) -> list[Task]:
        tasks = list(self.get_project(project_id).tasks.values())
        if pillar_id:
            tasks = [t for t in tasks if t.pillar_id == pillar_id]
        if status:
            wanted = parse_status(status)
            tasks = [t for t in tasks if t.status == wanted]
        return tasks

    def change_task_status(self, project_id: str, task_id: str, new_status: str,
                           user: str = DEFAULT_USER, blocker_notes: str | None = None) -> dict:
        """Move a task to a new status, applying or reverting its score adjustment.

        Completing a task adds its phase-progress delta to the pillar;
        leaving Completed removes exactly that delta again.
        """
        status = parse_status(new_status)
        projects = self._load()
        project = self._get(projects, project_id)
        task = project.get_task(task_id)
        was_completed = task.is_completed
        before = project.pillar_scores()[task.pillar_id]

        update_task_status(task, status, user, blocker_notes=blocker_notes, clock=self.clock)
        phase_tasks = project.phase_tasks(task)
        completed_in_phase = sum(1 for t in phase_tasks if t.is_completed)
        has_evidence = project.has_evidence(task.recommendation_title)
        result = {"task": task.to_dict(), "score_impact": None}

        if status == TaskStatus.COMPLETED and not was_completed:
            impact = project.tracker.apply_task_completion(
                task.pillar_id, task, len(phase_tasks), has_evidence, before,
                completed_count=completed_in_phase,
            )
            after = project.pillar_scores()[task.pillar_id]
            self._audit(project, AuditEntryType.TASK_COMPLETED, pillar=task.pillar_id,
                        category=task.category, user=user, details={
                            "task_id": task.id,
                            "task_name": task.name,
                            "recommendation_title": task.recommendation_title,
                            "previous_score": before,
                            "new_score": after,
                            "score_improvement": after - before,
                            "completion_percentage": impact.completion_percentage,
                            "phase_completed": completed_in_phase == len(phase_tasks),
                        })
            result["score_impact"] = impact.to_dict()
        elif was_completed and status != TaskStatus.COMPLETED:
            removed = project.tracker.revert_task_completion(
                task.pillar_id, task, len(phase_tasks), has_evidence, before,
                completed_count=completed_in_phase,
            )
            after = project.pillar_scores()[task.pillar_id]
            self._audit(project, AuditEntryType.TASK_STATUS_CHANGE, pillar=task.pillar_id,
                        category=task.category, user=user, details={
                            "task_id": task.id,
                            "task_name": task.name,
                            "recommendation_title": task.recommendation_title,
                            "previous_status": TaskStatus.COMPLETED.value,
                            "new_status": status.value,
                            "previous_score": before,
                            "new_score": after,
                            "score_reduction": removed,
                        })
            result["score_reduction"] = round(removed, 2)

        self._commit(projects, project)
        result["task"] = task.to_dict()
        result["pillar_score"] = round(project.pillar_scores()[task.pillar_id], 2)
        return result

    def assign_task(self, project_id: str, task_id: str, member: str, user: str = DEFAULT_USER) -> Task:
        projects = self._load()
        project = self._get(projects, project_id)
        task = project.get_task(task_id)
        add_team_member(task, member, user, clock=self.clock)
        self._commit(projects, project)
        return task

    def update_task_estimate(self, project_id: str, task_id: str, hours, user: str = DEFAULT_USER,
                             reason: str | None = None) -> Task:
        projects = self._load()
        project = self._get(projects, project_id)
        task = project.get_task(task_id)
        update_time_estimate(task, hours, user, reason, clock=self.clock)
        self._commit(projects, project)
        return task

    def add_task_comment(self, project_id: str, task_id: str, comment: str, user: str = DEFAULT_USER) -> Task:
        projects = self._load()
        project = self._get(projects, project_id)
        task = project.get_task(task_id)
        add_comment(task, comment, user, clock=self.clock)
        self._commit(projects, project)
        return task

    # ── Evidence ─────────────────────────────────────────────────────────

    def _pillar_for_title(self, project: Project, title: str) -> tuple[str, str]:
        for plan in project.plans.values():
            if plan.recommendation_title == title:
                return plan.pillar_id, plan.category
        for rec in derive_recommendations(project.responses):
            if rec.title == title:
                return rec.pillar_id, rec.category
        raise NotFoundError(resource="Recommendation", resource_id=title)

    def upload_evidence(self, project_id: str, recommendation_title: str, files: list[dict],
                        user: str = DEFAULT_USER) -> list[EvidenceFile]:
        """Attach evidence file metadata to a recommendation.

        Raises:
            ValidationError: If no files are given, or a file has no name or a bad size.
            NotFoundError: If no recommendation carries that title.
        """
        if not files:
            raise ValidationError("At least one evidence file is required", details={"files": "required"})
        invalid = {}
        sizes = []
        for i, f in enumerate(files):
            name = f.get("name") if isinstance(f, dict) else None
            if not isinstance(name, str) or not name.strip():
                invalid[str(i)] = "name is required"
                continue
            raw_size = f.get("size") or 0
            try:
                size = None if isinstance(raw_size, bool) else int(raw_size)
            except (TypeError, ValueError, OverflowError):
                size = None
            if size is None or size < 0:
                invalid[str(i)] = "size must be a non-negative number of bytes"
                continue
            sizes.append(size)
        if invalid:
            raise ValidationError("Invalid evidence file", details={"files": invalid})

        projects = self._load()
        project = self._get(projects, project_id)
        pillar_id, category = self._pillar_for_title(project, recommendation_title)

        now = self.clock()
        uploaded = [
            EvidenceFile(
                name=f["name"].strip(),
                size=size,
                content_type=f.get("content_type") or "application/octet-stream",
                uploaded_at=now,
            )
            for f, size in zip(files, sizes)
        ]
        project.evidence.setdefault(recommendation_title, []).extend(uploaded)
        self._audit(project, AuditEntryType.EVIDENCE_UPLOADED, pillar=pillar_id, category=category,
                    user=user, details={
                        "recommendation_title": recommendation_title,
                        "evidence_files": [f.name for f in uploaded],
                        "verification_status": VerificationStatus.PENDING.value,
                    })
        self._commit(projects, project)
        return uploaded

    # ── Audit ────────────────────────────────────────────────────────────

    def audit_entries(self, project_id: str, entry_type: str | None = None, pillar: str | None = None,
                      descending: bool = True):
        project = self.get_project(project_id)
        entries = project.audit_log.filter(entry_type, pillar)
        return sorted(entries, key=lambda e: e.timestamp, reverse=descending)

    def audit_report(self, project_id: str) -> dict:
        project = self.get_project(project_id)
        return generate_report(project.audit_log.get_entries(), project.task_totals(), now=self.clock())

    # ── Import / export ──────────────────────────────────────────────────

    def export_projects(self, project_ids: list[str] | None = None) -> list[Project]:
        projects = self._load()
        if project_ids is None:
            return list(projects.values())
        return [self._get(projects, pid) for pid in project_ids]

    def import_projects(self, imported: list[Project]) -> list[str]:
        """Upsert imported projects by id; returns the ids written."""
        projects = self._load()
        for project in imported:
            projects[project.id] = project
        self._save(projects)
        logger.info("Imported %d projects", len(imported))
        return [p.id for p in imported]


def pillar_names() -> dict[str, str]:
    return {p.id: p.name for p in PILLARS}


def pillar_name(pillar_id: str) -> str:
    if pillar_id == "all":
        return "All pillars"
    return get_pillar(pillar_id).name

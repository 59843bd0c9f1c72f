"""
Task/Adjustment Tracker — remediation tasks, their history, and the score
deltas they contribute per pillar.

Score impact of completing tasks in a phase:

    improvement = impact_multiplier * 100 * (completed / total)
                  + 2 points when evidence exists for the recommendation
    projected   = min(100, current + improvement)
    delta       = projected - current

``AdjustmentTracker`` keeps a running per-pillar accumulator plus the delta
each task contributed, so un-completing a task removes exactly what it
added.
"""

from __future__ import annotations

import logging
import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable

from pp_assessment.core.exceptions import ValidationError
from pp_assessment.services.audit_trail import normalize_timestamp
from pp_assessment.services.catalog import Impact

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


# ═════════════════════════════════════════════════════════════════════════════
# Enums
# ═════════════════════════════════════════════════════════════════════════════

class TaskStatus(str, Enum):
    NOT_STARTED = "Not Started"
    PLANNING = "Planning"
    IN_PROGRESS = "In Progress"
    BLOCKED = "Blocked"
    COMPLETED = "Completed"


class HistoryAction(str, Enum):
    STATUS_CHANGE = "status_change"
    ASSIGNMENT = "assignment"
    TIME_UPDATE = "time_update"
    BLOCKED = "blocked"
    UNBLOCKED = "unblocked"
    COMMENT = "comment"


def parse_status(value: str | TaskStatus) -> TaskStatus:
    try:
        return TaskStatus(value)
    except ValueError:
        raise ValidationError(
            f"Unknown task status: {value!r}",
            details={"allowed": [s.value for s in TaskStatus]},
        ) from None


# ═════════════════════════════════════════════════════════════════════════════
# Time estimation
# ═════════════════════════════════════════════════════════════════════════════

BASELINE_ESTIMATES: dict[str, int] = {
    "analysis": 16,
    "planning": 8,
    "configuration": 24,
    "testing": 16,
    "deployment": 12,
    "validation": 8,
    "documentation": 12,
    "training": 20,
    "monitoring_setup": 8,
    "compliance_review": 16,
    "security_review": 12,
    "architecture_design": 24,
    "implementation": 32,
    "migration": 40,
    "integration": 24,
    "automation": 16,
}

# Checked in order; first keyword hit wins
_TASK_TYPE_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("analysis", ("analysis", "assess")),
    ("planning", ("planning", "plan")),
    ("configuration", ("configuration", "configure")),
    ("testing", ("testing", "test")),
    ("deployment", ("deployment", "deploy")),
    ("validation", ("validation", "validate")),
    ("documentation", ("documentation", "document")),
    ("training", ("training", "train")),
    ("monitoring_setup", ("monitoring", "monitor")),
    ("compliance_review", ("compliance",)),
    ("security_review", ("security",)),
    ("architecture_design", ("architecture", "design")),
    ("implementation", ("implementation", "implement")),
    ("migration", ("migration", "migrate")),
    ("integration", ("integration", "integrate")),
    ("automation", ("automation", "automate")),
)

FACTOR_MULTIPLIERS: dict[str, dict[str, float]] = {
    "organization_size": {"small": 0.7, "medium": 1.0, "large": 1.3, "enterprise": 1.6},
    "team_experience": {"beginner": 1.5, "intermediate": 1.2, "advanced": 0.9, "expert": 0.7},
    "existing_infrastructure": {"none": 1.4, "basic": 1.2, "moderate": 1.0, "mature": 0.8},
    "compliance_requirements": {"low": 0.9, "medium": 1.0, "high": 1.3, "critical": 1.6},
    "change_management_complexity": {"simple": 0.8, "moderate": 1.0, "complex": 1.3,
                                     "very_complex": 1.6},
}


def task_type_for(task_name: str) -> str:
    """Classify a task by keywords in its name; defaults to ``implementation``."""
    name = task_name.lower()
    for task_type, keywords in _TASK_TYPE_KEYWORDS:
        if any(k in name for k in keywords):
            return task_type
    return "implementation"


@dataclass
class TimeEstimationFactors:
    """Organisation profile used to scale baseline task estimates."""
    organization_size: str = "medium"
    team_experience: str = "intermediate"
    existing_infrastructure: str = "moderate"
    compliance_requirements: str = "medium"
    change_management_complexity: str = "moderate"

    def __post_init__(self):
        errors = {}
        for name, allowed in FACTOR_MULTIPLIERS.items():
            if getattr(self, name) not in allowed:
                errors[name] = f"must be one of {sorted(allowed)}"
        if errors:
            raise ValidationError("Invalid organisation factors", details=errors)

    @property
    def multiplier(self) -> float:
        result = 1.0
        for name, table in FACTOR_MULTIPLIERS.items():
            result *= table[getattr(self, name)]
        return result

    def to_dict(self) -> dict:
        return {name: getattr(self, name) for name in FACTOR_MULTIPLIERS}

    @classmethod
    def from_dict(cls, data: dict | None) -> "TimeEstimationFactors":
        data = data or {}
        return cls(**{k: data[k] for k in FACTOR_MULTIPLIERS if k in data})


def calculate_adaptive_estimate(baseline_hours: float, factors: TimeEstimationFactors) -> int:
    """Scale baseline hours by the organisation factors, rounded half-up."""
    return _round_half_up(baseline_hours * factors.multiplier)


# ═════════════════════════════════════════════════════════════════════════════
# Task & history
# ═════════════════════════════════════════════════════════════════════════════

@dataclass
class TaskHistoryEntry:
    id: str
    task_id: str
    timestamp: datetime
    user: str
    action: HistoryAction
    new_value: str
    previous_value: str | None = None
    comment: str | None = None

    def describe(self, now: datetime | None = None) -> str:
        ago = _time_ago(self.timestamp, now or _utcnow())
        if self.action == HistoryAction.STATUS_CHANGE:
            return f'{self.user} changed status from "{self.previous_value}" to "{self.new_value}" {ago}'
        if self.action == HistoryAction.ASSIGNMENT:
            return f"{self.user} assigned to {self.new_value} {ago}"
        if self.action == HistoryAction.TIME_UPDATE:
            return f"{self.user} updated estimate from {self.previous_value}h to {self.new_value}h {ago}"
        if self.action == HistoryAction.BLOCKED:
            return f'{self.user} marked as blocked: "{self.comment}" {ago}'
        if self.action == HistoryAction.UNBLOCKED:
            return f"{self.user} removed blocker {ago}"
        return f'{self.user} commented: "{self.comment}" {ago}'

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "task_id": self.task_id,
            "timestamp": self.timestamp.isoformat(),
            "user": self.user,
            "action": self.action.value,
            "previous_value": self.previous_value,
            "new_value": self.new_value,
            "comment": self.comment,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TaskHistoryEntry":
        return cls(
            id=data["id"],
            task_id=data["task_id"],
            timestamp=normalize_timestamp(data["timestamp"]),
            user=data.get("user", "System"),
            action=HistoryAction(data["action"]),
            new_value=data.get("new_value", ""),
            previous_value=data.get("previous_value"),
            comment=data.get("comment"),
        )


def _time_ago(ts: datetime, now: datetime) -> str:
    seconds = int((now - ts).total_seconds())
    if seconds < 60:
        return "just now"
    if seconds < 3600:
        return f"{seconds // 60}m ago"
    if seconds < 86400:
        return f"{seconds // 3600}h ago"
    if seconds < 604800:
        return f"{seconds // 86400}d ago"
    return ts.strftime("%Y-%m-%d")


@dataclass
class Task:
    """A remediation task materialised from a recommendation's plan."""
    id: str
    name: str
    description: str
    recommendation_id: str
    recommendation_title: str
    category: str
    pillar_id: str
    impact: Impact
    phase_number: int
    phase_name: str
    baseline_hours: int
    estimated_hours: int
    planned_hours: int = 0
    status: TaskStatus = TaskStatus.NOT_STARTED
    assigned_to: list[str] = field(default_factory=list)
    acceptance_criteria: list[str] = field(default_factory=list)
    blocker_notes: str | None = None
    history: list[TaskHistoryEntry] = field(default_factory=list)
    last_updated: datetime | None = None
    last_updated_by: str | None = None

    @property
    def is_completed(self) -> bool:
        return self.status == TaskStatus.COMPLETED

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "recommendation_id": self.recommendation_id,
            "recommendation_title": self.recommendation_title,
            "category": self.category,
            "pillar_id": self.pillar_id,
            "impact": self.impact.value,
            "phase_number": self.phase_number,
            "phase_name": self.phase_name,
            "baseline_hours": self.baseline_hours,
            "estimated_hours": self.estimated_hours,
            "planned_hours": self.planned_hours,
            "status": self.status.value,
            "assigned_to": list(self.assigned_to),
            "acceptance_criteria": list(self.acceptance_criteria),
            "blocker_notes": self.blocker_notes,
            "history": [h.to_dict() for h in self.history],
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
            "last_updated_by": self.last_updated_by,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Task":
        return cls(
            id=data["id"],
            name=data["name"],
            description=data.get("description", ""),
            recommendation_id=data["recommendation_id"],
            recommendation_title=data["recommendation_title"],
            category=data.get("category", ""),
            pillar_id=data["pillar_id"],
            impact=Impact(data.get("impact", Impact.LOW.value)),
            phase_number=data.get("phase_number", 1),
            phase_name=data.get("phase_name", ""),
            baseline_hours=data.get("baseline_hours", 0),
            estimated_hours=data.get("estimated_hours", 0),
            planned_hours=data.get("planned_hours", 0),
            status=parse_status(data.get("status", TaskStatus.NOT_STARTED.value)),
            assigned_to=list(data.get("assigned_to") or []),
            acceptance_criteria=list(data.get("acceptance_criteria") or []),
            blocker_notes=data.get("blocker_notes"),
            history=[TaskHistoryEntry.from_dict(h) for h in data.get("history") or []],
            last_updated=normalize_timestamp(data["last_updated"]) if data.get("last_updated") else None,
            last_updated_by=data.get("last_updated_by"),
        )


def _history(task: Task, user: str, action: HistoryAction, previous: str | None, new: str,
             comment: str | None, now: datetime) -> TaskHistoryEntry:
    entry = TaskHistoryEntry(
        id=f"{task.id}-{uuid.uuid4().hex[:12]}",
        task_id=task.id,
        timestamp=now,
        user=user,
        action=action,
        previous_value=previous,
        new_value=new,
        comment=comment,
    )
    task.history.append(entry)
    task.last_updated = now
    task.last_updated_by = user
    return entry


def initialize_task(task: Task, user: str = "System", clock: Clock = _utcnow) -> Task:
    """Record the initial "Not Started" history entry on a fresh task."""
    _history(task, user, HistoryAction.STATUS_CHANGE, None, task.status.value,
             "Task initialized", clock())
    return task


def update_task_status(task: Task, new_status: str | TaskStatus, user: str,
                       blocker_notes: str | None = None, clock: Clock = _utcnow) -> list[TaskHistoryEntry]:
    """Move a task to ``new_status`` and record history.

    Blocking with notes adds a ``blocked`` entry; leaving Blocked adds an
    ``unblocked`` entry and clears the notes.

    Returns:
        The history entries appended by this call.
    """
    status = parse_status(new_status)
    now = clock()
    previous = task.status
    added = [_history(task, user, HistoryAction.STATUS_CHANGE, previous.value, status.value, None, now)]
    task.status = status

    if status == TaskStatus.BLOCKED and blocker_notes:
        task.blocker_notes = blocker_notes
        added.append(_history(task, user, HistoryAction.BLOCKED, None, status.value, blocker_notes, now))
    elif previous == TaskStatus.BLOCKED and status != TaskStatus.BLOCKED:
        task.blocker_notes = None
        added.append(_history(task, user, HistoryAction.UNBLOCKED, previous.value, status.value, None, now))
    return added


def add_team_member(task: Task, member_name: str, user: str, clock: Clock = _utcnow) -> TaskHistoryEntry:
    member_name = (member_name or "").strip()
    if not member_name:
        raise ValidationError("Team member name is required")
    previous = ", ".join(task.assigned_to)
    task.assigned_to.append(member_name)
    return _history(task, user, HistoryAction.ASSIGNMENT, previous, ", ".join(task.assigned_to),
                    None, clock())


def update_time_estimate(task: Task, new_hours: float, user: str, reason: str | None = None,
                         clock: Clock = _utcnow) -> TaskHistoryEntry:
    if (isinstance(new_hours, bool) or not isinstance(new_hours, (int, float))
            or not math.isfinite(new_hours) or new_hours < 0):
        raise ValidationError("Estimated hours must be a finite, non-negative number",
                              details={"estimated_hours": repr(new_hours)})
    previous = task.estimated_hours
    task.estimated_hours = new_hours
    return _history(task, user, HistoryAction.TIME_UPDATE, str(previous), str(new_hours), reason, clock())


def add_comment(task: Task, comment: str, user: str, clock: Clock = _utcnow) -> TaskHistoryEntry:
    if not (comment or "").strip():
        raise ValidationError("Comment text is required")
    return _history(task, user, HistoryAction.COMMENT, None, "", comment.strip(), clock())


def task_timeline(task: Task, now: datetime | None = None) -> list[dict]:
    """History events newest first, each with a readable description."""
    now = now or _utcnow()
    events = [
        {
            "date": h.timestamp.isoformat(),
            "type": h.action.value,
            "description": h.describe(now),
            "user": h.user,
        }
        for h in sorted(task.history, key=lambda h: h.timestamp, reverse=True)
    ]
    return events


# ═════════════════════════════════════════════════════════════════════════════
# Score impact & adjustments
# ═════════════════════════════════════════════════════════════════════════════

IMPACT_MULTIPLIERS: dict[Impact, float] = {
    Impact.HIGH: 0.15,
    Impact.MEDIUM: 0.10,
    Impact.LOW: 0.05,
}
EVIDENCE_BONUS = 0.02


@dataclass
class ScoreImpact:
    pillar_id: str
    category: str
    current_score: float
    projected_score: float
    completed_tasks: int
    total_tasks: int
    evidence_uploaded: bool

    @property
    def delta(self) -> float:
        return self.projected_score - self.current_score

    @property
    def completion_percentage(self) -> float:
        return self.completed_tasks / self.total_tasks * 100 if self.total_tasks else 0.0

    def to_dict(self) -> dict:
        return {
            "pillar_id": self.pillar_id,
            "category": self.category,
            "current_score": round(self.current_score, 2),
            "projected_score": round(self.projected_score, 2),
            "delta": round(self.delta, 2),
            "completed_tasks": self.completed_tasks,
            "total_tasks": self.total_tasks,
            "completion_percentage": round(self.completion_percentage, 1),
            "evidence_uploaded": self.evidence_uploaded,
        }


def calculate_score_impact(impact: Impact, completed_count: int, total_tasks: int,
                           has_evidence: bool, current_score: float, pillar_id: str = "",
                           category: str = "") -> ScoreImpact:
    """Project the pillar score after ``completed_count`` of ``total_tasks`` are done."""
    if total_tasks <= 0:
        raise ValidationError("A phase must contain at least one task",
                              details={"total_tasks": total_tasks})
    completion = completed_count / total_tasks
    improvement = IMPACT_MULTIPLIERS[Impact(impact)] * 100 * completion
    if has_evidence:
        improvement += EVIDENCE_BONUS * 100
    projected = min(100.0, current_score + improvement)
    return ScoreImpact(
        pillar_id=pillar_id,
        category=category,
        current_score=current_score,
        projected_score=projected,
        completed_tasks=completed_count,
        total_tasks=total_tasks,
        evidence_uploaded=has_evidence,
    )


@dataclass
class AdjustmentTracker:
    """Per-pillar accumulator of task-driven score deltas.

    ``contributions`` records the delta each completed task added, keyed by
    task id, so reversal is exact. The accumulator itself is never clamped
    to 100; clamping happens when the score is combined for display.
    """

    adjustments: dict[str, float] = field(default_factory=dict)
    contributions: dict[str, dict] = field(default_factory=dict)

    def adjustment_for(self, pillar_id: str) -> float:
        return self.adjustments.get(pillar_id, 0.0)

    def is_counted(self, task_id: str) -> bool:
        return task_id in self.contributions

    def apply_task_completion(self, pillar_id: str, task: Task, phase_task_count: int,
                              has_evidence: bool, current_score: float, *,
                              completed_count: int) -> ScoreImpact:
        """Add the score delta for completing ``task``.

        Args:
            pillar_id: Pillar whose accumulator moves.
            task: The task being completed.
            phase_task_count: Number of tasks in the task's phase.
            has_evidence: Whether evidence exists for the task's recommendation.
            current_score: Displayed pillar score before completion.
            completed_count: Completed tasks in the phase, this one included.

        Raises:
            ValidationError: If the task's completion is already counted.
        """
        if self.is_counted(task.id):
            raise ValidationError("Task completion is already counted",
                                  details={"task_id": task.id})
        impact = calculate_score_impact(task.impact, completed_count, phase_task_count,
                                        has_evidence, current_score, pillar_id, task.category)
        delta = impact.delta
        self.adjustments[pillar_id] = self.adjustment_for(pillar_id) + delta
        self.contributions[task.id] = {"pillar_id": pillar_id, "delta": delta}
        logger.debug("Task %s adds %.2f to %s (accumulator=%.2f)",
                     task.id, delta, pillar_id, self.adjustments[pillar_id])
        return impact

    def revert_task_completion(self, pillar_id: str, task: Task, phase_task_count: int,
                               has_evidence: bool, current_score: float, *,
                               completed_count: int) -> float:
        """Remove what ``task`` contributed; returns the amount removed.

        ``completed_count`` is the number of phase tasks still completed
        after this one is reverted. When no recorded contribution exists
        (state from before contributions were tracked) the reduction is
        recomputed against the unadjusted score. The accumulator is floored
        at 0.
        """
        recorded = self.contributions.pop(task.id, None)
        if recorded is not None:
            pillar_id = recorded["pillar_id"]
            reduction = recorded["delta"]
        else:
            base = current_score - self.adjustment_for(pillar_id)
            before = calculate_score_impact(task.impact, completed_count + 1, phase_task_count,
                                            has_evidence, base)
            after = calculate_score_impact(task.impact, completed_count, phase_task_count,
                                           has_evidence, base)
            reduction = before.projected_score - after.projected_score

        previous = self.adjustment_for(pillar_id)
        self.adjustments[pillar_id] = max(0.0, previous - reduction)
        return previous - self.adjustments[pillar_id]

    def to_dict(self) -> dict:
        return {
            "adjustments": dict(self.adjustments),
            "contributions": {k: dict(v) for k, v in self.contributions.items()},
        }

    @classmethod
    def from_dict(cls, data: dict | None) -> "AdjustmentTracker":
        data = data or {}
        return cls(
            adjustments={k: float(v) for k, v in (data.get("adjustments") or {}).items()},
            contributions={k: dict(v) for k, v in (data.get("contributions") or {}).items()},
        )

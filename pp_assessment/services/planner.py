"""
Adaptive Implementation Planner — tailors a recommendation's roadmap to
the organisation: priority, risk, phase durations, task hours, extra
acceptance criteria, quick wins and the suggested approach.

Planning failures never raise out of ``create_adaptive_plan``; they come
back as ``PlanResult(error=...)`` and the caller decides whether to use
``fallback_plan``.

Usage:
    from pp_assessment.services.planner import create_adaptive_plan, fallback_plan
    result = create_adaptive_plan(rec, context)
    plan = result.plan if result.ok else fallback_plan(rec)
"""

from __future__ import annotations

import copy
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone

from pp_assessment.services.audit_trail import normalize_timestamp
from pp_assessment.services.catalog import Impact
from pp_assessment.services.recommendations import (
    ImplementationPhase,
    ImplementationTask,
    Recommendation,
)
from pp_assessment.services.task_tracker import TimeEstimationFactors

logger = logging.getLogger(__name__)

_DURATION_RE = re.compile(r"(\d+)\s*(week|day|month)", re.IGNORECASE)
_COMPLEX_KEYWORDS = ("integration", "migration", "compliance", "multi-region")

RISK_CRITICAL = "Critical"
RISK_HIGH = "High"
RISK_MEDIUM = "Medium"
RISK_LOW = "Low"


# ═════════════════════════════════════════════════════════════════════════════
# Data Classes
# ═════════════════════════════════════════════════════════════════════════════

@dataclass
class ImplementationContext:
    """Organisation state the plan adapts to."""
    current_maturity_level: int
    pillar_scores: dict[str, float] = field(default_factory=dict)
    organization_factors: TimeEstimationFactors = field(default_factory=TimeEstimationFactors)
    existing_capabilities: list[str] = field(default_factory=list)
    blockers: list[str] = field(default_factory=list)
    available_team_members: int = 3
    budget_constraints: bool = False
    time_constraints: bool = False

    def to_dict(self) -> dict:
        return {
            "current_maturity_level": self.current_maturity_level,
            "pillar_scores": dict(self.pillar_scores),
            "organization_factors": self.organization_factors.to_dict(),
            "existing_capabilities": list(self.existing_capabilities),
            "blockers": list(self.blockers),
            "resources": {
                "available_team_members": self.available_team_members,
                "budget_constraints": self.budget_constraints,
                "time_constraints": self.time_constraints,
            },
        }


@dataclass
class AdaptivePlan:
    recommendation_id: str
    recommendation_title: str
    category: str
    pillar_id: str
    impact: Impact
    adapted_phases: list[ImplementationPhase]
    priority_score: int
    risk_level: str
    dependencies: list[str] = field(default_factory=list)
    quick_wins: list[ImplementationTask] = field(default_factory=list)
    estimated_total_hours: int = 0
    suggested_approach: str = "Balanced"
    is_fallback: bool = False
    generated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def task_count(self) -> int:
        return sum(len(p.tasks) for p in self.adapted_phases)

    def to_dict(self) -> dict:
        return {
            "recommendation_id": self.recommendation_id,
            "recommendation_title": self.recommendation_title,
            "category": self.category,
            "pillar_id": self.pillar_id,
            "impact": self.impact.value,
            "adapted_phases": [p.to_dict() for p in self.adapted_phases],
            "priority_score": self.priority_score,
            "risk_level": self.risk_level,
            "dependencies": list(self.dependencies),
            "quick_wins": [t.to_dict() for t in self.quick_wins],
            "estimated_total_hours": self.estimated_total_hours,
            "suggested_approach": self.suggested_approach,
            "is_fallback": self.is_fallback,
            "generated_at": self.generated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AdaptivePlan":
        return cls(
            recommendation_id=data["recommendation_id"],
            recommendation_title=data["recommendation_title"],
            category=data.get("category", ""),
            pillar_id=data["pillar_id"],
            impact=Impact(data.get("impact", Impact.MEDIUM.value)),
            adapted_phases=[ImplementationPhase.from_dict(p) for p in data.get("adapted_phases") or []],
            priority_score=data.get("priority_score", 0),
            risk_level=data.get("risk_level", RISK_MEDIUM),
            dependencies=list(data.get("dependencies") or []),
            quick_wins=[ImplementationTask.from_dict(t) for t in data.get("quick_wins") or []],
            estimated_total_hours=data.get("estimated_total_hours", 0),
            suggested_approach=data.get("suggested_approach", "Balanced"),
            is_fallback=data.get("is_fallback", False),
            generated_at=normalize_timestamp(data["generated_at"]) if data.get("generated_at")
            else datetime.now(timezone.utc),
        )


@dataclass
class PlanResult:
    """Either a plan or the reason planning failed."""
    plan: AdaptivePlan | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.plan is not None and self.error is None


# ═════════════════════════════════════════════════════════════════════════════
# Priority & risk
# ═════════════════════════════════════════════════════════════════════════════

def calculate_implementation_priority(rec: Recommendation, context: ImplementationContext) -> int:
    """Weighted priority score.

    40 % impact, 30 % current pillar gap, 20 % effort, 10 % critical
    prerequisites. Security work in low-maturity organisations (level 1-2)
    is boosted by 1.5x.
    """
    impact_weight = {Impact.HIGH: 40, Impact.MEDIUM: 25}.get(rec.impact, 10)
    pillar_gap = 100 - context.pillar_scores.get(rec.pillar_id, 50)
    gap_weight = pillar_gap / 100 * 30
    effort_weight = {"Low": 20, "Medium": 10}.get(rec.effort, 5)
    critical_deps = any("Security" in p or "Compliance" in p for p in rec.prerequisites)
    dependency_weight = 10 if critical_deps else 5

    priority = impact_weight + gap_weight + effort_weight + dependency_weight
    if context.current_maturity_level <= 2 and rec.pillar_id == "security":
        priority *= 1.5
    return round(priority)


def determine_risk_level(rec: Recommendation, context: ImplementationContext) -> str:
    low_maturity = context.current_maturity_level <= 2
    if rec.impact == Impact.HIGH and low_maturity:
        return RISK_CRITICAL
    security_score = context.pillar_scores.get("security")
    if rec.pillar_id == "security" and security_score is not None and security_score < 50:
        return RISK_CRITICAL
    if rec.impact == Impact.HIGH:
        return RISK_HIGH
    if rec.impact == Impact.MEDIUM:
        return RISK_HIGH if low_maturity else RISK_MEDIUM
    return RISK_LOW


# ── Phase adaptation ─────────────────────────────────────────────────────


def adjust_phase_duration(duration: str, factors: TimeEstimationFactors, maturity_level: int) -> str:
    """Scale a "<n> week|day|month" duration; unparseable text is returned as-is."""
    match = _DURATION_RE.search(duration)
    if not match:
        return duration
    value = int(match.group(1))
    unit = match.group(2).lower()

    multiplier = 1.0
    multiplier *= {"enterprise": 1.5, "large": 1.3, "small": 0.8}.get(factors.organization_size, 1.0)
    multiplier *= {"beginner": 1.5, "intermediate": 1.2, "expert": 0.8}.get(factors.team_experience, 1.0)
    if maturity_level == 1:
        multiplier *= 1.4
    elif maturity_level == 2:
        multiplier *= 1.2
    elif maturity_level >= 4:
        multiplier *= 0.9

    new_value = max(1, round(value * multiplier))
    if unit == "week" and new_value > 8:
        return f"{round(new_value / 4)} months"
    if unit == "day" and new_value > 14:
        return f"{round(new_value / 7)} weeks"
    return f"{new_value} {unit}{'s' if new_value > 1 else ''}"


def complexity_multiplier(task_name: str, maturity_level: int, factors: TimeEstimationFactors) -> float:
    name = task_name.lower()
    multiplier = 1.0
    if "compliance" in name or "security" in name:
        multiplier *= 1.3
    if "migration" in name or "integration" in name:
        multiplier *= 1.4
    if maturity_level <= 2:
        multiplier *= 1.5
    elif maturity_level >= 4:
        multiplier *= 0.8
    if factors.compliance_requirements == "critical":
        multiplier *= 1.4
    if factors.change_management_complexity == "very_complex":
        multiplier *= 1.3
    return multiplier


def contextual_criteria(context: ImplementationContext) -> list[str]:
    factors = context.organization_factors
    criteria = []
    if context.current_maturity_level <= 2:
        criteria += ["Document process for future reference", "Create runbook for ongoing operations"]
    if factors.compliance_requirements in ("high", "critical"):
        criteria += ["Compliance documentation completed", "Audit trail established"]
    if factors.organization_size == "enterprise":
        criteria += ["Rollout plan for all regions/divisions created",
                     "Change management communications sent"]
    return criteria


def _foundation_task(rec: Recommendation) -> ImplementationTask:
    return ImplementationTask(
        id=f"{rec.id}-prep",
        name="Foundation Preparation",
        description="Establish basic governance and security foundations",
        estimated_hours=16,
        assigned_to="Governance Lead",
        acceptance_criteria=["Basic governance framework documented", "Security policies drafted",
                             "Stakeholder alignment achieved"],
    )


def adapt_phases(rec: Recommendation, context: ImplementationContext) -> list[ImplementationPhase]:
    factors = context.organization_factors
    extra_criteria = contextual_criteria(context)
    adapted = []
    for index, phase in enumerate(rec.phases):
        tasks = []
        for task in phase.tasks:
            multiplier = complexity_multiplier(task.name, context.current_maturity_level, factors)
            tasks.append(ImplementationTask(
                id=task.id,
                name=task.name,
                description=task.description,
                estimated_hours=round(task.estimated_hours * multiplier),
                assigned_to=("Multi-role Team Member" if context.available_team_members < 3
                             else task.assigned_to),
                acceptance_criteria=list(task.acceptance_criteria) + extra_criteria,
            ))
        if context.current_maturity_level <= 2 and index == 0:
            tasks.insert(0, _foundation_task(rec))

        missing = [d for d in phase.dependencies if d not in context.existing_capabilities]
        adapted.append(ImplementationPhase(
            phase=phase.phase,
            name=phase.name,
            duration=adjust_phase_duration(phase.duration, factors, context.current_maturity_level),
            tasks=tasks,
            deliverables=list(phase.deliverables),
            dependencies=list(phase.dependencies),
            sprint_status="Blocked" if missing else phase.sprint_status,
        ))
    return adapted


def identify_quick_wins(phases: list[ImplementationPhase]) -> list[ImplementationTask]:
    """Up to three tasks of 4 hours or less without complex keywords."""
    wins = []
    for phase in phases:
        for task in phase.tasks:
            text = f"{task.name} {task.description}".lower()
            if task.estimated_hours <= 4 and not any(k in text for k in _COMPLEX_KEYWORDS):
                wins.append(task)
    return wins[:3]


def suggest_approach(priority: int, risk_level: str, context: ImplementationContext) -> str:
    if risk_level == RISK_CRITICAL and priority > 80:
        return "Aggressive"
    if context.current_maturity_level >= 4 and context.available_team_members >= 5:
        return "Aggressive"
    if context.current_maturity_level <= 2 or context.time_constraints:
        return "Conservative"
    return "Balanced"


def extract_dependencies(rec: Recommendation, context: ImplementationContext) -> list[str]:
    deps = list(rec.prerequisites)
    if context.current_maturity_level <= 2:
        deps += ["Basic governance framework", "Administrative team training"]
    if context.organization_factors.compliance_requirements == "critical":
        deps += ["Compliance team approval", "Legal review completed"]
    return list(dict.fromkeys(deps))


# ═════════════════════════════════════════════════════════════════════════════
# Entry points
# ═════════════════════════════════════════════════════════════════════════════

def create_adaptive_plan(rec: Recommendation, context: ImplementationContext) -> PlanResult:
    """Build the context-adapted plan for ``rec``.

    Returns:
        PlanResult with ``plan`` set on success, or ``error`` describing
        why the roadmap could not be adapted.
    """
    try:
        priority = calculate_implementation_priority(rec, context)
        risk = determine_risk_level(rec, context)
        phases = adapt_phases(rec, context)
        if not phases:
            raise ValueError(f"Recommendation {rec.id} has no implementation phases")
        plan = AdaptivePlan(
            recommendation_id=rec.id,
            recommendation_title=rec.title,
            category=rec.category,
            pillar_id=rec.pillar_id,
            impact=rec.impact,
            adapted_phases=phases,
            priority_score=priority,
            risk_level=risk,
            dependencies=extract_dependencies(rec, context),
            quick_wins=identify_quick_wins(phases),
            estimated_total_hours=sum(p.total_hours for p in phases),
            suggested_approach=suggest_approach(priority, risk, context),
        )
    except (KeyError, ValueError, TypeError, ZeroDivisionError) as exc:
        logger.warning("Adaptive planning failed for %s: %s", rec.id, exc)
        return PlanResult(error=str(exc))
    return PlanResult(plan=plan)


def fallback_plan(rec: Recommendation) -> AdaptivePlan:
    """Static roadmap exactly as the recommendation defines it."""
    phases = copy.deepcopy(rec.phases)
    return AdaptivePlan(
        recommendation_id=rec.id,
        recommendation_title=rec.title,
        category=rec.category,
        pillar_id=rec.pillar_id,
        impact=rec.impact,
        adapted_phases=phases,
        priority_score=0,
        risk_level={Impact.HIGH: RISK_HIGH, Impact.MEDIUM: RISK_MEDIUM}.get(rec.impact, RISK_LOW),
        dependencies=list(rec.prerequisites),
        estimated_total_hours=sum(p.total_hours for p in phases),
        is_fallback=True,
    )

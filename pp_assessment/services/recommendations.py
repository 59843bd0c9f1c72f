"""
Recommendation derivation — unmet catalog features become remediation
recommendations, each carrying an implementation roadmap.

A feature is met when its question has a scale answer at or above the
feature threshold (4 for critical, 3 for important). Boolean, percentage
and text answers never satisfy a scale threshold.

Usage:
    from pp_assessment.services.recommendations import derive_recommendations
    recs = derive_recommendations(store)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Mapping

from pp_assessment.services.catalog import (
    COMPLIANCE_REQUIREMENTS,
    CRITICAL_FEATURES,
    IMPORTANT_FEATURES,
    SUPPORTING_PRACTICES,
    Feature,
    Impact,
    critical_roadmap_template,
    important_roadmap_template,
    map_category_to_pillar,
)
from pp_assessment.services.responses import Response, ScaleResponse

logger = logging.getLogger(__name__)

_IMPACT_ORDER = {Impact.HIGH: 0, Impact.MEDIUM: 1, Impact.LOW: 2}

CRITICAL_EVIDENCE_FORMATS = (".pdf", ".docx", ".xlsx", ".png", ".jpg")
IMPORTANT_EVIDENCE_FORMATS = (".pdf", ".docx", ".png", ".jpg")

SECURITY_HIGH_MIN = 80
SECURITY_MEDIUM_MIN = 50
COMPLIANT_MIN = 80
CERTIFICATION_READY_MIN = 90
COMPLIANCE_TARGET = 4


# ═════════════════════════════════════════════════════════════════════════════
# Roadmap structures
# ═════════════════════════════════════════════════════════════════════════════

@dataclass
class ImplementationTask:
    id: str
    name: str
    description: str
    estimated_hours: int
    assigned_to: str
    acceptance_criteria: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "estimated_hours": self.estimated_hours,
            "assigned_to": self.assigned_to,
            "acceptance_criteria": list(self.acceptance_criteria),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ImplementationTask":
        return cls(
            id=data["id"],
            name=data["name"],
            description=data.get("description", ""),
            estimated_hours=data.get("estimated_hours", 0),
            assigned_to=data.get("assigned_to", ""),
            acceptance_criteria=list(data.get("acceptance_criteria") or []),
        )


@dataclass
class ImplementationPhase:
    phase: int
    name: str
    duration: str
    tasks: list[ImplementationTask] = field(default_factory=list)
    deliverables: list[str] = field(default_factory=list)
    dependencies: list[str] = field(default_factory=list)
    sprint_status: str = "Not Started"

    @property
    def total_hours(self) -> int:
        return sum(t.estimated_hours for t in self.tasks)

    def to_dict(self) -> dict:
        return {
            "phase": self.phase,
            "name": self.name,
            "duration": self.duration,
            "sprint_status": self.sprint_status,
            "tasks": [t.to_dict() for t in self.tasks],
            "deliverables": list(self.deliverables),
            "dependencies": list(self.dependencies),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ImplementationPhase":
        return cls(
            phase=data["phase"],
            name=data["name"],
            duration=data.get("duration", ""),
            tasks=[ImplementationTask.from_dict(t) for t in data.get("tasks") or []],
            deliverables=list(data.get("deliverables") or []),
            dependencies=list(data.get("dependencies") or []),
            sprint_status=data.get("sprint_status", "Not Started"),
        )


@dataclass
class Recommendation:
    """Remediation recommendation for one unmet catalog feature."""
    id: str
    title: str
    description: str
    impact: Impact
    effort: str
    category: str
    pillar_id: str
    action_items: list[str] = field(default_factory=list)
    evidence_required: list[str] = field(default_factory=list)
    evidence_optional: list[str] = field(default_factory=list)
    evidence_formats: list[str] = field(default_factory=list)
    validation_steps: list[str] = field(default_factory=list)
    total_duration: str = ""
    prerequisites: list[str] = field(default_factory=list)
    risks: list[str] = field(default_factory=list)
    phases: list[ImplementationPhase] = field(default_factory=list)

    @property
    def task_count(self) -> int:
        return sum(len(p.tasks) for p in self.phases)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "impact": self.impact.value,
            "effort": self.effort,
            "category": self.category,
            "pillar_id": self.pillar_id,
            "action_items": list(self.action_items),
            "evidence_criteria": {
                "required": list(self.evidence_required),
                "optional": list(self.evidence_optional),
                "formats": list(self.evidence_formats),
                "validation_steps": list(self.validation_steps),
            },
            "implementation_roadmap": {
                "total_duration": self.total_duration,
                "prerequisites": list(self.prerequisites),
                "risks": list(self.risks),
                "phases": [p.to_dict() for p in self.phases],
            },
            "task_count": self.task_count,
        }


def _phases_from_template(feature_id: str, template: list[dict]) -> list[ImplementationPhase]:
    return [
        ImplementationPhase(
            phase=p["phase"],
            name=p["name"],
            duration=p["duration"],
            deliverables=list(p["deliverables"]),
            dependencies=list(p["dependencies"]),
            tasks=[
                ImplementationTask(
                    id=f"{feature_id}-{t['suffix']}",
                    name=t["name"],
                    description=t["description"],
                    estimated_hours=t["estimated_hours"],
                    assigned_to=t["assigned_to"],
                    acceptance_criteria=list(t["acceptance_criteria"]),
                )
                for t in p["tasks"]
            ],
        )
        for p in template
    ]


def _critical_recommendation(feature: Feature) -> Recommendation:
    meta, phases = critical_roadmap_template(feature.category)
    return Recommendation(
        id=feature.id,
        title=feature.title,
        description=feature.description,
        impact=Impact.HIGH,
        effort="Medium",
        category=feature.category,
        pillar_id=map_category_to_pillar(feature.category),
        action_items=[
            f"Review current implementation of {feature.title}",
            "Develop detailed implementation plan with timeline",
            "Assign dedicated security team resources",
            "Set target completion within 30 days",
            "Establish monitoring and validation procedures",
        ],
        evidence_required=list(meta["evidence_required"]),
        evidence_optional=list(meta["evidence_optional"]),
        evidence_formats=list(CRITICAL_EVIDENCE_FORMATS),
        validation_steps=list(meta["validation_steps"]),
        total_duration=meta["total_duration"],
        prerequisites=list(meta["prerequisites"]),
        risks=list(meta["risks"]),
        phases=_phases_from_template(feature.id, phases),
    )


def _important_recommendation(feature: Feature) -> Recommendation:
    meta, phases = important_roadmap_template()
    return Recommendation(
        id=feature.id,
        title=feature.title,
        description=feature.description,
        impact=Impact.MEDIUM,
        effort="Medium",
        category=feature.category,
        pillar_id=map_category_to_pillar(feature.category),
        action_items=[
            f"Evaluate current state of {feature.title}",
            "Create implementation plan with milestones",
            "Allocate required resources",
            "Set target completion within 60 days",
        ],
        evidence_required=list(meta["evidence_required"]),
        evidence_optional=list(meta["evidence_optional"]),
        evidence_formats=list(IMPORTANT_EVIDENCE_FORMATS),
        validation_steps=list(meta["validation_steps"]),
        total_duration=meta["total_duration"],
        prerequisites=list(meta["prerequisites"]),
        risks=list(meta["risks"]),
        phases=_phases_from_template(feature.id, phases),
    )


# ═════════════════════════════════════════════════════════════════════════════
# Derivation & checks
# ═════════════════════════════════════════════════════════════════════════════

def _scale_value(responses: Mapping[str, Response], question_id: str) -> int | None:
    response = responses.get(question_id)
    return response.value if isinstance(response, ScaleResponse) else None


def _meets(responses: Mapping[str, Response], question_id: str, threshold: int) -> bool:
    value = _scale_value(responses, question_id)
    return value is not None and value >= threshold


def derive_recommendations(responses: Mapping[str, Response]) -> list[Recommendation]:
    """Every unmet critical and important feature as a recommendation, High impact first."""
    recs = [_critical_recommendation(f) for f in CRITICAL_FEATURES
            if not _meets(responses, f.id, f.threshold)]
    recs += [_important_recommendation(f) for f in IMPORTANT_FEATURES
             if not _meets(responses, f.id, f.threshold)]
    recs.sort(key=lambda r: _IMPACT_ORDER[r.impact])
    return recs


def get_recommendation(responses: Mapping[str, Response], recommendation_id: str) -> Recommendation | None:
    return next((r for r in derive_recommendations(responses) if r.id == recommendation_id), None)


def calculate_security_score(responses: Mapping[str, Response]) -> dict:
    """Points-based security posture with the top five recommendations.

    Critical features score 15 points each when met, important features 10,
    and supporting practices add their own points. 80+ is "High", 50+
    "Medium", anything lower "Low".
    """
    score = 0
    for feature in CRITICAL_FEATURES + IMPORTANT_FEATURES:
        if _meets(responses, feature.id, feature.threshold):
            score += feature.points
    for question_id, threshold, points in SUPPORTING_PRACTICES:
        if _meets(responses, question_id, threshold):
            score += points

    if score >= SECURITY_HIGH_MIN:
        label = "High"
    elif score >= SECURITY_MEDIUM_MIN:
        label = "Medium"
    else:
        label = "Low"

    return {
        "score": label,
        "numeric_score": score,
        "recommendations": derive_recommendations(responses)[:5],
    }


def perform_compliance_check(responses: Mapping[str, Response]) -> dict:
    """Deduct each compliance requirement's weight when its answer is below 4."""
    score = 100
    gaps = []
    for question_id, requirement, weight in COMPLIANCE_REQUIREMENTS:
        value = _scale_value(responses, question_id)
        if value is None or value < COMPLIANCE_TARGET:
            score -= weight
            gaps.append({
                "requirement": requirement,
                "current": value or 0,
                "target": COMPLIANCE_TARGET,
                "impact": Impact.HIGH.value if weight >= 15 else Impact.MEDIUM.value,
                "remediation": f"Implement {requirement} to meet compliance standards",
            })
    gaps.sort(key=lambda g: _IMPACT_ORDER[Impact(g["impact"])])
    return {
        "compliant": score >= COMPLIANT_MIN,
        "score": score,
        "gaps": gaps,
        "certification_ready": score >= CERTIFICATION_READY_MIN,
    }

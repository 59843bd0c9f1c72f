"""
Gap-Closure Calculator — baseline vs. current vs. target, per pillar.

    original_gap      = max(0, target - baseline)
    current_gap       = target - current
    improvement       = current - baseline          (signed; regression < 0)
    percentage_closed = improvement / original_gap * 100

A zero original gap is closed at 100 % whatever the current score does.
The displayed percentage is clamped to [0, 100]; the signed raw value is
kept for audit.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from types import MappingProxyType
from typing import Iterable, Mapping

from pp_assessment.services.audit_trail import normalize_timestamp
from pp_assessment.services.catalog import PILLAR_TARGETS

logger = logging.getLogger(__name__)

GAP_CLOSED_THRESHOLD = 0.8    # share of the original gap that counts as "closed" in snapshots


class GapStatus(str, Enum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    CLOSED = "closed"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ═════════════════════════════════════════════════════════════════════════════
# Snapshots
# ═════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Gap:
    pillar: str
    baseline_score: float
    target_score: float
    gap: float
    status: GapStatus = GapStatus.OPEN
    tasks_required: int = 0
    tasks_completed: int = 0

    def to_dict(self) -> dict:
        return {
            "pillar": self.pillar,
            "baseline_score": self.baseline_score,
            "target_score": self.target_score,
            "gap": self.gap,
            "status": self.status.value,
            "tasks_required": self.tasks_required,
            "tasks_completed": self.tasks_completed,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Gap":
        return cls(
            pillar=data["pillar"],
            baseline_score=float(data["baseline_score"]),
            target_score=float(data["target_score"]),
            gap=float(data["gap"]),
            status=GapStatus(data.get("status", GapStatus.OPEN.value)),
            tasks_required=int(data.get("tasks_required", 0)),
            tasks_completed=int(data.get("tasks_completed", 0)),
        )


@dataclass(frozen=True)
class BaselineSnapshot:
    """Scores captured once per project; replaced only by an explicit reset."""
    timestamp: datetime
    overall_score: float
    pillar_scores: Mapping[str, float]
    gaps: tuple[Gap, ...]
    total_recommendations: int = 0
    critical_recommendations: int = 0

    def __post_init__(self):
        object.__setattr__(self, "pillar_scores", MappingProxyType(dict(self.pillar_scores)))
        object.__setattr__(self, "gaps", tuple(self.gaps))

    def gap_for(self, pillar_id: str) -> Gap | None:
        return next((g for g in self.gaps if g.pillar == pillar_id), None)

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "overall_score": self.overall_score,
            "pillar_scores": dict(self.pillar_scores),
            "gaps": [g.to_dict() for g in self.gaps],
            "total_recommendations": self.total_recommendations,
            "critical_recommendations": self.critical_recommendations,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "BaselineSnapshot":
        return cls(
            timestamp=normalize_timestamp(data["timestamp"]),
            overall_score=float(data["overall_score"]),
            pillar_scores={k: float(v) for k, v in data["pillar_scores"].items()},
            gaps=tuple(Gap.from_dict(g) for g in data.get("gaps") or []),
            total_recommendations=int(data.get("total_recommendations", 0)),
            critical_recommendations=int(data.get("critical_recommendations", 0)),
        )


def create_baseline_snapshot(overall_score: float, pillar_scores: Mapping[str, float],
                             recommendations: Iterable = (), targets: Mapping[str, float] | None = None,
                             timestamp: datetime | None = None) -> BaselineSnapshot:
    """Capture the starting point for gap-closure tracking.

    Args:
        overall_score: Overall score at capture time.
        pillar_scores: pillar id → displayed score.
        recommendations: Objects with ``pillar_id``, ``impact`` and
            ``task_count``; used for per-pillar task counts.
        targets: pillar id → target score (defaults to the catalog targets).
        timestamp: Capture time (defaults to now, UTC).
    """
    targets = targets if targets is not None else PILLAR_TARGETS
    recommendations = list(recommendations)
    gaps = []
    for pillar_id, score in pillar_scores.items():
        target = targets.get(pillar_id, 100.0)
        gaps.append(Gap(
            pillar=pillar_id,
            baseline_score=score,
            target_score=target,
            gap=max(0.0, target - score),
            tasks_required=sum(r.task_count for r in recommendations if r.pillar_id == pillar_id),
        ))
    return BaselineSnapshot(
        timestamp=timestamp or _utcnow(),
        overall_score=overall_score,
        pillar_scores=dict(pillar_scores),
        gaps=tuple(gaps),
        total_recommendations=len(recommendations),
        critical_recommendations=sum(1 for r in recommendations if r.impact.value == "High"),
    )


@dataclass
class AssessmentSnapshot:
    timestamp: datetime
    overall_score: float
    pillar_scores: dict[str, float]
    completed_tasks: int = 0
    total_tasks: int = 0
    evidence_uploaded: int = 0
    gaps_closed: int = 0
    improvement_rate: float = 0.0

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "overall_score": round(self.overall_score, 2),
            "pillar_scores": {k: round(v, 2) for k, v in self.pillar_scores.items()},
            "completed_tasks": self.completed_tasks,
            "total_tasks": self.total_tasks,
            "evidence_uploaded": self.evidence_uploaded,
            "gaps_closed": self.gaps_closed,
            "improvement_rate": round(self.improvement_rate, 2),
        }


def create_assessment_snapshot(baseline: BaselineSnapshot, current_pillar_scores: Mapping[str, float],
                               tasks: Iterable = (), evidence: Mapping[str, list] | None = None,
                               timestamp: datetime | None = None) -> AssessmentSnapshot:
    """Summarise where the project stands now relative to its baseline.

    A gap counts as closed once at least 80 % of it has been recovered.
    ``improvement_rate`` is the share of the total original gap recovered.
    """
    tasks = list(tasks)
    evidence = evidence or {}

    gaps_closed = 0
    total_original = 0.0
    total_current = 0.0
    for gap in baseline.gaps:
        current = current_pillar_scores.get(gap.pillar, gap.baseline_score)
        if current - gap.baseline_score >= gap.gap * GAP_CLOSED_THRESHOLD:
            gaps_closed += 1
        total_original += gap.gap
        total_current += max(0.0, gap.target_score - current)

    scores = dict(current_pillar_scores)
    overall = sum(scores.values()) / len(scores) if scores else 0.0
    rate = (total_original - total_current) / total_original * 100 if total_original > 0 else 0.0

    return AssessmentSnapshot(
        timestamp=timestamp or _utcnow(),
        overall_score=overall,
        pillar_scores=scores,
        completed_tasks=sum(1 for t in tasks if t.is_completed),
        total_tasks=len(tasks),
        evidence_uploaded=sum(1 for files in evidence.values() if files),
        gaps_closed=gaps_closed,
        improvement_rate=rate,
    )


# ═════════════════════════════════════════════════════════════════════════════
# Gap closure
# ═════════════════════════════════════════════════════════════════════════════

@dataclass
class GapProgress:
    pillar: str
    original_gap: float
    current_gap: float
    improvement: float
    percentage_closed: float
    raw_percentage_closed: float
    status: GapStatus

    def to_dict(self) -> dict:
        return {
            "pillar": self.pillar,
            "original_gap": round(self.original_gap, 2),
            "current_gap": round(self.current_gap, 2),
            "improvement": round(self.improvement, 2),
            "percentage_closed": round(self.percentage_closed, 2),
            "raw_percentage_closed": round(self.raw_percentage_closed, 2),
            "status": self.status.value,
        }


@dataclass
class GapClosureAnalysis:
    gap_progress: list[GapProgress] = field(default_factory=list)
    average_gap_closure: float = 0.0
    total_improvement_points: float = 0.0
    time_elapsed: timedelta = timedelta(0)
    projected_completion_time: datetime | None = None

    def to_dict(self) -> dict:
        return {
            "gap_progress": [g.to_dict() for g in self.gap_progress],
            "average_gap_closure": round(self.average_gap_closure, 2),
            "total_improvement_points": round(self.total_improvement_points, 2),
            "time_elapsed_seconds": self.time_elapsed.total_seconds(),
            "projected_completion_time": (
                self.projected_completion_time.isoformat() if self.projected_completion_time else None
            ),
        }


def _gap_progress(gap: Gap, current_score: float) -> GapProgress:
    improvement = current_score - gap.baseline_score
    current_gap = gap.target_score - current_score
    if gap.gap <= 0:
        return GapProgress(gap.pillar, 0.0, current_gap, improvement, 100.0, 100.0, GapStatus.CLOSED)

    raw = improvement / gap.gap * 100
    if raw >= 100:
        status = GapStatus.CLOSED
    elif raw > 0:
        status = GapStatus.IN_PROGRESS
    else:
        status = GapStatus.OPEN
    return GapProgress(
        pillar=gap.pillar,
        original_gap=gap.gap,
        current_gap=current_gap,
        improvement=improvement,
        percentage_closed=min(100.0, max(0.0, raw)),
        raw_percentage_closed=raw,
        status=status,
    )


def project_completion(start: datetime, current: datetime, percentage_complete: float) -> datetime | None:
    """Linear extrapolation of when closure reaches 100 %; None when not computable."""
    if percentage_complete <= 0 or percentage_complete >= 100:
        return None
    elapsed = current - start
    if elapsed <= timedelta(0):
        return None
    remaining = elapsed / percentage_complete * (100 - percentage_complete)
    return current + remaining


def calculate_gap_closure(baseline: BaselineSnapshot, current: AssessmentSnapshot) -> GapClosureAnalysis:
    """Compare the current snapshot against the baseline, pillar by pillar.

    Pillars missing from the current snapshot fall back to their baseline
    score (zero improvement).
    """
    progress = [
        _gap_progress(gap, current.pillar_scores.get(gap.pillar, gap.baseline_score))
        for gap in baseline.gaps
    ]
    average = sum(p.percentage_closed for p in progress) / len(progress) if progress else 0.0
    return GapClosureAnalysis(
        gap_progress=progress,
        average_gap_closure=average,
        total_improvement_points=current.overall_score - baseline.overall_score,
        time_elapsed=current.timestamp - baseline.timestamp,
        projected_completion_time=project_completion(baseline.timestamp, current.timestamp, average),
    )

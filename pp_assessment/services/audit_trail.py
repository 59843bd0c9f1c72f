"""
Audit Log — append-only record of score-affecting events.

Rules:
    - exactly one entry per score-affecting mutation
    - entries are immutable once appended; there is no edit or delete path
    - timestamps are non-decreasing in insertion order (a clock that steps
      back is clamped to the previous entry's timestamp)
    - timestamps are normalised to timezone-aware UTC on read, whatever
      form they were persisted in (ISO string, trailing "Z", naive datetime,
      epoch milliseconds)
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Callable, Iterable, Mapping

from pp_assessment.core.exceptions import ValidationError

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class AuditEntryType(str, Enum):
    ASSESSMENT_CHANGED = "assessment_changed"
    TASK_COMPLETED = "task_completed"
    EVIDENCE_UPLOADED = "evidence_uploaded"
    SCORE_UPDATED = "score_updated"
    TASK_STATUS_CHANGE = "task_status_change"


class VerificationStatus(str, Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    FAILED = "failed"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_timestamp(value) -> datetime:
    """Return ``value`` as a timezone-aware UTC datetime.

    Accepts datetimes (naive ones are taken as UTC), ISO-8601 strings
    including a trailing ``Z``, and epoch milliseconds.

    Raises:
        ValidationError: If the value cannot be interpreted as a timestamp.
    """
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        dt = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            raise ValidationError("Invalid timestamp", details={"timestamp": value}) from None
    else:
        raise ValidationError("Invalid timestamp", details={"timestamp": repr(value)})

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


# ── Entry ─────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class AuditEntry:
    """One immutable audit record."""
    id: str
    timestamp: datetime
    type: AuditEntryType
    category: str
    pillar: str
    user: str
    details: Mapping = field(default_factory=dict)
    metadata: Mapping = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "timestamp", normalize_timestamp(self.timestamp))
        object.__setattr__(self, "type", AuditEntryType(self.type))
        object.__setattr__(self, "details", MappingProxyType(dict(self.details)))
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))

    def __eq__(self, other):
        if not isinstance(other, AuditEntry):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __hash__(self):
        return hash(self.id)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "type": self.type.value,
            "category": self.category,
            "pillar": self.pillar,
            "user": self.user,
            "details": dict(self.details),
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AuditEntry":
        try:
            return cls(
                id=data["id"],
                timestamp=data["timestamp"],
                type=data["type"],
                category=data.get("category", ""),
                pillar=data.get("pillar", ""),
                user=data.get("user", "System"),
                details=data.get("details") or {},
                metadata=data.get("metadata") or {},
            )
        except (KeyError, ValueError) as exc:
            raise ValidationError("Invalid audit entry", details={"error": str(exc)}) from None


def make_entry(entry_type: AuditEntryType, *, pillar: str, category: str, user: str,
               details: dict | None = None, session_id: str | None = None,
               environment_id: str = "production", clock: Clock = _utcnow) -> AuditEntry:
    """Build an entry stamped with the current time and session metadata."""
    now = clock()
    return AuditEntry(
        id=f"audit-{uuid.uuid4().hex[:12]}",
        timestamp=now,
        type=entry_type,
        category=category,
        pillar=pillar,
        user=user,
        details={k: v for k, v in (details or {}).items() if v is not None},
        metadata={
            "session_id": session_id or f"session-{int(now.timestamp() * 1000)}",
            "environment_id": environment_id,
        },
    )


# ── Log ───────────────────────────────────────────────────────────────────


@dataclass
class AuditLog:
    """Append-only audit trail for one project."""

    _entries: list[AuditEntry] = field(default_factory=list)

    def add_entry(self, entry: AuditEntry) -> AuditEntry:
        """Append ``entry`` and return the stored version.

        If the entry is older than the last one, its timestamp is lifted to
        the last timestamp so insertion order and time order agree.
        """
        if self._entries and entry.timestamp < self._entries[-1].timestamp:
            logger.warning("Audit clock stepped back for %s; clamping to previous timestamp", entry.id)
            entry = replace(entry, timestamp=self._entries[-1].timestamp)
        self._entries.append(entry)
        return entry

    def get_entries(self) -> tuple[AuditEntry, ...]:
        """All entries in insertion order."""
        return tuple(self._entries)

    def sorted_entries(self, descending: bool = True) -> list[AuditEntry]:
        return sorted(self._entries, key=lambda e: e.timestamp, reverse=descending)

    def filter(self, entry_type: AuditEntryType | str | None = None,
               pillar: str | None = None) -> list[AuditEntry]:
        result = self._entries
        if entry_type is not None:
            wanted = AuditEntryType(entry_type)
            result = [e for e in result if e.type == wanted]
        if pillar is not None:
            result = [e for e in result if e.pillar == pillar]
        return list(result)

    def __len__(self) -> int:
        return len(self._entries)

    def to_list(self) -> list[dict]:
        return [e.to_dict() for e in self._entries]

    @classmethod
    def from_list(cls, data: Iterable[dict] | None) -> "AuditLog":
        """Rebuild a stored log as-is; the step-back clamp applies to new writes only."""
        return cls([AuditEntry.from_dict(raw) for raw in data or []])


# ── Report ────────────────────────────────────────────────────────────────


def _describe(entry: AuditEntry) -> str:
    d = entry.details
    if entry.type == AuditEntryType.TASK_COMPLETED:
        return f"Completed task: {d.get('task_name')} ({d.get('completion_percentage', 0):.0f}% progress)"
    if entry.type == AuditEntryType.EVIDENCE_UPLOADED:
        return (f"Uploaded {len(d.get('evidence_files') or [])} evidence file(s) "
                f"for {d.get('recommendation_title')}")
    if entry.type == AuditEntryType.SCORE_UPDATED:
        return f"Score improved by {d.get('score_improvement', 0):.1f} points in {entry.pillar}"
    if entry.type == AuditEntryType.TASK_STATUS_CHANGE:
        return (f"Task \"{d.get('task_name')}\" status changed from "
                f"{d.get('previous_status')} to {d.get('new_status')}")
    return f"Assessment updated for {entry.category}"


def _impact(entry: AuditEntry) -> str:
    d = entry.details
    if entry.type == AuditEntryType.SCORE_UPDATED and (d.get("score_improvement") or 0) > 10:
        return "high"
    if entry.type == AuditEntryType.TASK_COMPLETED and d.get("completion_percentage") == 100:
        return "high"
    if entry.type == AuditEntryType.EVIDENCE_UPLOADED:
        return "medium"
    return "low"


def generate_report(entries: Iterable[AuditEntry], task_totals: Mapping[str, int] | None = None,
                    now: datetime | None = None) -> dict:
    """Summarise an audit trail.

    Args:
        entries: Audit entries in any order.
        task_totals: Optional pillar → number of tasks, used for the
            per-pillar completion rate.
        now: Report generation time (defaults to the current UTC time).

    Returns:
        dict with ``generated_at``, ``period``, ``summary`` (counts and
        compliance score), ``pillar_breakdown``, ``timeline`` (newest first)
        and follow-up ``recommendations``.
    """
    entries = list(entries)
    now = now or _utcnow()
    task_totals = task_totals or {}

    breakdown: dict[str, dict] = {}
    for entry in entries:
        row = breakdown.setdefault(entry.pillar, {
            "total_tasks": task_totals.get(entry.pillar, 0),
            "completed_tasks": 0,
            "evidence_uploaded": 0,
            "score_improvement": 0.0,
            "entry_count": 0,
        })
        if entry.type == AuditEntryType.TASK_COMPLETED:
            row["completed_tasks"] += 1
        elif entry.type == AuditEntryType.TASK_STATUS_CHANGE:
            row["completed_tasks"] = max(0, row["completed_tasks"] - 1)
        elif entry.type == AuditEntryType.EVIDENCE_UPLOADED:
            row["evidence_uploaded"] += 1
        improvement = entry.details.get("score_improvement")
        if improvement:
            row["score_improvement"] += improvement
        row["entry_count"] += 1

    score_updates = [e for e in entries if e.type == AuditEntryType.SCORE_UPDATED]
    verified = [e for e in score_updates
                if e.details.get("verification_status") == VerificationStatus.VERIFIED.value]
    compliance_score = len(verified) / len(score_updates) * 100 if score_updates else 0.0

    ordered = sorted(entries, key=lambda e: e.timestamp, reverse=True)
    timeline = [
        {
            "date": e.timestamp.isoformat(),
            "type": e.type.value,
            "description": _describe(e),
            "user": e.user,
            "impact": _impact(e),
        }
        for e in ordered
    ]

    recommendations = []
    for pillar, data in breakdown.items():
        if data["completed_tasks"] > 0 and data["evidence_uploaded"] == 0:
            recommendations.append(
                f"Upload evidence for completed tasks in {pillar} to verify improvements")
        if data["score_improvement"] < 5 and data["completed_tasks"] > 3:
            recommendations.append(
                f"Review task impact calculations for {pillar} - minimal score improvement "
                f"despite completion")
        rate = data["completed_tasks"] / (data["total_tasks"] or 1)
        if rate < 0.5:
            recommendations.append(
                f"Focus on completing remaining tasks in {pillar} ({round(rate * 100)}% complete)")

    start = min((e.timestamp for e in entries), default=now)
    return {
        "generated_at": now.isoformat(),
        "period": {"start": start.isoformat(), "end": now.isoformat()},
        "summary": {
            "total_entries": len(entries),
            "tasks_completed": sum(1 for e in entries if e.type == AuditEntryType.TASK_COMPLETED),
            "evidence_uploaded": sum(1 for e in entries if e.type == AuditEntryType.EVIDENCE_UPLOADED),
            "score_updates": len(score_updates),
            "compliance_score": round(compliance_score, 1),
        },
        "pillar_breakdown": {
            pillar: {**data, "score_improvement": round(data["score_improvement"], 2)}
            for pillar, data in breakdown.items()
        },
        "timeline": timeline,
        "recommendations": recommendations,
    }

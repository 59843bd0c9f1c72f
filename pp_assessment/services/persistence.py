"""
Persistence port — versioned JSON blob over a key/value backend.

    {"version": "1.0.0", "lastSaved": "<iso>", "projects": [...]}

Every save first copies the current primary blob to the backup key. A
primary blob that cannot be parsed falls back to the backup (and restores
it as primary); if both are unreadable ``StorageCorruptionError`` is
raised so the error handler can purge.

Backends:
    MemoryStorage — plain dict, for tests and scripts
    SqlStorage    — ``storage_entries`` table via Flask-SQLAlchemy
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Callable, Protocol

from pp_assessment.core.exceptions import StorageCorruptionError
from pp_assessment.models import db
from pp_assessment.models.storage import StorageEntry

logger = logging.getLogger(__name__)

STORAGE_KEY = "power-platform-assessments"
BACKUP_SUFFIX = "-backup"
STORAGE_VERSION = "1.0.0"
STORAGE_CAPACITY_BYTES = 5 * 1024 * 1024


class StorageBackend(Protocol):
    def get_item(self, key: str) -> str | None: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...

    def keys(self) -> list[str]: ...


# ── Backends ─────────────────────────────────────────────────────────────


class MemoryStorage:
    """Dict-backed storage."""

    def __init__(self, initial: dict[str, str] | None = None):
        self._data: dict[str, str] = dict(initial or {})

    def get_item(self, key):
        return self._data.get(key)

    def set_item(self, key, value):
        self._data[key] = value

    def remove_item(self, key):
        self._data.pop(key, None)

    def keys(self):
        return list(self._data)


class SqlStorage:
    """Storage rows in the ``storage_entries`` table; each write commits."""

    def get_item(self, key):
        entry = db.session.get(StorageEntry, key)
        return entry.value if entry else None

    def set_item(self, key, value):
        entry = db.session.get(StorageEntry, key)
        if entry is None:
            entry = StorageEntry(key=key, value=value)
            db.session.add(entry)
        else:
            entry.value = value
        db.session.commit()

    def remove_item(self, key):
        entry = db.session.get(StorageEntry, key)
        if entry is not None:
            db.session.delete(entry)
            db.session.commit()

    def keys(self):
        return [row.key for row in db.session.query(StorageEntry.key).all()]


# ── Assessment store ─────────────────────────────────────────────────────


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AssessmentStore:
    """Load and save the project list as one versioned blob.

    Args:
        backend: Any ``StorageBackend``.
        key: Primary storage key; the backup lives at ``key + "-backup"``.
        version: Version stamped into every saved blob.
        clock: Source of the ``lastSaved`` timestamp.
    """

    def __init__(self, backend: StorageBackend, key: str = STORAGE_KEY,
                 version: str = STORAGE_VERSION, clock: Callable[[], datetime] = _utcnow):
        self.backend = backend
        self.key = key
        self.backup_key = f"{key}{BACKUP_SUFFIX}"
        self.version = version
        self.clock = clock

    @staticmethod
    def _decode(key: str, raw: str) -> dict:
        try:
            parsed = json.loads(raw)
        except (json.JSONDecodeError, TypeError) as exc:
            raise StorageCorruptionError(key, str(exc)) from None
        if not isinstance(parsed, dict):
            raise StorageCorruptionError(key, "top-level value is not an object")
        return parsed

    def load(self) -> dict | None:
        """Return the stored blob, or None when nothing was saved yet.

        Raises:
            StorageCorruptionError: If neither the primary nor the backup
                blob can be decoded.
        """
        raw = self.backend.get_item(self.key)
        if raw is None:
            return None
        try:
            blob = self._decode(self.key, raw)
        except StorageCorruptionError as exc:
            logger.error("Primary assessment blob unreadable, trying backup: %s", exc)
            blob = self._restore_from_backup(exc)
        if blob.get("version") != self.version:
            logger.info("Stored blob version %s differs from %s", blob.get("version"), self.version)
        return blob

    def _restore_from_backup(self, original: StorageCorruptionError) -> dict:
        raw = self.backend.get_item(self.backup_key)
        if raw is None:
            raise original
        blob = self._decode(self.backup_key, raw)
        self.backend.set_item(self.key, raw)
        logger.warning("Assessment data restored from backup")
        return blob

    def load_projects(self) -> list[dict]:
        blob = self.load()
        if blob is None:
            return []
        projects = blob.get("projects") or []
        if not isinstance(projects, list):
            raise StorageCorruptionError(self.key, "projects is not a list")
        return projects

    def save(self, projects: list[dict]) -> dict:
        """Persist ``projects``; the previous primary blob becomes the backup."""
        current = self.backend.get_item(self.key)
        if current is not None:
            self.backend.set_item(self.backup_key, current)
        blob = {
            "version": self.version,
            "lastSaved": self.clock().isoformat(),
            "projects": projects,
        }
        self.backend.set_item(self.key, json.dumps(blob))
        return blob

    def clear(self) -> None:
        self.backend.remove_item(self.key)
        self.backend.remove_item(self.backup_key)

    def storage_info(self) -> dict:
        used = len((self.backend.get_item(self.key) or "").encode("utf-8"))
        return {"used": used, "available": STORAGE_CAPACITY_BYTES - used}


def purge_corrupted_entries(backend: StorageBackend, prefix: str) -> list[str]:
    """Remove keys containing ``prefix`` whose value is not JSON-shaped.

    Only the first non-blank character is checked (``{`` or ``[``), so
    well-formed but wrong JSON survives.

    Returns:
        The keys that were removed.
    """
    removed = []
    for key in backend.keys():
        if prefix not in key:
            continue
        value = (backend.get_item(key) or "").strip()
        if not value.startswith(("{", "[")):
            backend.remove_item(key)
            removed.append(key)
    if removed:
        logger.warning("Purged %d corrupted storage entries: %s", len(removed), removed)
    return removed

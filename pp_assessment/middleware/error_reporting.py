"""
Structured error reporting.

``ErrorReporter`` collects error reports in a bounded in-memory buffer and,
when a report looks like storage corruption, runs the registered purge
callback. ``init_error_handlers`` wires it into the Flask app so unhandled
exceptions and ``StorageCorruptionError`` go through one path.
"""

import json
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable

from flask import Flask, current_app, request

from pp_assessment.core.exceptions import StorageCorruptionError

logger = logging.getLogger(__name__)

# Messages produced by JSON parsers on truncated or non-JSON input
_CORRUPTION_MARKERS = ("unexpected token", "json.parse", "invalid json", "not valid json", "expecting value")
_MAX_REPORTS = 500


@dataclass
class ErrorReport:
    timestamp: datetime
    source: str
    error_type: str
    message: str
    context: dict = field(default_factory=dict)
    storage_purged: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "source": self.source,
            "error_type": self.error_type,
            "message": self.message,
            "context": self.context,
            "storage_purged": self.storage_purged,
        }


class ErrorReporter:
    """Collects error reports and triggers the storage purge on corruption.

    Args:
        on_storage_corruption: Called with no arguments when a reported
            error looks like corrupted stored data; returns the purged keys.
        capacity: Maximum number of reports kept (oldest dropped first).
    """

    def __init__(self, on_storage_corruption: Callable[[], list[str]] | None = None,
                 capacity: int = _MAX_REPORTS):
        self._reports: deque[ErrorReport] = deque(maxlen=capacity)
        self.on_storage_corruption = on_storage_corruption

    @staticmethod
    def is_storage_corruption(exc: BaseException) -> bool:
        if isinstance(exc, (StorageCorruptionError, json.JSONDecodeError)):
            return True
        text = str(exc).lower()
        return any(marker in text for marker in _CORRUPTION_MARKERS)

    def report(self, exc: BaseException, source: str, **context) -> ErrorReport:
        entry = ErrorReport(
            timestamp=datetime.now(timezone.utc),
            source=source,
            error_type=type(exc).__name__,
            message=str(exc),
            context=context,
        )
        logger.error("Error reported from %s: %s", source, exc,
                     extra={"error_source": source, **{k: v for k, v in context.items()
                                                       if k in ("project_id", "task_id")}})
        if self.on_storage_corruption is not None and self.is_storage_corruption(exc):
            entry.storage_purged = self.on_storage_corruption()
        self._reports.append(entry)
        return entry

    def recent(self, limit: int = 50) -> list[ErrorReport]:
        """Newest reports first."""
        return list(reversed(self._reports))[:limit]

    def __len__(self) -> int:
        return len(self._reports)


def get_error_reporter() -> ErrorReporter:
    return current_app.extensions["error_reporter"]


def handle_storage_corruption(e: StorageCorruptionError):
    """Report a corrupted blob (which triggers the purge) and answer 500."""
    report = get_error_reporter().report(e, source="storage", path=request.path)
    return {
        "error": "Stored assessment data was corrupted and has been reset",
        "purged": report.storage_purged,
    }, 500


def init_error_handlers(app: Flask):
    """Register app-level error handlers that feed the ``ErrorReporter``."""

    app.register_error_handler(StorageCorruptionError, handle_storage_corruption)

    @app.errorhandler(404)
    def _not_found(e):
        return {"error": "Not found", "path": request.path}, 404

    @app.errorhandler(405)
    def _method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(413)
    def _too_large(e):
        return {"error": "Request body too large"}, 413

    @app.errorhandler(500)
    def _server_error(e):
        original = getattr(e, "original_exception", None) or e
        get_error_reporter().report(original, source="request", path=request.path)
        return {"error": "Internal server error"}, 500

"""
Logging setup for the assessment service.

Every module logs through ``logging.getLogger(__name__)`` and attaches the
assessment context (project, pillar, task, audit event) via ``extra=``.
The formatters here decide how that context is rendered:

    production   → one JSON object per line, context as top-level keys
    development  → coloured single line, context as a ``[project/pillar/task]`` tag

LOG_LEVEL overrides the default level (INFO in production, DEBUG otherwise).
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

# Record attributes copied into the JSON payload when present
CONTEXT_FIELDS = (
    "request_id",
    "method",
    "path",
    "status",
    "duration_ms",
    "project_id",
    "pillar_id",
    "task_id",
    "event_type",
    "error_source",
)

_TAG_FIELDS = ("project_id", "pillar_id", "task_id")


def record_context(record: logging.LogRecord) -> dict:
    """Assessment context attached to a record, skipping unset fields."""
    return {
        key: getattr(record, key)
        for key in CONTEXT_FIELDS
        if getattr(record, key, None) is not None
    }


class JSONFormatter(logging.Formatter):
    """One JSON document per record for log shipping."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "where": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        payload.update(record_context(record))
        if record.exc_info and record.exc_info[0] is not None:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """Coloured console line for local work."""

    LEVEL_COLOURS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        colour = self.LEVEL_COLOURS.get(record.levelname, "")
        stamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        parts = [str(getattr(record, f)) for f in _TAG_FIELDS if getattr(record, f, None) is not None]
        tag = f" [{'/'.join(parts)}]" if parts else ""
        line = f"{colour}{stamp} {record.levelname:<8}{self.RESET} {record.name}{tag}: {record.getMessage()}"
        if record.exc_info and record.exc_info[0] is not None:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def configure_logging(app):
    """Install a single stderr handler on the root logger for ``app``."""
    testing = app.config.get("TESTING", False)
    production = not app.config.get("DEBUG", False) and not testing

    level_name = os.getenv("LOG_LEVEL", "INFO" if production else "DEBUG").upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if production else ReadableFormatter())
    handler.setLevel(level)

    # Tests build several apps per process
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    logging.getLogger("werkzeug").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    app.logger.setLevel(level)

    if not testing:
        app.logger.info("Logging ready (level=%s, json=%s)", level_name, production)

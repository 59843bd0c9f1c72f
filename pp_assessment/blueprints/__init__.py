"""
Power Platform Governance Assessment
Blueprint registry and shared request helpers.
"""

import logging

from flask import current_app, jsonify, request
from werkzeug.exceptions import HTTPException

from pp_assessment.core.exceptions import (
    ImportFormatError,
    NotFoundError,
    StorageCorruptionError,
    ValidationError,
)
from pp_assessment.middleware.error_reporting import get_error_reporter, handle_storage_corruption
from pp_assessment.services.project_service import DEFAULT_USER, ProjectService

logger = logging.getLogger(__name__)


def get_project_service() -> ProjectService:
    return current_app.extensions["project_service"]


def json_body() -> dict:
    """Request JSON as a dict; anything else is rejected with 422."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def current_user(data: dict | None = None) -> str:
    """Acting user: body ``user`` field, then ``X-User`` header, then the default."""
    if data and (data.get("user") or "").strip():
        return data["user"].strip()
    return request.headers.get("X-User", "").strip() or DEFAULT_USER


def register_error_handlers(bp) -> None:
    """Attach the standard domain-exception handlers to a blueprint."""

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        return jsonify({"error": str(error)}), 404

    @bp.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        return jsonify({"error": str(error), "details": error.details}), 422

    @bp.errorhandler(ImportFormatError)
    def _handle_import_format(error: ImportFormatError):
        logger.warning("Import rejected: %s", error.reason)
        return jsonify({"error": str(error)}), 400

    bp.register_error_handler(StorageCorruptionError, handle_storage_corruption)

    @bp.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        if isinstance(error, HTTPException):
            return jsonify({"error": error.description}), error.code
        logger.exception("Unexpected error in %s endpoint=%s", bp.name, request.endpoint)
        get_error_reporter().report(error, source=bp.name, path=request.path)
        return jsonify({"error": "Internal server error"}), 500

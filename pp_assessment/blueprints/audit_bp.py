"""
Audit blueprint — read-only access to a project's audit trail.

Endpoints:
    GET /api/v1/projects/<pid>/audit          — entries (?type=&pillar=&order=asc|desc)
    GET /api/v1/projects/<pid>/audit/report   — summary report
"""

import logging

from flask import Blueprint, jsonify, request

from pp_assessment.blueprints import get_project_service, register_error_handlers
from pp_assessment.core.exceptions import ValidationError
from pp_assessment.services.audit_trail import AuditEntryType

logger = logging.getLogger(__name__)

audit_bp = Blueprint("audit", __name__, url_prefix="/api/v1")
register_error_handlers(audit_bp)


@audit_bp.route("/projects/<project_id>/audit", methods=["GET"])
def list_audit_entries(project_id):
    entry_type = request.args.get("type") or None
    if entry_type and entry_type not in {t.value for t in AuditEntryType}:
        raise ValidationError("Unknown audit entry type", details={"type": entry_type})
    order = request.args.get("order", "desc")
    entries = get_project_service().audit_entries(
        project_id,
        entry_type=entry_type,
        pillar=request.args.get("pillar") or None,
        descending=order != "asc",
    )
    return jsonify({"items": [e.to_dict() for e in entries], "total": len(entries)})


@audit_bp.route("/projects/<project_id>/audit/report", methods=["GET"])
def get_audit_report(project_id):
    return jsonify(get_project_service().audit_report(project_id))

"""
Export, import and storage endpoints.

    GET  /api/v1/export/json                                — all projects (envelope)
    GET  /api/v1/projects/<pid>/export/json                 — one project (envelope)
    GET  /api/v1/projects/<pid>/export/xlsx                 — assessment workbook
    GET  /api/v1/projects/<pid>/export/docx?type=executive|technical
    POST /api/v1/import                                     — JSON body or multipart ``file``
    GET  /api/v1/storage                                    — bytes used / available
    POST /api/v1/storage/purge                              — drop non-JSON entries

File content is generated in memory and streamed back with a
Content-Disposition header.
"""

import logging
import re

from flask import Blueprint, Response, current_app, jsonify, request

from pp_assessment.blueprints import get_project_service, register_error_handlers
from pp_assessment.core.exceptions import ImportFormatError
from pp_assessment.services.export_service import XLSX_MIMETYPE, export_json, generate_assessment_excel, parse_import
from pp_assessment.services.persistence import purge_corrupted_entries
from pp_assessment.services.word_export import (
    DOCX_MIMETYPE,
    generate_executive_summary,
    generate_technical_guide,
)

logger = logging.getLogger(__name__)

export_bp = Blueprint("export", __name__, url_prefix="/api/v1")
register_error_handlers(export_bp)


def _safe_name(name: str) -> str:
    return re.sub(r"[^A-Za-z0-9_-]+", "_", name).strip("_") or "assessment"


def _attachment(content, mimetype: str, filename: str) -> Response:
    return Response(
        content,
        mimetype=mimetype,
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


# ═══════════════════════════════════════════════════════════════════════════
#  EXPORT
# ═══════════════════════════════════════════════════════════════════════════

@export_bp.route("/export/json", methods=["GET"])
def export_all_json():
    service = get_project_service()
    now = service.clock()
    content = export_json(service.export_projects(), now=now)
    filename = f"power-platform-assessments-{now.strftime('%Y-%m-%d')}.json"
    return _attachment(content, "application/json", filename)


@export_bp.route("/projects/<project_id>/export/json", methods=["GET"])
def export_project_json(project_id):
    service = get_project_service()
    now = service.clock()
    projects = service.export_projects([project_id])
    filename = f"{_safe_name(projects[0].name)}-{now.strftime('%Y-%m-%d')}.json"
    return _attachment(export_json(projects, now=now), "application/json", filename)


@export_bp.route("/projects/<project_id>/export/xlsx", methods=["GET"])
def export_project_xlsx(project_id):
    service = get_project_service()
    project = service.get_project(project_id)
    now = service.clock()
    content = generate_assessment_excel(project, now=now)
    filename = f"{_safe_name(project.name)}_Assessment_{now.strftime('%Y%m%d')}.xlsx"
    return _attachment(content, XLSX_MIMETYPE, filename)


@export_bp.route("/projects/<project_id>/export/docx", methods=["GET"])
def export_project_docx(project_id):
    """Word report.

    Query params:
        type: executive (default) | technical
    """
    doc_type = request.args.get("type", "executive").lower()
    if doc_type not in ("executive", "technical"):
        return jsonify({
            "error": "Unsupported document type. Supported values: executive, technical.",
            "code": "INVALID_TYPE",
        }), 400

    service = get_project_service()
    project = service.get_project(project_id)
    now = service.clock()
    if doc_type == "executive":
        content = generate_executive_summary(project, now=now)
        filename = f"{_safe_name(project.name)}_Executive_Summary.docx"
    else:
        content = generate_technical_guide(project, now=now)
        filename = f"{_safe_name(project.name)}_Technical_Guide.docx"
    return _attachment(content, DOCX_MIMETYPE, filename)


# ═══════════════════════════════════════════════════════════════════════════
#  IMPORT
# ═══════════════════════════════════════════════════════════════════════════

@export_bp.route("/import", methods=["POST"])
def import_projects():
    """Import an export envelope; projects are upserted by id."""
    upload = request.files.get("file")
    if upload is not None:
        payload = upload.read()
    else:
        payload = request.get_data()
    if not payload:
        raise ImportFormatError("empty payload")

    projects = parse_import(payload)
    ids = get_project_service().import_projects(projects)
    return jsonify({"imported": ids, "total": len(ids)}), 201


# ═══════════════════════════════════════════════════════════════════════════
#  STORAGE
# ═══════════════════════════════════════════════════════════════════════════

@export_bp.route("/storage", methods=["GET"])
def storage_info():
    return jsonify(get_project_service().store.storage_info())


@export_bp.route("/storage/purge", methods=["POST"])
def purge_storage():
    store = get_project_service().store
    removed = purge_corrupted_entries(store.backend, current_app.config["STORAGE_PREFIX"])
    logger.info("Storage purge removed %d entries", len(removed))
    return jsonify({"removed": removed, "total": len(removed)})

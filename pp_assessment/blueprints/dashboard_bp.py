"""
Dashboard blueprint.

Endpoints:
    GET /api/v1/dashboard/sections                  — available sections
    GET /api/v1/projects/<pid>/dashboard            — all sections (?sections=a,b)
    GET /api/v1/projects/<pid>/dashboard/<section>  — one section
"""

import logging

from flask import Blueprint, jsonify, request

from pp_assessment.blueprints import get_project_service, register_error_handlers
from pp_assessment.services.dashboard_service import DashboardEngine

logger = logging.getLogger(__name__)

dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/v1")
register_error_handlers(dashboard_bp)


@dashboard_bp.route("/dashboard/sections", methods=["GET"])
def list_sections():
    return jsonify(DashboardEngine.list_sections())


@dashboard_bp.route("/projects/<project_id>/dashboard", methods=["GET"])
def get_dashboard(project_id):
    raw = request.args.get("sections", "")
    sections = [s.strip() for s in raw.split(",") if s.strip()] or None
    return jsonify(DashboardEngine.build(get_project_service(), project_id, sections))


@dashboard_bp.route("/projects/<project_id>/dashboard/<section>", methods=["GET"])
def get_section(project_id, section):
    service = get_project_service()
    project = service.get_project(project_id)
    return jsonify(DashboardEngine.compute(section, project, service))

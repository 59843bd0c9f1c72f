"""
Task blueprint — adaptive plans, implementation tasks and evidence.

Endpoints summary:
    PLANS     /api/v1/projects/<pid>/plans                          GET, POST (generate)
    TASKS     /api/v1/projects/<pid>/tasks                          GET   (?pillar=&status=)
              /api/v1/projects/<pid>/tasks/<tid>                    GET   (with timeline)
              /api/v1/projects/<pid>/tasks/<tid>/status             PATCH
              /api/v1/projects/<pid>/tasks/<tid>/assign             POST
              /api/v1/projects/<pid>/tasks/<tid>/estimate           PATCH
              /api/v1/projects/<pid>/tasks/<tid>/comments           POST
    EVIDENCE  /api/v1/projects/<pid>/evidence                       GET, POST
"""

import logging

from flask import Blueprint, jsonify, request

from pp_assessment.blueprints import current_user, get_project_service, json_body, register_error_handlers
from pp_assessment.core.exceptions import ValidationError
from pp_assessment.services.task_tracker import task_timeline

logger = logging.getLogger(__name__)

task_bp = Blueprint("tasks", __name__, url_prefix="/api/v1")
register_error_handlers(task_bp)


def _require(data: dict, field: str):
    value = data.get(field)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"{field} is required", details={field: "required"})
    return value


# ═══════════════════════════════════════════════════════════════════════════
#  PLANS
# ═══════════════════════════════════════════════════════════════════════════

@task_bp.route("/projects/<project_id>/plans", methods=["GET"])
def list_plans(project_id):
    project = get_project_service().get_project(project_id)
    plans = sorted(project.plans.values(), key=lambda p: p.priority_score, reverse=True)
    return jsonify({"items": [p.to_dict() for p in plans], "total": len(plans)})


@task_bp.route("/projects/<project_id>/plans", methods=["POST"])
def generate_plans(project_id):
    data = json_body()
    plans = get_project_service().generate_plans(project_id, options=data, user=current_user(data))
    return jsonify({"items": [p.to_dict() for p in plans], "total": len(plans)}), 201


# ═══════════════════════════════════════════════════════════════════════════
#  TASKS
# ═══════════════════════════════════════════════════════════════════════════

@task_bp.route("/projects/<project_id>/tasks", methods=["GET"])
def list_tasks(project_id):
    tasks = get_project_service().list_tasks(
        project_id,
        pillar_id=request.args.get("pillar"),
        status=request.args.get("status"),
    )
    return jsonify({"items": [t.to_dict() for t in tasks], "total": len(tasks)})


@task_bp.route("/projects/<project_id>/tasks/<task_id>", methods=["GET"])
def get_task(project_id, task_id):
    service = get_project_service()
    task = service.get_project(project_id).get_task(task_id)
    return jsonify({**task.to_dict(), "timeline": task_timeline(task, service.clock())})


@task_bp.route("/projects/<project_id>/tasks/<task_id>/status", methods=["PATCH"])
def change_task_status(project_id, task_id):
    data = json_body()
    result = get_project_service().change_task_status(
        project_id, task_id, _require(data, "status"),
        user=current_user(data),
        blocker_notes=data.get("blocker_notes"),
    )
    return jsonify(result)


@task_bp.route("/projects/<project_id>/tasks/<task_id>/assign", methods=["POST"])
def assign_task(project_id, task_id):
    data = json_body()
    task = get_project_service().assign_task(project_id, task_id, _require(data, "member"),
                                             user=current_user(data))
    return jsonify(task.to_dict())


@task_bp.route("/projects/<project_id>/tasks/<task_id>/estimate", methods=["PATCH"])
def update_task_estimate(project_id, task_id):
    data = json_body()
    task = get_project_service().update_task_estimate(
        project_id, task_id, _require(data, "estimated_hours"),
        user=current_user(data),
        reason=data.get("reason"),
    )
    return jsonify(task.to_dict())


@task_bp.route("/projects/<project_id>/tasks/<task_id>/comments", methods=["POST"])
def add_task_comment(project_id, task_id):
    data = json_body()
    task = get_project_service().add_task_comment(project_id, task_id, _require(data, "comment"),
                                                  user=current_user(data))
    return jsonify(task.to_dict()), 201


# ═══════════════════════════════════════════════════════════════════════════
#  EVIDENCE
# ═══════════════════════════════════════════════════════════════════════════

@task_bp.route("/projects/<project_id>/evidence", methods=["GET"])
def list_evidence(project_id):
    project = get_project_service().get_project(project_id)
    return jsonify({
        title: [f.to_dict() for f in files] for title, files in project.evidence.items()
    })


@task_bp.route("/projects/<project_id>/evidence", methods=["POST"])
def upload_evidence(project_id):
    """Record evidence file metadata for a recommendation.

    Body: {"recommendation_title": str, "files": [{"name", "size", "content_type"}]}
    """
    data = json_body()
    files = data.get("files") or []
    if not isinstance(files, list) or not all(isinstance(f, dict) for f in files):
        raise ValidationError("files must be a list of objects", details={"files": "invalid"})
    uploaded = get_project_service().upload_evidence(
        project_id, _require(data, "recommendation_title"), files, user=current_user(data),
    )
    return jsonify([f.to_dict() for f in uploaded]), 201

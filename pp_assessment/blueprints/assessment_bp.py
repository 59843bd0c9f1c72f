"""
Assessment blueprint — projects, responses, scores, baseline and gap closure.

Endpoints summary:
    CATALOG   /api/v1/catalog/pillars                               GET
    PROJECT   /api/v1/projects                                      GET, POST
              /api/v1/projects/<pid>                                GET, PUT, DELETE
    RESPONSE  /api/v1/projects/<pid>/responses/<qid>                PUT, DELETE
              /api/v1/projects/<pid>/questions/<qid>/metadata       PUT
              /api/v1/projects/<pid>/demo                           POST
    SCORES    /api/v1/projects/<pid>/scores                         GET
    BASELINE  /api/v1/projects/<pid>/baseline                       GET, POST (ensure)
              /api/v1/projects/<pid>/baseline/reset                 POST
    GAPS      /api/v1/projects/<pid>/snapshot                       GET
              /api/v1/projects/<pid>/gap-closure                    GET
    ADVICE    /api/v1/projects/<pid>/recommendations                GET
              /api/v1/projects/<pid>/security                       GET
              /api/v1/projects/<pid>/compliance                     GET
"""

import logging

from flask import Blueprint, jsonify

from pp_assessment.blueprints import current_user, get_project_service, json_body, register_error_handlers
from pp_assessment.core.exceptions import NotFoundError, ValidationError
from pp_assessment.services.catalog import PILLARS
from pp_assessment.services.recommendations import calculate_security_score, perform_compliance_check
from pp_assessment.services.scoring_engine import assess_maturity

logger = logging.getLogger(__name__)

assessment_bp = Blueprint("assessment", __name__, url_prefix="/api/v1")
register_error_handlers(assessment_bp)


# ═══════════════════════════════════════════════════════════════════════════
#  CATALOG
# ═══════════════════════════════════════════════════════════════════════════

@assessment_bp.route("/catalog/pillars", methods=["GET"])
def list_pillars():
    return jsonify([p.to_dict() for p in PILLARS])


# ═══════════════════════════════════════════════════════════════════════════
#  PROJECT CRUD
# ═══════════════════════════════════════════════════════════════════════════

@assessment_bp.route("/projects", methods=["GET"])
def list_projects():
    projects = get_project_service().list_projects()
    return jsonify({"items": [p.summary() for p in projects], "total": len(projects)})


@assessment_bp.route("/projects", methods=["POST"])
def create_project():
    data = json_body()
    project = get_project_service().create_project(
        data.get("name", ""),
        client_name=data.get("client_name", ""),
        assessor=data.get("assessor"),
        organization_factors=data.get("organization_factors"),
    )
    return jsonify(project.to_dict()), 201


@assessment_bp.route("/projects/<project_id>", methods=["GET"])
def get_project(project_id):
    return jsonify(get_project_service().get_project(project_id).to_dict())


@assessment_bp.route("/projects/<project_id>", methods=["PUT"])
def update_project(project_id):
    project = get_project_service().update_project(project_id, json_body())
    return jsonify(project.summary())


@assessment_bp.route("/projects/<project_id>", methods=["DELETE"])
def delete_project(project_id):
    get_project_service().delete_project(project_id)
    return jsonify({"message": "Project deleted"}), 200


# ═══════════════════════════════════════════════════════════════════════════
#  RESPONSES
# ═══════════════════════════════════════════════════════════════════════════

@assessment_bp.route("/projects/<project_id>/responses/<question_id>", methods=["PUT"])
def set_response(project_id, question_id):
    data = json_body()
    if "value" not in data:
        raise ValidationError("value is required", details={"value": "required"})
    result = get_project_service().set_response(project_id, question_id, data["value"],
                                                user=current_user(data))
    return jsonify(result)


@assessment_bp.route("/projects/<project_id>/responses/<question_id>", methods=["DELETE"])
def clear_response(project_id, question_id):
    result = get_project_service().clear_response(project_id, question_id, user=current_user())
    return jsonify(result)


@assessment_bp.route("/projects/<project_id>/questions/<question_id>/metadata", methods=["PUT"])
def update_question_metadata(project_id, question_id):
    data = json_body()
    result = get_project_service().update_question_metadata(
        project_id, question_id,
        note=data.get("note"),
        risk_owner=data.get("risk_owner"),
        developer_note=data.get("developer_note"),
    )
    return jsonify(result)


@assessment_bp.route("/projects/<project_id>/demo", methods=["POST"])
def load_demo_data(project_id):
    project = get_project_service().load_demo_data(project_id, user=current_user(json_body()))
    return jsonify(project.summary())


# ═══════════════════════════════════════════════════════════════════════════
#  SCORES & BASELINE
# ═══════════════════════════════════════════════════════════════════════════

@assessment_bp.route("/projects/<project_id>/scores", methods=["GET"])
def get_scores(project_id):
    project = get_project_service().get_project(project_id)
    overall = project.overall_score()
    return jsonify({
        "overall": round(overall, 2),
        "pillars": [row.to_dict() for row in project.score_rows()],
        "maturity": assess_maturity(overall, project.responses).to_dict(),
    })


@assessment_bp.route("/projects/<project_id>/baseline", methods=["GET"])
def get_baseline(project_id):
    project = get_project_service().get_project(project_id)
    if project.baseline is None:
        raise NotFoundError(resource="Baseline", resource_id=project_id)
    return jsonify(project.baseline.to_dict())


@assessment_bp.route("/projects/<project_id>/baseline", methods=["POST"])
def ensure_baseline(project_id):
    baseline = get_project_service().ensure_baseline(project_id, user=current_user(json_body()))
    return jsonify(baseline.to_dict())


@assessment_bp.route("/projects/<project_id>/baseline/reset", methods=["POST"])
def reset_baseline(project_id):
    baseline = get_project_service().reset_baseline(project_id, user=current_user(json_body()))
    return jsonify(baseline.to_dict())


@assessment_bp.route("/projects/<project_id>/snapshot", methods=["GET"])
def get_snapshot(project_id):
    return jsonify(get_project_service().current_snapshot(project_id).to_dict())


@assessment_bp.route("/projects/<project_id>/gap-closure", methods=["GET"])
def get_gap_closure(project_id):
    return jsonify(get_project_service().gap_closure(project_id).to_dict())


# ═══════════════════════════════════════════════════════════════════════════
#  RECOMMENDATIONS, SECURITY & COMPLIANCE
# ═══════════════════════════════════════════════════════════════════════════

@assessment_bp.route("/projects/<project_id>/recommendations", methods=["GET"])
def list_recommendations(project_id):
    recs = get_project_service().recommendations(project_id)
    return jsonify({"items": [r.to_dict() for r in recs], "total": len(recs)})


@assessment_bp.route("/projects/<project_id>/security", methods=["GET"])
def get_security_score(project_id):
    project = get_project_service().get_project(project_id)
    result = calculate_security_score(project.responses)
    result["recommendations"] = [r.to_dict() for r in result["recommendations"]]
    return jsonify(result)


@assessment_bp.route("/projects/<project_id>/compliance", methods=["GET"])
def get_compliance(project_id):
    project = get_project_service().get_project(project_id)
    return jsonify(perform_compliance_check(project.responses))

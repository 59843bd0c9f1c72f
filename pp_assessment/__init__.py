"""
Power Platform Governance Assessment
Flask Application Factory.

Usage:
    from pp_assessment import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask
from flask_cors import CORS

from pp_assessment.config import config
from pp_assessment.middleware.error_reporting import ErrorReporter, init_error_handlers
from pp_assessment.middleware.logging_config import configure_logging
from pp_assessment.middleware.timing import init_request_timing
from pp_assessment.models import db
from pp_assessment.services.persistence import AssessmentStore, SqlStorage, purge_corrupted_entries
from pp_assessment.services.project_service import ProjectService

logger = logging.getLogger(__name__)


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    # ProductionConfig validates its environment on instantiation
    app.config.from_object(config[config_name]())

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Request timing middleware ────────────────────────────────────────
    init_request_timing(app)

    # ── Import models so create_all sees them ────────────────────────────
    from pp_assessment.models import storage as _storage_models  # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    with app.app_context():
        try:
            db.create_all()
            app.logger.info("db.create_all() completed successfully")
        except Exception as e:
            app.logger.warning("db.create_all() failed: %s", e)

    # ── Assessment services ──────────────────────────────────────────────
    storage_prefix = app.config["STORAGE_PREFIX"]
    store = AssessmentStore(SqlStorage(), key=app.config["STORAGE_KEY"],
                            version=app.config["STORAGE_VERSION"])
    reporter = ErrorReporter(on_storage_corruption=lambda: purge_corrupted_entries(SqlStorage(), storage_prefix))
    app.extensions["assessment_store"] = store
    app.extensions["error_reporter"] = reporter
    app.extensions["project_service"] = ProjectService(
        store,
        error_reporter=reporter,
        environment_id=app.config["AUDIT_ENVIRONMENT_ID"],
    )

    # ── Error handlers ───────────────────────────────────────────────────
    init_error_handlers(app)

    # ── Blueprints ───────────────────────────────────────────────────────
    from pp_assessment.blueprints.assessment_bp import assessment_bp
    from pp_assessment.blueprints.audit_bp import audit_bp
    from pp_assessment.blueprints.dashboard_bp import dashboard_bp
    from pp_assessment.blueprints.export_bp import export_bp
    from pp_assessment.blueprints.health_bp import health_bp
    from pp_assessment.blueprints.task_bp import task_bp

    app.register_blueprint(assessment_bp)
    app.register_blueprint(task_bp)
    app.register_blueprint(audit_bp)
    app.register_blueprint(dashboard_bp)
    app.register_blueprint(export_bp)
    app.register_blueprint(health_bp)

    logger.info("Application started", extra={"event_type": "startup"})
    return app

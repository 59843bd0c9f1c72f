"""
Service configuration, selected by APP_ENV.

    config[os.getenv("APP_ENV", "development")]

All classes share the assessment storage keys; they differ in database URL,
debug flags and the environment id stamped on audit entries.
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))


def _database_url(default=None):
    """DATABASE_URL normalised for SQLAlchemy 2.x (``postgres://`` is rejected)."""
    raw = os.getenv("DATABASE_URL", "")
    if not raw:
        return default
    return raw.replace("postgres://", "postgresql://", 1)


class Config:
    """Settings common to every environment."""

    SECRET_KEY = os.getenv("SECRET_KEY", secrets.token_hex(32))
    DEBUG = False
    TESTING = False

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True}

    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    # Blob key, backup is STORAGE_KEY + "-backup"
    STORAGE_KEY = "power-platform-assessments"
    # Keys under this prefix are candidates for the corruption purge
    STORAGE_PREFIX = os.getenv("STORAGE_PREFIX", "power-platform-assessment")
    STORAGE_VERSION = "1.0.0"

    AUDIT_ENVIRONMENT_ID = os.getenv("AUDIT_ENVIRONMENT_ID", "production")

    # JSON imports and evidence metadata
    MAX_CONTENT_LENGTH = 5 * 1024 * 1024


class DevelopmentConfig(Config):
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = _database_url(
        f"sqlite:///{os.path.join(basedir, 'instance', 'pp_assessment_dev.db')}"
    )
    AUDIT_ENVIRONMENT_ID = os.getenv("AUDIT_ENVIRONMENT_ID", "development")


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", "sqlite:///:memory:")
    AUDIT_ENVIRONMENT_ID = "testing"


class ProductionConfig(Config):
    """Requires DATABASE_URL and SECRET_KEY; CORS origins must be explicit."""

    SQLALCHEMY_DATABASE_URI = _database_url()
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_recycle": 300,
    }

    def __init__(self):
        if not self.SQLALCHEMY_DATABASE_URI:
            raise RuntimeError("DATABASE_URL environment variable is required in production")
        if not os.getenv("SECRET_KEY"):
            raise RuntimeError("SECRET_KEY environment variable must be set in production")


config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}

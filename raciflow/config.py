"""
raciflow — Process & RACI Mapping Service
Configuration classes for the Flask app factory.

Selected by name (``create_app("testing")``) or by the APP_ENV env var.
Every setting can be overridden from the environment.
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

_SQLITE_DEV = f"sqlite:///{os.path.join(basedir, 'instance', 'raciflow_dev.db')}"
_SQLITE_TEST = "sqlite:///:memory:"


def _database_url():
    # Heroku-style postgres:// URLs are rejected by SQLAlchemy 2.x
    raw = os.getenv("DATABASE_URL", "")
    return raw.replace("postgres://", "postgresql://", 1) if raw else None


def _branch_labels():
    return {
        "yes": os.getenv("DIAGRAM_LABEL_YES", "Yes"),
        "no": os.getenv("DIAGRAM_LABEL_NO", "No"),
        "both": os.getenv("DIAGRAM_LABEL_BOTH", "Yes/No"),
    }


class Config:
    """Settings shared by every environment."""

    SECRET_KEY = os.getenv("SECRET_KEY") or secrets.token_hex(32)
    DEBUG = False
    TESTING = False

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_FORMAT = os.getenv("LOG_FORMAT", "readable")

    # Flask-Limiter; writes = organization + process routes, reads = RACI views / exports
    RATELIMIT_STORAGE_URI = os.getenv("RATELIMIT_STORAGE_URI", "memory://")
    RATELIMIT_WRITE = os.getenv("RATELIMIT_WRITE", "60/minute")
    RATELIMIT_READ = os.getenv("RATELIMIT_READ", "200/minute")

    # Step payloads are small; 2 MB leaves room for large organizations
    MAX_CONTENT_LENGTH = int(os.getenv("MAX_CONTENT_LENGTH", 2 * 1024 * 1024))

    DEFAULT_PROCESS_TITLE = os.getenv("DEFAULT_PROCESS_TITLE", "Process steps")
    DIAGRAM_DEFAULT_DIRECTION = os.getenv("DIAGRAM_DEFAULT_DIRECTION", "TD").upper()
    DIAGRAM_BRANCH_LABELS = _branch_labels()


class DevelopmentConfig(Config):
    DEBUG = True
    LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG")
    SQLALCHEMY_DATABASE_URI = _database_url() or _SQLITE_DEV


class TestingConfig(Config):
    TESTING = True
    LOG_LEVEL = os.getenv("LOG_LEVEL", "WARNING")
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", _SQLITE_TEST)
    RATELIMIT_ENABLED = False


class ProductionConfig(Config):
    LOG_FORMAT = os.getenv("LOG_FORMAT", "json")
    SQLALCHEMY_DATABASE_URI = _database_url()
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")  # explicit origins only

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

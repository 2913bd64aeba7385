"""
Procurement Desk
Configuration classes for Flask App Factory.

Usage:
    config_name = os.getenv("APP_ENV", "development")
    app.config.from_object(config[config_name])
"""

import os
import secrets

# Relative SQLite paths resolve inside the Flask instance folder (created on demand)
_SQLITE_DEV = "sqlite:///procurement_desk_dev.db"
_SQLITE_TEST = "sqlite:///:memory:"

# Generate a random key for development; production MUST use a stable env var
_DEV_SECRET = secrets.token_hex(32)


def _field(name: str, default: str) -> str:
    """Jira custom field id, overridable as JIRA_FIELD_<NAME>."""
    return os.getenv(f"JIRA_FIELD_{name.upper()}", default)


class Config:
    """Base configuration shared across all environments."""

    SECRET_KEY = os.getenv("SECRET_KEY", _DEV_SECRET)
    DEBUG = False
    TESTING = False

    # SQLAlchemy
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,   # recycle connections every 5 min
    }

    # CORS
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    # Rate limiting storage (memory:// keeps it in-process)
    RATELIMIT_STORAGE_URI = os.getenv("RATELIMIT_STORAGE_URI", "memory://")

    # ── Ticket store (Jira Cloud REST v3) ────────────────────────────────
    JIRA_BASE_URL = os.getenv("JIRA_BASE_URL", "")
    JIRA_EMAIL = os.getenv("JIRA_EMAIL", "")
    JIRA_API_TOKEN = os.getenv("JIRA_API_TOKEN", "")
    JIRA_PROJECT_KEY = os.getenv("JIRA_PROJECT_KEY", "PROC")
    JIRA_TIMEOUT_SECONDS = int(os.getenv("JIRA_TIMEOUT_SECONDS", "30"))

    # Status label the workflow treats as terminal
    COMPLETED_STATUS_LABEL = os.getenv("COMPLETED_STATUS_LABEL", "Completed")

    # Logical field name -> Jira custom field id
    JIRA_FIELDS = {
        "requester_name": _field("requester_name", "customfield_10243"),
        "department": _field("department", "customfield_10244"),
        "requester_email": _field("requester_email", "customfield_10246"),
        "vendor_name": _field("vendor_name", "customfield_10290"),
        "product_name": _field("product_name", "customfield_10291"),
        "billing_type": _field("billing_type", "customfield_10292"),
        "current_license_count": _field("current_license_count", "customfield_10293"),
        "current_usage_count": _field("current_usage_count", "customfield_10294"),
        "current_units": _field("current_units", "customfield_10295"),
        "new_license_count": _field("new_license_count", "customfield_10296"),
        "new_usage_count": _field("new_usage_count", "customfield_10297"),
        "new_units": _field("new_units", "customfield_10298"),
        "vendor_contract_type": _field("vendor_contract_type", "customfield_10299"),
        "license_update_type": _field("license_update_type", "customfield_10300"),
        "existing_contract_id": _field("existing_contract_id", "customfield_10301"),
        "due_date": _field("due_date", "customfield_10302"),
        "renewal_date": _field("renewal_date", "customfield_10303"),
        "additional_comment": _field("additional_comment", "customfield_10304"),
        "contract_duration": _field("contract_duration", "customfield_10305"),
        "total_optimized_cost": _field("total_optimized_cost", "customfield_10306"),
        "total_profit": _field("total_profit", "customfield_10307"),
        "organization": _field("organization", "customfield_10337"),
    }

    # Live notification stream
    NOTIFICATION_QUEUE_SIZE = int(os.getenv("NOTIFICATION_QUEUE_SIZE", "100"))
    NOTIFICATION_STREAM_HEARTBEAT_SECONDS = int(os.getenv("NOTIFICATION_STREAM_HEARTBEAT_SECONDS", "15"))


class DevelopmentConfig(Config):
    """Development environment configuration."""

    DEBUG = True
    _raw_db_url = os.getenv("DATABASE_URL", "")
    SQLALCHEMY_DATABASE_URI = (
        _raw_db_url.replace("postgres://", "postgresql://", 1) if _raw_db_url else _SQLITE_DEV
    )


class TestingConfig(Config):
    """Testing environment configuration."""

    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", _SQLITE_TEST)
    SQLALCHEMY_ENGINE_OPTIONS = {}
    RATELIMIT_ENABLED = False
    JIRA_BASE_URL = "https://jira.test.local"
    JIRA_EMAIL = "bot@test.local"
    JIRA_API_TOKEN = "test-token"
    NOTIFICATION_QUEUE_SIZE = 10


class ProductionConfig(Config):
    """Production environment configuration."""

    DEBUG = False
    # Railway/Heroku use postgres:// but SQLAlchemy 2.0 requires postgresql://
    _raw_db_url = os.getenv("DATABASE_URL", "")
    SQLALCHEMY_DATABASE_URI = _raw_db_url.replace("postgres://", "postgresql://", 1) if _raw_db_url else None
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")  # Must be set explicitly in production

    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_recycle": 300,
        "pool_timeout": 20,
    }

    def __init__(self):
        if not self.SQLALCHEMY_DATABASE_URI:
            raise RuntimeError("DATABASE_URL environment variable is required in production")
        if not os.getenv("SECRET_KEY"):
            raise RuntimeError("SECRET_KEY environment variable must be set in production")
        if not (self.JIRA_BASE_URL and self.JIRA_EMAIL and self.JIRA_API_TOKEN):
            raise RuntimeError("JIRA_BASE_URL, JIRA_EMAIL and JIRA_API_TOKEN must be set in production")


# Configuration mapping: environment name -> config class
config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}

"""
Daily Score Engine
Configuration classes for Flask App Factory.

Usage:
    config_name = os.getenv("APP_ENV", "development")
    app.config.from_object(config[config_name])
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

# Default SQLite path for local dev when PostgreSQL is not running
_SQLITE_DEV = f"sqlite:///{os.path.join(basedir, 'instance', 'dailyscore_dev.db')}"
_SQLITE_TEST = "sqlite:///:memory:"

# Generate a random key for development; production MUST use a stable env var
_DEV_SECRET = secrets.token_hex(32)


def _normalize_db_url(raw):
    """Railway/Heroku hand out postgres://; SQLAlchemy needs an explicit psycopg driver."""
    if not raw:
        return None
    for prefix in ("postgres://", "postgresql://"):
        if raw.startswith(prefix):
            return "postgresql+psycopg://" + raw[len(prefix):]
    return raw


def _int_env(name, default):
    try:
        return int(os.getenv(name, default))
    except (TypeError, ValueError):
        return default


class Config:
    """Base configuration shared across all environments."""

    SECRET_KEY = os.getenv("SECRET_KEY", _DEV_SECRET)
    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY")
    JWT_ISSUER = os.getenv("JWT_ISSUER", "")
    JWT_AUDIENCE = os.getenv("JWT_AUDIENCE", "")
    JWT_ACCESS_EXPIRES = _int_env("JWT_ACCESS_EXPIRES", 900)
    DEBUG = False
    TESTING = False

    # SQLAlchemy
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,   # recycle connections every 5 min
    }

    # Redis (leaderboard cache, rate limiter storage)
    REDIS_URL = os.getenv("REDIS_URL", "memory://")

    # CORS
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    # Identity: accept X-Person-Id / X-Person-Role from a trusted upstream
    TRUST_IDENTITY_HEADERS = os.getenv("TRUST_IDENTITY_HEADERS", "false").lower() == "true"

    # Scoring
    DEFAULT_CRITICALITY_POINTS = {
        "low": _int_env("POINTS_LOW", 5),
        "medium": _int_env("POINTS_MEDIUM", 10),
        "high": _int_env("POINTS_HIGH", 20),
        "critical": _int_env("POINTS_CRITICAL", 40),
    }
    COMPLETION_MAX_RETRIES = _int_env("COMPLETION_MAX_RETRIES", 3)

    # Calendar day used for "today" (IANA name; empty = server local date)
    BUSINESS_TIMEZONE = os.getenv("BUSINESS_TIMEZONE", "")

    # Alerts / leaderboard
    SLOW_REQUEST_MS = _int_env("SLOW_REQUEST_MS", 1000)
    ALERT_LIST_LIMIT = _int_env("ALERT_LIST_LIMIT", 50)
    LEADERBOARD_CACHE_TTL = _int_env("LEADERBOARD_CACHE_TTL", 30)

    # Rate limits (per person, falling back to client address)
    COMPLETION_RATE_LIMIT = os.getenv("COMPLETION_RATE_LIMIT", "60/minute")
    ADMIN_RATE_LIMIT = os.getenv("ADMIN_RATE_LIMIT", "120/minute")
    READ_RATE_LIMIT = os.getenv("READ_RATE_LIMIT", "200/minute")


class DevelopmentConfig(Config):
    """Development environment configuration."""

    DEBUG = True
    SQLALCHEMY_DATABASE_URI = _normalize_db_url(os.getenv("DATABASE_URL")) or _SQLITE_DEV
    TRUST_IDENTITY_HEADERS = os.getenv("TRUST_IDENTITY_HEADERS", "true").lower() == "true"


class TestingConfig(Config):
    """Testing environment configuration."""

    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", _SQLITE_TEST)
    SQLALCHEMY_ENGINE_OPTIONS = {}
    TRUST_IDENTITY_HEADERS = True
    RATELIMIT_ENABLED = False
    LEADERBOARD_CACHE_TTL = 0
    REDIS_URL = "memory://"
    BUSINESS_TIMEZONE = ""


class ProductionConfig(Config):
    """Production environment configuration."""

    DEBUG = False
    SQLALCHEMY_DATABASE_URI = _normalize_db_url(os.getenv("DATABASE_URL"))
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")  # Must be set explicitly in production

    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_recycle": 300,
        "pool_timeout": 20,
        "connect_args": {
            "options": "-c statement_timeout=30000",  # 30s query timeout
        },
    }

    def __init__(self):
        if not self.SQLALCHEMY_DATABASE_URI:
            raise RuntimeError("DATABASE_URL environment variable is required in production")
        if not os.getenv("SECRET_KEY"):
            raise RuntimeError("SECRET_KEY environment variable must be set in production")
        if self.BUSINESS_TIMEZONE:
            from zoneinfo import ZoneInfo

            ZoneInfo(self.BUSINESS_TIMEZONE)  # raises on an unknown zone name


# Configuration mapping: environment name -> config class
config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}

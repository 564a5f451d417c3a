"""
DACUM Competency Profile Platform
Configuration classes for Flask App Factory.

Usage:
    config_name = os.getenv("APP_ENV", "development")
    app.config.from_object(config[config_name])
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

# Default SQLite path for local dev when PostgreSQL is not running
_SQLITE_DEV = f"sqlite:///{os.path.join(basedir, 'instance', 'dacum_dev.db')}"
_SQLITE_TEST = "sqlite:///:memory:"

# Generate a random key for development; production MUST use a stable env var
_DEV_SECRET = secrets.token_hex(32)


def _env_float(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


class Config:
    """Base configuration shared across all environments."""

    SECRET_KEY = os.getenv("SECRET_KEY", _DEV_SECRET)
    DEBUG = False
    TESTING = False

    # SQLAlchemy
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True}

    # Request limits
    MAX_CONTENT_LENGTH = 5 * 1024 * 1024  # 5 MB

    # CORS
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    # Storage backend: "sql" (Flask-SQLAlchemy) or "memory" (single process)
    STORE_BACKEND = os.getenv("STORE_BACKEND", "sql")

    # Clustering
    CLUSTER_SIMILARITY_THRESHOLD = _env_float("CLUSTER_SIMILARITY_THRESHOLD", 0.55)
    CLUSTER_MIN_SIZE = _env_int("CLUSTER_MIN_SIZE", 2)
    CLUSTER_STABLE_MIN_SIZE = _env_int("CLUSTER_STABLE_MIN_SIZE", 3)
    CLUSTER_MAX_CLUSTERS = _env_int("CLUSTER_MAX_CLUSTERS", 12)

    # Matching
    MATCH_TOP_K = _env_int("MATCH_TOP_K", 3)
    MATCH_ACCEPT_THRESHOLD = _env_float("MATCH_ACCEPT_THRESHOLD", 0.78)
    EMBED_BATCH_SIZE = _env_int("EMBED_BATCH_SIZE", 200)

    # Requests slower than this log a warning
    SLOW_REQUEST_MS = _env_int("SLOW_REQUEST_MS", 3000)

    # AI gateway (provider keys are read from the environment by the gateway)
    AI_GENERATION_ENABLED = os.getenv("AI_GENERATION_ENABLED", "true").lower() == "true"
    LLM_DEFAULT_CHAT_MODEL = os.getenv("LLM_DEFAULT_CHAT_MODEL", "gemini-2.5-flash")
    LLM_DEFAULT_EMBED_MODEL = os.getenv("LLM_DEFAULT_EMBED_MODEL", "gemini-embedding-001")
    LLM_MAX_RETRIES = _env_int("LLM_MAX_RETRIES", 3)
    PROMPTS_DIR = os.getenv("PROMPTS_DIR")

    # Reference catalog source (JSON page file); unset disables builds
    CATALOG_SOURCE_FILE = os.getenv("CATALOG_SOURCE_FILE")


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
    STORE_BACKEND = "sql"
    AI_GENERATION_ENABLED = False
    LLM_MAX_RETRIES = 1
    CATALOG_SOURCE_FILE = None
    PROMPTS_DIR = None


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


# Configuration mapping: environment name -> config class
config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}

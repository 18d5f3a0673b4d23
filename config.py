"""
Application configuration — environment-aware settings.

All environment variables are documented here. See .env.example for a template.
"""

from __future__ import annotations

import os
import warnings
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).parent

load_dotenv(BASE_DIR / ".env")


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class BaseConfig:
    # Core Flask
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-key-change-in-production")
    # Database: path of the SQLite file holding the record store
    DATABASE = os.environ.get("DATABASE_URL", str(BASE_DIR / "eduadapt.db"))

    # Session security
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"
    PERMANENT_SESSION_LIFETIME = 86400

    # Content generation (Gemini)
    GOOGLE_API_KEY = os.environ.get("GOOGLE_API_KEY", "")
    GEMINI_MODEL = os.environ.get("GEMINI_MODEL", "gemini-2.5-flash")
    GENERATION_TIMEOUT_SECONDS = int(os.environ.get("GENERATION_TIMEOUT_SECONDS", "30"))
    # A stale in-flight marker is ignored after timeout + grace
    IN_FLIGHT_GRACE_SECONDS = int(os.environ.get("IN_FLIGHT_GRACE_SECONDS", "15"))

    # Student onboarding
    WEAK_AREA_SLOTS = int(os.environ.get("WEAK_AREA_SLOTS", "2"))
    ASSESSMENT_SIZE = int(os.environ.get("ASSESSMENT_SIZE", "10"))

    # Teacher lookup: reserved demo code with canned data
    DEMO_CODE_ENABLED = _env_bool("DEMO_CODE_ENABLED", True)

    # Logging
    LOG_FORMAT = os.environ.get("LOG_FORMAT", "text")  # "json" or "text"
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")


class DevelopmentConfig(BaseConfig):
    DEBUG = True
    LOG_FORMAT = os.environ.get("LOG_FORMAT", "text")


class ProductionConfig(BaseConfig):
    DEBUG = False
    LOG_FORMAT = os.environ.get("LOG_FORMAT", "json")
    SESSION_COOKIE_SECURE = True
    DEMO_CODE_ENABLED = _env_bool("DEMO_CODE_ENABLED", False)

    @classmethod
    def validate(cls):
        """Fail fast on missing or insecure configuration in production."""
        errors: list[str] = []

        if cls.SECRET_KEY in ("dev-key-change-in-production", ""):
            errors.append("SECRET_KEY must be set to a secure value in production.")

        if cls.GENERATION_TIMEOUT_SECONDS <= 0:
            errors.append("GENERATION_TIMEOUT_SECONDS must be positive.")

        if cls.WEAK_AREA_SLOTS < 1:
            errors.append("WEAK_AREA_SLOTS must be at least 1.")

        if not cls.GOOGLE_API_KEY:
            warnings.warn("GOOGLE_API_KEY is not set; lessons will use offline fallbacks.")

        if errors:
            raise RuntimeError(
                "Production configuration errors:\n" + "\n".join(f"  - {e}" for e in errors)
            )


class TestingConfig(BaseConfig):
    TESTING = True
    GENERATION_TIMEOUT_SECONDS = 5


config_by_name = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
}

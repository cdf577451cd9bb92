"""
API configuration and settings management.
"""
import os
from typing import List, Optional


def _env_list(name: str, default: str = "") -> List[str]:
    raw = os.getenv(name, default)
    return [part.strip() for part in raw.split(",") if part.strip()]


def _env_bool(name: str, default: bool) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


class Config:
    """Application configuration."""

    # Database
    DB_PATH: str = os.getenv("BAZAAR_DB", "./data/db/bazaar.db")

    # API settings
    API_TITLE: str = "Bazaar Marketplace API"
    API_VERSION: str = "1.0.0"
    API_DESCRIPTION: str = "REST API for peer-to-peer classifieds and donation listings"

    # Environment
    APP_ENV: str = os.getenv("APP_ENV", "production")
    DEBUG: bool = _env_bool("DEBUG", APP_ENV == "development")

    # CORS settings
    CORS_ORIGINS: list = _env_list("CORS_ORIGINS", "*")
    CORS_ALLOW_CREDENTIALS: bool = True
    CORS_ALLOW_METHODS: list = ["*"]
    CORS_ALLOW_HEADERS: list = ["*"]

    # Pagination defaults
    DEFAULT_API_LIMIT: int = 50
    MAX_API_LIMIT: int = 500
    EXPORT_LIMIT: int = 10000

    # Identity provider
    IDENTITY_JWT_SECRET: str = os.getenv("IDENTITY_JWT_SECRET", "")
    IDENTITY_JWT_ALGORITHMS: list = _env_list("IDENTITY_JWT_ALGORITHMS", "HS256")
    IDENTITY_JWT_AUDIENCE: Optional[str] = os.getenv("IDENTITY_JWT_AUDIENCE") or None
    IDENTITY_JWT_ISSUER: Optional[str] = os.getenv("IDENTITY_JWT_ISSUER") or None
    ADMIN_EMAILS: list = [e.lower() for e in _env_list("ADMIN_EMAILS")]

    # Listings
    DEFAULT_COUNTRY_CODE: str = os.getenv("DEFAULT_COUNTRY_CODE", "+254")
    COUNT_VIEWS_ON_READ: bool = _env_bool("COUNT_VIEWS_ON_READ", True)

    # Analytics
    ANALYTICS_CACHE_TTL: int = int(os.getenv("ANALYTICS_CACHE_TTL", "0"))
    TOP_CATEGORIES_LIMIT: int = int(os.getenv("TOP_CATEGORIES_LIMIT", "5"))
    NEW_USER_WINDOW_DAYS: int = 30
    GROWTH_MONTHS: int = 6

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_FILE: Optional[str] = os.getenv("LOG_FILE") or None

    @classmethod
    def validate(cls) -> None:
        """Validate configuration on startup."""
        if not cls.DB_PATH:
            raise ValueError("Database path not configured")
        if not cls.IDENTITY_JWT_SECRET and not cls.DEBUG:
            raise ValueError("IDENTITY_JWT_SECRET must be set outside development")
        if cls.ANALYTICS_CACHE_TTL < 0:
            raise ValueError("ANALYTICS_CACHE_TTL cannot be negative")
        db_dir = os.path.dirname(cls.DB_PATH)
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)


# Global config instance
config = Config()

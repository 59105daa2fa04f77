from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

_DEFAULT_ORIGINS = "http://localhost:3000,http://127.0.0.1:3000"


def _env_bool(name: str, default: bool) -> bool:
    """Parse a boolean flag from the environment."""
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    firebase_project_id: str | None
    firebase_credentials: str | None
    firebase_storage_bucket: str | None
    firebase_web_api_key: str | None
    auth_cookie_name: str
    session_max_age_seconds: int
    cookie_secure: bool
    setup_enabled: bool
    backup_retention_days: int
    customer_files_prefix: str
    cors_origins: tuple[str, ...]
    auth_rate_limit: int
    auth_rate_window_seconds: int
    redis_url: str | None
    sentry_dsn: str | None
    sentry_environment: str
    log_level: str

    @staticmethod
    def from_env() -> "Settings":
        """Load service settings from environment variables."""
        origins = os.environ.get("CORS_ORIGINS", _DEFAULT_ORIGINS).split(",")
        return Settings(
            firebase_project_id=os.environ.get("FIREBASE_PROJECT_ID") or None,
            firebase_credentials=os.environ.get("FIREBASE_CREDENTIALS") or None,
            firebase_storage_bucket=os.environ.get("FIREBASE_STORAGE_BUCKET") or None,
            firebase_web_api_key=os.environ.get("FIREBASE_WEB_API_KEY") or None,
            auth_cookie_name=os.environ.get("CRM_AUTH_COOKIE_NAME", "auth-user"),
            session_max_age_seconds=int(
                os.environ.get("CRM_SESSION_MAX_AGE_SECONDS", str(5 * 24 * 60 * 60))
            ),
            cookie_secure=_env_bool("CRM_COOKIE_SECURE", True),
            setup_enabled=_env_bool("CRM_SETUP_ENABLED", True),
            backup_retention_days=int(os.environ.get("CRM_BACKUP_RETENTION_DAYS", "30")),
            customer_files_prefix=os.environ.get("CRM_CUSTOMER_FILES_PREFIX", "customer-files/"),
            cors_origins=tuple(o.strip() for o in origins if o.strip()),
            auth_rate_limit=int(os.environ.get("CRM_AUTH_RATE_LIMIT", "10")),
            auth_rate_window_seconds=int(os.environ.get("CRM_AUTH_RATE_WINDOW_SECONDS", "60")),
            redis_url=os.environ.get("REDIS_URL") or None,
            sentry_dsn=os.environ.get("SENTRY_DSN") or None,
            sentry_environment=os.environ.get("SENTRY_ENVIRONMENT", "development"),
            log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the cached settings for this process."""
    return Settings.from_env()

"""Centralized, typed configuration using pydantic-settings.

Provides a single ``Settings`` class backed by ``.env`` file and environment
variables, a cached ``get_settings()`` accessor, and a ``validate_credentials()``
startup gate that enforces credential presence in production mode.

This module has no imports from the ``crm_inbox`` package so that every
other module can depend on it.
"""

from __future__ import annotations

import sys
from functools import lru_cache
from pathlib import Path

import structlog
from pydantic import SecretStr, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = structlog.get_logger()


class Settings(BaseSettings):
    """Application settings loaded from environment variables and ``.env`` file.

    ``SecretStr`` fields keep OAuth secrets and API keys out of logs and
    error output.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # -- General ---------------------------------------------------------------
    production: bool = False
    port: int = 8000
    db_path: Path = Path("data/inbox.db")
    sentry_dsn: str = ""

    # -- Google OAuth (Gmail) --------------------------------------------------
    google_client_id: str = ""
    google_client_secret: SecretStr = SecretStr("")

    # -- Microsoft OAuth (Outlook) ---------------------------------------------
    microsoft_client_id: str = ""
    microsoft_client_secret: SecretStr = SecretStr("")
    microsoft_tenant: str = "common"

    # -- Unipile (LinkedIn) ----------------------------------------------------
    unipile_base_url: str = "https://api1.unipile.com:13111"
    unipile_api_key: SecretStr = SecretStr("")
    unipile_webhook_secret: SecretStr = SecretStr("")

    # -- Sync ------------------------------------------------------------------
    email_initial_sync_days: int = 90
    linkedin_initial_sync_days: int = 30
    sync_page_ceiling: int = 100
    request_timeout_seconds: float = 30.0
    rate_limit_backoff_seconds: float = 1.0
    store_timeout_seconds: float = 10.0
    background_sync_enabled: bool = False
    background_sync_interval_seconds: int = 300

    # -- Work queue ------------------------------------------------------------
    sla_hours: int = 24
    idle_threshold_days: int = 3


@lru_cache
def get_settings() -> Settings:
    """Return a cached ``Settings`` instance.

    Call ``get_settings.cache_clear()`` in tests to reset.

    Returns:
        The application ``Settings``.
    """
    try:
        return Settings()
    except ValidationError as exc:
        # Only the structured errors list; the exception text may carry secrets.
        logger.error("settings_validation_failed", errors=exc.errors())
        sys.exit(1)


def validate_credentials(settings: Settings) -> None:
    """Enforce credential presence at startup.

    In **production** mode the application exits with a clear error block if
    any required credential is missing.  In **development** mode each missing
    credential is logged as a warning and startup continues.

    Args:
        settings: The loaded application settings.
    """
    errors: list[str] = []

    if not settings.google_client_id or not settings.google_client_secret.get_secret_value():
        errors.append("GOOGLE_CLIENT_ID / GOOGLE_CLIENT_SECRET are empty or not set")

    if not settings.microsoft_client_id or not settings.microsoft_client_secret.get_secret_value():
        errors.append("MICROSOFT_CLIENT_ID / MICROSOFT_CLIENT_SECRET are empty or not set")

    if not settings.unipile_api_key.get_secret_value():
        errors.append("UNIPILE_API_KEY is empty or not set")

    if not settings.unipile_webhook_secret.get_secret_value():
        errors.append("UNIPILE_WEBHOOK_SECRET is empty or not set")

    if not errors:
        logger.info("credential_validation_passed")
        return

    if settings.production:
        for err in errors:
            logger.error("credential_missing", detail=err)
        print("\n=== STARTUP FAILED ===", file=sys.stderr)
        print("Missing required credentials for production mode:", file=sys.stderr)
        for err in errors:
            print(f"  - {err}", file=sys.stderr)
        print("======================\n", file=sys.stderr)
        sys.exit(1)
    else:
        for err in errors:
            logger.warning("credential_missing_dev", detail=err)

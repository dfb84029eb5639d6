"""
Central configuration using Pydantic BaseSettings.

Validates all env vars at startup (fail-fast). The encryption key is
required in production but gets a throwaway default in TESTING mode.

Environment variables (all prefixed ``PMAN_``):
    PMAN_ENCRYPTION_KEY        key material for secret encryption (required)
    PMAN_TOKEN_SECRET          token signing secret (defaults to the encryption key)
    PMAN_DOMAIN_NAME           issuer written into session tokens
    PMAN_DEFAULT_EXPIRE_DAYS   token lifetime when the caller gives none
    PMAN_DB_PATH               SQLite database file

Usage:
    from config.settings import get_settings

    settings = get_settings()
    key = settings.auth.encryption_key.get_secret_value()

Lazy initialization: get_settings() creates the singleton on first call.
Tests can reset via get_settings.cache_clear().
"""

import os
from functools import lru_cache
from pathlib import Path

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings

_BASE_CONFIG = {
    "env_prefix": "PMAN_",
    "extra": "ignore",
    "env_file": ".env",
    "env_file_encoding": "utf-8",
}


def _is_testing() -> bool:
    """Check if running in test mode."""
    return os.getenv("TESTING", "").lower() in ("true", "1")


# =============================================================================
# Nested Settings Groups
# =============================================================================


class AuthSettings(BaseSettings):
    """Key material, session token, and password policy configuration."""

    model_config = _BASE_CONFIG

    encryption_key: SecretStr = SecretStr("")
    token_secret: SecretStr = SecretStr("")
    token_algorithm: str = "HS256"
    domain_name: str = "pman.local"
    default_expire_days: int = Field(default=24, ge=1)

    # Untracked tokens count as revoked when enabled
    require_tracked_tokens: bool = False

    # Password policy (applies to passwords chosen by people, not generated ones)
    password_min_length: int = 8
    password_require_uppercase: bool = True
    password_require_lowercase: bool = True
    password_require_digit: bool = True
    password_require_special: bool = False

    @property
    def signing_secret(self) -> str:
        """Secret used to sign tokens; the encryption key when none is set."""
        return (
            self.token_secret.get_secret_value()
            or self.encryption_key.get_secret_value()
        )


class DatabaseSettings(BaseSettings):
    """Database configuration."""

    model_config = _BASE_CONFIG

    db_path: Path = Path.home() / ".pman" / "pman.db"
    db_pool_size: int = Field(default=10, ge=1)


class BootstrapSettings(BaseSettings):
    """First-run admin identity.

    The default password is a well-known, documented credential that must be
    changed after the first login.
    """

    model_config = _BASE_CONFIG

    admin_email: str = "admin@pman.system"
    admin_password: SecretStr = SecretStr("DefaultPassword")
    admin_groups: str = "team1:read_write,team2:read_write"


# =============================================================================
# Root Settings
# =============================================================================


class AppSettings(BaseSettings):
    """Root application settings composing all sub-settings."""

    model_config = _BASE_CONFIG

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"
    log_file: str = ""

    # Nested groups (initialized separately so each reads its own env vars)
    auth: AuthSettings = None  # type: ignore[assignment]
    database: DatabaseSettings = None  # type: ignore[assignment]
    bootstrap: BootstrapSettings = None  # type: ignore[assignment]

    @model_validator(mode="before")
    @classmethod
    def _init_nested(cls, values):
        """Initialize nested settings from environment."""
        if values.get("auth") is None:
            values["auth"] = AuthSettings()
        if values.get("database") is None:
            values["database"] = DatabaseSettings()
        if values.get("bootstrap") is None:
            values["bootstrap"] = BootstrapSettings()
        return values

    @model_validator(mode="after")
    def _validate_required_secrets(self):
        """Require PMAN_ENCRYPTION_KEY in production; bypass only in TESTING mode."""
        if self.auth.encryption_key.get_secret_value():
            return self

        if _is_testing():
            self.auth.encryption_key = SecretStr("pman-testing-only-encryption-key")
            return self

        raise ValueError(
            "PMAN_ENCRYPTION_KEY env var is required. "
            "Generate one with: python -c \"from pman.cipher import generate_key; print(generate_key())\""
        )


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    """
    Get the application settings singleton.

    Lazy-initialized on first call. Validates all env vars (fail-fast).
    Tests can reset via: get_settings.cache_clear()
    """
    return AppSettings()

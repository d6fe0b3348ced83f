"""Centralized application configuration via environment variables."""

from enum import StrEnum
from functools import lru_cache

from pydantic import Field, SecretStr, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(StrEnum):
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTING = "testing"


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    The MFA encryption key uses SecretStr to prevent accidental logging.
    Database URL is assembled from individual components to match
    the official PostgreSQL Docker image environment variables.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- App ---
    environment: Environment = Environment.DEVELOPMENT
    log_level: str = "DEBUG"
    # --- CORS ---
    cors_allowed_origins: list[str] = []
    cors_allow_credentials: bool = False
    cors_allowed_methods: list[str] = ["GET", "POST", "DELETE"]
    cors_allowed_headers: list[str] = ["Content-Type", "Authorization", "X-Client-Key"]

    # --- PostgreSQL ---
    postgres_user: str = "access_guard"
    postgres_password: SecretStr = SecretStr("secret")
    postgres_db: str = "access_guard"
    postgres_host: str = "localhost"
    postgres_port: int = 5432

    @computed_field  # type: ignore[prop-decorator]
    @property
    def database_url(self) -> str:
        """Assemble database URL from components.

        Uses psycopg v3 driver which supports both sync (create_engine)
        and async (create_async_engine) modes natively.
        """
        password = self.postgres_password.get_secret_value()
        return (
            f"postgresql+psycopg://{self.postgres_user}:{password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # --- Store access ---
    # Every store call is bounded; a timeout surfaces as StoreUnavailable.
    store_timeout_seconds: float = Field(default=3.0, gt=0)

    # --- MFA ---
    mfa_issuer: str = "CarBot"
    totp_period_seconds: int = Field(default=30, gt=0)
    totp_digits: int = Field(default=6, ge=6, le=8)
    totp_window: int = Field(default=1, ge=0, le=5)
    backup_code_count: int = Field(default=10, gt=0)
    # Fernet key (urlsafe base64, 32 bytes) for secrets at rest.
    mfa_encryption_key: SecretStr | None = None
    mfa_attempt_limit: int = Field(default=5, gt=0)
    mfa_attempt_window_seconds: int = Field(default=300, gt=0)

    # --- Gateway ---
    session_freshness_minutes: int = Field(default=30, gt=0)
    rate_limit_window_seconds: int = Field(default=60, gt=0)
    rate_limit_cleanup_interval_seconds: int = Field(default=300, gt=0)
    rate_limit_lock_stripes: int = Field(default=64, gt=0)

    # --- Client keys ---
    client_key_default_rate_limit: int = Field(default=100, gt=0)

    # --- Convenience properties ---
    @property
    def is_dev(self) -> bool:
        return self.environment == Environment.DEVELOPMENT

    @property
    def is_prod(self) -> bool:
        return self.environment == Environment.PRODUCTION

    @property
    def is_testing(self) -> bool:
        return self.environment == Environment.TESTING


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached settings singleton.

    Usage::

        from access_guard.config import get_settings
        settings = get_settings()
    """
    return Settings()


settings = get_settings()

"""Centralized application configuration via environment variables."""

from enum import StrEnum
from functools import lru_cache
from urllib.parse import urlparse

from pydantic import Field, SecretStr, computed_field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(StrEnum):
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTING = "testing"


class RateLimitBackend(StrEnum):
    MEMORY = "memory"
    REDIS = "redis"


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Secrets use SecretStr to prevent accidental logging.
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
    login_path: str = "/login"

    # --- CORS ---
    cors_allowed_origins: list[str] = []
    cors_allow_credentials: bool = False
    cors_allowed_methods: list[str] = ["GET"]
    cors_allowed_headers: list[str] = ["Content-Type"]

    # --- PostgreSQL ---
    postgres_user: str = "school_gateway"
    postgres_password: SecretStr = SecretStr("secret")
    postgres_db: str = "school_gateway"
    postgres_host: str = "localhost"
    postgres_port: int = 5432

    @computed_field  # type: ignore[prop-decorator]
    @property
    def database_url(self) -> str:
        """Assemble database URL from components (psycopg v3 driver)."""
        password = self.postgres_password.get_secret_value()
        return (
            f"postgresql+psycopg://{self.postgres_user}:{password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # --- Identity provider (Supabase auth) ---
    supabase_url: str = "http://localhost:54321"
    supabase_anon_key: SecretStr = SecretStr("anon")
    session_cookie_name: str | None = None

    @property
    def auth_cookie_name(self) -> str:
        """Session cookie name; Supabase SSR uses ``sb-<project-ref>-auth-token``."""
        if self.session_cookie_name:
            return self.session_cookie_name
        host = urlparse(self.supabase_url).hostname or "localhost"
        return f"sb-{host.split('.')[0]}-auth-token"

    # Identity and role lookups are bounded; expiry counts as a failed lookup.
    external_lookup_timeout_seconds: float = Field(default=5.0, gt=0)

    # --- Rate limiting ---
    rate_limit_window_seconds: int = Field(default=60, gt=0)
    rate_limit_max_requests: int = Field(default=100, gt=0)
    rate_limit_backend: RateLimitBackend = RateLimitBackend.MEMORY
    rate_limit_cleanup_interval_seconds: int = Field(default=300, gt=0)
    redis_url: str = "redis://localhost:6379/0"

    @field_validator("login_path")
    @classmethod
    def login_path_absolute(cls, value: str) -> str:
        if not value.startswith("/"):
            raise ValueError("login_path must be an absolute path")
        return value

    @field_validator("supabase_url")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

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

        from school_gateway.config import get_settings
        settings = get_settings()
    """
    return Settings()


settings = get_settings()

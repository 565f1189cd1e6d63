"""Configuration for the ZYRA session controller."""

from __future__ import annotations

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime settings loaded from environment."""

    api_base_url: str = "http://localhost:5000"
    app_origin: str = "http://localhost:5000"
    auth_url: str = "http://localhost:54321/auth/v1"
    auth_api_key: SecretStr = SecretStr("")

    inactivity_timeout_seconds: float = Field(default=30 * 60, gt=0)
    warning_before_timeout_seconds: float = Field(default=5 * 60, ge=0)
    init_timeout_seconds: float = Field(default=5.0, gt=0)
    profile_timeout_seconds: float = Field(default=3.0, gt=0)
    profile_retry_delay_seconds: float = Field(default=0.2, ge=0)
    profile_retries: int = Field(default=1, ge=0)

    sign_in_path: str = "/auth"
    callback_path: str = "/auth/callback"
    password_reset_prefixes: tuple[str, ...] = ("/reset-password", "/forgot-password")
    auth_path_prefixes: tuple[str, ...] = ("/auth",)

    sentry_dsn: str | None = None
    environment: str = "development"
    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_prefix="ZYRA_AUTH_", env_file=".env")

    @model_validator(mode="after")
    def _check_warning_lead(self) -> "Settings":
        if self.warning_before_timeout_seconds >= self.inactivity_timeout_seconds:
            raise ValueError("warning_before_timeout_seconds must be below the inactivity timeout")
        return self

    @property
    def warning_delay_seconds(self) -> float:
        """Delay from last activity until the expiry warning."""
        return self.inactivity_timeout_seconds - self.warning_before_timeout_seconds

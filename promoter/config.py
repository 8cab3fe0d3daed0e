"""Application configuration using pydantic-settings."""

from functools import lru_cache
from typing import Literal

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file without overriding variables already set in the process
load_dotenv(override=False)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="PROMOTER_",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_env: Literal["development", "staging", "production"] = "development"
    app_debug: bool = True

    # API Server
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Environment descriptors (JSON); built-in defaults when unset
    environments_file: str | None = None

    # Container registry
    registry_address: str = "registry.local/hello-world"
    registry_url: str | None = None  # OCI distribution endpoint; simulated when unset
    registry_token: str = Field(default="", repr=False)

    # Provisioning
    provision_timeout_seconds: float = Field(default=600.0, gt=0)
    provision_max_attempts: int = Field(default=3, ge=1)
    retry_backoff_multiplier_seconds: float = Field(default=1.0, ge=0)
    retry_backoff_max_seconds: float = Field(default=30.0, ge=0)

    # Health verification
    verification_timeout_seconds: float = Field(default=300.0, gt=0)
    verification_poll_interval_seconds: float = Field(default=10.0, gt=0)
    verification_required_consecutive: int = Field(default=2, ge=1)
    verification_failure_threshold: int = Field(default=3, ge=1)

    # Approval gate
    approval_timeout_seconds: float = Field(default=1800.0, gt=0)

    # A newer deployment cancels the in-flight one instead of being rejected
    supersede_in_flight: bool = True

    # Alerts
    alert_webhook_url: str | None = None
    alert_timeout_seconds: float = 5.0

    # Secrets
    secrets_env_prefix: str = "PROMOTER_SECRET_"

    # Deployment history (JSON lines); in-memory only when unset
    history_path: str | None = None

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["console", "json"] = "console"
    log_directory: str | None = None
    log_file_name: str = "promoter.log"

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()

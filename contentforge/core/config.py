"""Application configuration with validation."""

import os
from enum import Enum
from pydantic_settings import BaseSettings
from pydantic import Field, field_validator
from typing import List


class Environment(str, Enum):
    """Application environment."""
    DEVELOPMENT = "development"
    PRODUCTION = "production"


class ConfigurationError(Exception):
    """Raised when application configuration is invalid for the environment."""
    pass


_DEFAULT_JWT_SECRET = "dev-insecure-key-change-me"


class Settings(BaseSettings):
    """
    Application settings with validation.

    Shared by the API process and the worker process; both read the same
    environment so provider and job tuning stay in one place.
    """

    # Environment
    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Application environment (development/production)"
    )

    # CORS Configuration
    cors_allowed_origins: str = Field(
        default="http://localhost:3000",
        description="Allowed CORS origins (comma-separated)"
    )

    # Database Configuration
    database_url: str = Field(
        default="sqlite:///./contentforge.db",
        description="Database connection URL"
    )
    # Connection pool tuning (PostgreSQL only; ignored for SQLite).
    db_pool_size: int = Field(default=5, description="Number of persistent database connections")
    db_max_overflow: int = Field(default=10, description="Extra connections allowed during traffic bursts")
    db_pool_timeout: int = Field(default=30, description="Seconds to wait for a pooled connection")
    db_pool_recycle: int = Field(default=1800, description="Seconds before a connection is recycled")

    # Authentication
    jwt_secret_key: str = Field(
        default=_DEFAULT_JWT_SECRET,
        description="JWT signing secret (override in production)"
    )
    jwt_algorithm: str = Field(default="HS256")

    # Generation provider
    # AI_MODEL is a LiteLLM model string, e.g. "gemini/gemini-2.0-flash",
    # "openai/gpt-4o-mini". It is also the model recorded on succeeded jobs.
    ai_provider: str = Field(
        default="gemini",
        description="Provider label recorded on job error records"
    )
    ai_model: str = Field(
        default="gemini/gemini-2.0-flash",
        description="LiteLLM model string used for all generation calls"
    )
    ai_api_key: str = Field(default="", description="API key for the generation provider")
    ai_api_base: str = Field(default="", description="Base URL for the provider (optional)")
    ai_timeout_ms: int = Field(default=30000, ge=1, description="Wall-clock timeout per provider call")
    ai_retry_attempts: int = Field(default=3, ge=1, description="Provider call attempts on transient errors")
    ai_retry_base_ms: int = Field(default=400, ge=0, description="Exponential backoff base between provider retries")

    # Job runner
    job_max_attempts: int = Field(default=3, ge=1, description="Execution attempts per job before FAILED")
    worker_poll_interval_ms: int = Field(default=1500, ge=1, description="Milliseconds between runner ticks")
    worker_instance_id: str = Field(
        default_factory=lambda: f"worker-{os.getpid()}",
        description="Identity recorded in claimed_by"
    )
    default_locale: str = Field(default="en", description="Locale used when a payload has none")

    # Logging Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    log_format: str = Field(
        default="json",
        description="Log output format: 'json' for structured, 'text' for human-readable"
    )

    def get_cors_origins(self) -> List[str]:
        """Parse comma-separated origins, rejecting wildcards."""
        origins = [origin.strip() for origin in self.cors_allowed_origins.split(',') if origin.strip()]

        # SECURITY: Prevent wildcard CORS
        if "*" in origins:
            raise ValueError(
                "Wildcard CORS (*) not allowed. "
                "Specify explicit origins in CORS_ALLOWED_ORIGINS"
            )

        return origins

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is one of the standard Python logging levels."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v_upper

    def insecure_settings(self) -> List[str]:
        """List configuration problems that are fatal in production."""
        problems: list[str] = []

        if self.jwt_secret_key == _DEFAULT_JWT_SECRET:
            problems.append(
                "JWT_SECRET_KEY is using the default insecure value. "
                "Generate a secure key: openssl rand -hex 32"
            )

        localhost_origins = [o for o in self.get_cors_origins() if "localhost" in o or "127.0.0.1" in o]
        if localhost_origins:
            problems.append(
                f"CORS allows localhost origins: {localhost_origins}. "
                "Remove localhost origins for production."
            )

        if not self.ai_api_key:
            problems.append("AI_API_KEY is empty. Generation jobs will fail.")

        return problems

    def validate_production_config(self) -> None:
        """Fail startup in production if security-critical settings are unsafe.

        In development, returns quietly; callers log ``insecure_settings()``
        as warnings.

        Raises:
            ConfigurationError: If production config is insecure.
        """
        errors = self.insecure_settings()
        if errors and self.environment == Environment.PRODUCTION:
            raise ConfigurationError(
                "Production configuration is insecure:\n  - " + "\n  - ".join(errors)
            )

    class Config:
        """Pydantic configuration."""
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


# Global settings instance
settings = Settings()

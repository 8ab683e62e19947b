"""Application configuration using Pydantic BaseSettings."""

import logging

import structlog
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Application Database Configuration
    database_url: str = Field(alias="DATABASE_URL")
    db_pool_size: int = Field(default=20, alias="DB_POOL_SIZE")

    # Application Environment
    app_env: str = Field(default="development", alias="APP_ENV")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # CORS Configuration
    cors_origins: str = Field(default="http://localhost:3000", alias="CORS_ORIGINS")

    # Server Configuration
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=8000, alias="PORT")

    # Replicate Enhancement Model
    replicate_api_token: str = Field(default="", alias="REPLICATE_API_TOKEN")
    replicate_model_version: str = Field(
        default="nightmareai/real-esrgan", alias="REPLICATE_MODEL_VERSION"
    )

    # Object Store (Pinata)
    pinata_jwt: str = Field(default="", alias="PINATA_JWT")
    pinata_gateway: str = Field(default="gateway.pinata.cloud", alias="PINATA_GATEWAY")

    # Caller Authentication
    session_secret: str = Field(default="", alias="SESSION_SECRET")
    internal_service_secret: str = Field(default="", alias="INTERNAL_SERVICE_SECRET")
    internal_api_key: str = Field(default="", alias="INTERNAL_API_KEY")

    # Stuck-Job Scanner
    stale_after_seconds: int = Field(default=300, alias="STALE_AFTER_SECONDS")
    recovery_batch_size: int = Field(default=50, alias="RECOVERY_BATCH_SIZE")
    inconsistent_scan_window: int = Field(default=500, alias="INCONSISTENT_SCAN_WINDOW")
    scan_interval_seconds: int = Field(default=60, alias="SCAN_INTERVAL_SECONDS")
    recovery_worker_enabled: bool = Field(default=True, alias="RECOVERY_WORKER_ENABLED")

    # Enhancement Orchestrator
    processing_budget_seconds: float = Field(default=50.0, alias="PROCESSING_BUDGET_SECONDS")
    host_execution_ceiling_seconds: float = Field(
        default=60.0, alias="HOST_EXECUTION_CEILING_SECONDS"
    )

    # Trigger Dispatcher
    trigger_max_attempts: int = Field(default=3, ge=1, alias="TRIGGER_MAX_ATTEMPTS")
    trigger_backoff_seconds: float = Field(default=1.0, ge=0, alias="TRIGGER_BACKOFF_SECONDS")

    # Upload Constraints
    min_file_bytes: int = Field(default=1024, alias="MIN_FILE_BYTES")
    max_file_bytes: int = Field(default=10 * 1024 * 1024, alias="MAX_FILE_BYTES")

    # Status Polling
    expected_processing_seconds: int = Field(default=30, alias="EXPECTED_PROCESSING_SECONDS")
    client_poll_interval_seconds: int = Field(default=3, alias="CLIENT_POLL_INTERVAL_SECONDS")
    client_poll_timeout_seconds: int = Field(default=300, alias="CLIENT_POLL_TIMEOUT_SECONDS")

    # Purchase flow shown on InsufficientCredits
    purchase_url: str = Field(default="/pricing", alias="PURCHASE_URL")

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @model_validator(mode="after")
    def validate_required_config(self) -> "Settings":
        """Validate required configuration on startup.

        The processing budget must always leave a margin under the host's hard
        execution ceiling. Credential checks are skipped in test environments.
        """
        if self.processing_budget_seconds >= self.host_execution_ceiling_seconds:
            raise ValueError(
                "PROCESSING_BUDGET_SECONDS must be lower than HOST_EXECUTION_CEILING_SECONDS "
                f"(got {self.processing_budget_seconds} >= {self.host_execution_ceiling_seconds})"
            )

        # Skip validation in test environments
        if self.app_env in ("test", "testing"):
            return self

        # Collect all missing required variables
        missing = []

        if not self.replicate_api_token:
            missing.append(
                "REPLICATE_API_TOKEN: Get your API token from https://replicate.com/account/api-tokens"
            )

        if not self.pinata_jwt:
            missing.append("PINATA_JWT: Get your JWT token from https://pinata.cloud")

        if not self.session_secret:
            missing.append("SESSION_SECRET: Shared signing key of the session issuer")

        if not self.internal_service_secret:
            missing.append("INTERNAL_SERVICE_SECRET: Shared secret for internal service calls")

        if not self.internal_api_key:
            missing.append("INTERNAL_API_KEY: Bearer token for recovery endpoints")

        # If any required variables are missing, fail fast
        if missing:
            error_msg = "CRITICAL: Missing required environment variables:\n\n" + "\n".join(
                f"  - {m}" for m in missing
            )
            error_msg += "\n\nThe application cannot start without these variables."
            error_msg += "\nPlease update your .env file and restart."
            raise ValueError(error_msg)

        return self


def configure_logging(settings: Settings) -> None:
    """Configure structlog based on application environment.

    - Production: JSON output for log aggregation
    - Development: Console output for human readability
    """
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    if settings.app_env == "production":
        # JSON output for production (log aggregation)
        structlog.configure(
            processors=[
                structlog.stdlib.add_log_level,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer(),
            ],
            wrapper_class=structlog.make_filtering_bound_logger(level),
            context_class=dict,
            logger_factory=structlog.PrintLoggerFactory(),
            cache_logger_on_first_use=True,
        )
    else:
        # Console output for development (human-readable)
        structlog.configure(
            processors=[
                structlog.stdlib.add_log_level,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.dev.ConsoleRenderer(),
            ],
            wrapper_class=structlog.make_filtering_bound_logger(level),
            context_class=dict,
            logger_factory=structlog.PrintLoggerFactory(),
            cache_logger_on_first_use=True,
        )

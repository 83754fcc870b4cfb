import os
import sys
from typing import List, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _should_load_env_file() -> str | None:
    """Determine if .env should be loaded.

    For local development, load `.env` automatically so `SECRET_KEY` can be
    provided from `backend/.env`. **SECRET_KEY remains required** and must be
    set in production via environment variables.

    Do NOT auto-load `.env` when running under pytest or in CI.
    """
    if any("pytest" in str(x) for x in sys.argv if x):
        return None
    if os.environ.get("CI") in ("1", "true", "True"):
        return None
    return ".env"


class Settings(BaseSettings):
    # Environment configuration
    ENVIRONMENT: str = Field(
        default="development",
        description="Environment: 'development', 'staging', 'production' or 'test'",
    )
    DEBUG: bool = False

    DATABASE_URL: str = "sqlite:///./data/auth_core.db"
    SECRET_KEY: str = Field(
        ...,  # Required, no default
        description="JWT secret key - must be set via SECRET_KEY environment variable",
    )
    ALGORITHM: str = "HS256"
    CORS_ORIGINS: List[str] = Field(
        default=["http://localhost:3000"],
        description="Allowed CORS origins (comma-separated in env var)",
    )

    # Database connection pool settings
    DB_POOL_SIZE: int = Field(default=5, description="Persistent connections in pool")
    DB_MAX_OVERFLOW: int = Field(
        default=10, description="Extra connections when pool exhausted"
    )
    DB_POOL_TIMEOUT: int = Field(
        default=30, description="Seconds to wait for connection from pool"
    )
    DB_POOL_RECYCLE: int = Field(
        default=1800, description="Recycle connections after N seconds"
    )

    AUTO_CREATE_DB: bool = Field(
        default=False,
        description="When true (development only), call Base.metadata.create_all on startup",
    )
    SLOW_REQUEST_THRESHOLD: float = Field(
        default=1.0,
        description="Log warning for requests slower than this (seconds)",
    )

    # Access / refresh tokens
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(
        default=15, description="Lifetime of JWT access tokens in minutes"
    )
    REFRESH_TOKEN_EXPIRE_DAYS: int = Field(
        default=30, description="Lifetime of refresh tokens in days"
    )
    TOKEN_ROTATION_ENABLED: bool = Field(
        default=True,
        description="Revoke and replace the refresh token on every use",
    )
    REFRESH_TOKEN_MAX_USAGE: int = Field(
        default=1,
        ge=1,
        description="Uses allowed per refresh token when rotation is disabled",
    )
    REFRESH_TOKEN_RETENTION_DAYS: int = Field(
        default=90,
        description="Days to keep expired or revoked refresh tokens before deletion",
    )

    # Progressive account lockout (threshold -> duration), checked highest first
    LOCKOUT_THRESHOLD_1: int = Field(default=5, description="Failures for tier 1")
    LOCKOUT_DURATION_1_MINUTES: int = Field(default=15, description="Tier 1 lockout")
    LOCKOUT_THRESHOLD_2: int = Field(default=10, description="Failures for tier 2")
    LOCKOUT_DURATION_2_MINUTES: int = Field(default=60, description="Tier 2 lockout")
    LOCKOUT_THRESHOLD_3: int = Field(default=15, description="Failures for tier 3")
    LOCKOUT_DURATION_3_MINUTES: int = Field(
        default=1440, description="Tier 3 lockout"
    )

    # IP based distributed-attack detection
    IP_FAILURE_THRESHOLD: int = Field(
        default=20, description="Failed logins from one IP before it is blocked"
    )
    IP_FAILURE_WINDOW_MINUTES: int = Field(
        default=30, description="Window for counting failed logins per IP"
    )
    LOGIN_ATTEMPT_RETENTION_DAYS: int = Field(
        default=90, description="Days to keep login attempt records"
    )

    # MFA (TOTP) Settings
    MFA_ENCRYPTION_KEY: str = Field(
        default="",
        description="Fernet key for encrypting TOTP secrets at rest. Generate with: "
        'python -c "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())"',
    )
    MFA_ISSUER_NAME: str = Field(
        default="Auth Security Core",
        description="Issuer name shown in authenticator apps",
    )
    MFA_TOTP_VALID_WINDOW: int = Field(
        default=2, description="Accepted TOTP clock drift in 30 second steps"
    )
    MFA_CHALLENGE_TTL_MINUTES: int = Field(
        default=5, description="Minutes until an MFA challenge session expires"
    )
    MFA_CHALLENGE_MAX_ATTEMPTS: int = Field(
        default=5, description="Failed verifications allowed per challenge session"
    )
    MFA_BACKUP_CODE_COUNT: int = Field(
        default=10, description="Number of backup codes to generate"
    )
    TRUSTED_DEVICE_DAYS: int = Field(
        default=30, description="Duration of device trust in days"
    )

    # Audit ledger
    AUDIT_RETENTION_DAYS: int = Field(
        default=90, description="Days to keep audit events, summaries and closed alerts"
    )
    AUDIT_ALERT_THRESHOLD: int = Field(
        default=70, description="Risk score at or above which an alert is raised"
    )
    AUDIT_TIMEZONE: str = Field(
        default="UTC",
        description="IANA timezone used for the unusual-hours risk signal",
    )

    # Logging / monitoring
    LOG_LEVEL: str = Field(default="INFO", description="Minimum log level")
    LOG_FORMAT: Literal["text", "json"] = Field(
        default="text", description="Colored text for development, JSON lines elsewhere"
    )
    LOG_DIR: str | None = Field(
        default="logs", description="Directory of the rotating log file, empty disables it"
    )
    SENTRY_DSN: str = Field(default="", description="Sentry DSN (empty disables)")
    SENTRY_ENVIRONMENT: str | None = None
    SENTRY_TRACES_SAMPLE_RATE: float = Field(default=0.1, ge=0.0, le=1.0)

    # Scheduled retention cleanup
    ENABLE_SCHEDULER: bool = Field(
        default=True, description="Run the daily retention cleanup job in-process"
    )
    RETENTION_CLEANUP_HOUR: int = Field(
        default=3, ge=0, le=23, description="UTC hour of the daily cleanup job"
    )

    # Initial admin account (used by init_db.py)
    ADMIN_EMAIL: str | None = None
    ADMIN_PASSWORD: str | None = None

    @property
    def lockout_tiers(self) -> list[tuple[int, int]]:
        """(threshold, minutes) pairs ordered from highest threshold to lowest."""
        tiers = [
            (self.LOCKOUT_THRESHOLD_1, self.LOCKOUT_DURATION_1_MINUTES),
            (self.LOCKOUT_THRESHOLD_2, self.LOCKOUT_DURATION_2_MINUTES),
            (self.LOCKOUT_THRESHOLD_3, self.LOCKOUT_DURATION_3_MINUTES),
        ]
        return sorted(tiers, key=lambda tier: tier[0], reverse=True)

    @property
    def refresh_token_max_usage(self) -> int:
        """Uses granted to a new refresh token.

        Rotation replaces the token on every use, so a rotated token is
        always single use.
        """
        if self.TOKEN_ROTATION_ENABLED:
            return 1
        return self.REFRESH_TOKEN_MAX_USAGE

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: str | List[str]) -> List[str]:
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    model_config = SettingsConfigDict(
        env_file=_should_load_env_file(),
        case_sensitive=True,
        extra="ignore",
    )


settings = Settings()  # type: ignore[call-arg]


def get_settings() -> Settings:
    """Get the settings instance (for dependency injection)."""
    return settings

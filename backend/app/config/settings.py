"""
Application Settings for Solvex Finance

Centralized configuration using Pydantic Settings with .env support.
All environment variables are validated at startup.
"""

import logging
from functools import lru_cache
from typing import Literal, Optional
from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


logger = logging.getLogger(__name__)

# Only ever used when ENVIRONMENT is development/testing.
INSECURE_LOCAL_JWT_SECRET = "insecure-local-development-secret-change-me"


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Security policy values (lockout threshold, minimum password length,
    reset token lifetime) are configuration so they can be tightened
    without code changes.
    """

    # Application Settings
    environment: Literal["development", "testing", "production", "staging"] = "development"
    debug: bool = False
    log_level: str = "INFO"

    # CORS / Frontend Configuration
    frontend_url: str = "http://localhost:5173"
    allowed_origins: list[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
        "http://127.0.0.1:5173",
    ]

    # Database Configuration (SQLModel/SQLAlchemy)
    database_url: Optional[str] = None
    database_pool_size: int = 5
    database_max_overflow: int = 10
    database_pool_timeout: int = 30
    database_echo: bool = False

    # Token signing
    jwt_secret_key: Optional[str] = None
    jwt_algorithm: str = "HS256"
    access_token_expire_hours: int = 24

    # Authentication policy
    max_failed_login_attempts: int = 5
    password_min_length: int = 6
    password_reset_token_ttl_minutes: int = 60
    support_email: str = "suporte@solvex.app"

    # Stripe Configuration
    stripe_secret_key: Optional[str] = None
    stripe_webhook_secret: Optional[str] = None
    stripe_price_id: Optional[str] = None
    stripe_timeout_seconds: int = 10

    # Outbound mail (SMTP)
    smtp_host: Optional[str] = None
    smtp_port: int = 587
    smtp_username: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_use_tls: bool = True
    smtp_from_email: str = "no-reply@solvex.app"
    smtp_from_name: str = "Solvex"
    smtp_timeout_seconds: int = 10

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @model_validator(mode="after")
    def validate_security_settings(self) -> "Settings":
        """Fail closed on a missing signing secret outside local environments."""
        if not self.jwt_secret_key:
            if self.environment not in ("development", "testing"):
                raise ValueError(
                    f"JWT_SECRET_KEY is required when ENVIRONMENT={self.environment}"
                )
            logger.warning(
                "JWT_SECRET_KEY not set; using an insecure local secret (%s mode)",
                self.environment,
            )
            self.jwt_secret_key = INSECURE_LOCAL_JWT_SECRET

        if self.max_failed_login_attempts < 1:
            raise ValueError("MAX_FAILED_LOGIN_ATTEMPTS must be at least 1")
        if self.password_min_length < 1:
            raise ValueError("PASSWORD_MIN_LENGTH must be at least 1")
        if self.password_reset_token_ttl_minutes <= 0:
            raise ValueError("PASSWORD_RESET_TOKEN_TTL_MINUTES must be positive")

        return self

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development."""
        return self.environment == "development"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience export for direct import
settings = get_settings()

"""
Application Configuration - Pydantic Settings for type-safe config.

FAIL FAST - Critical config is validated at startup.
"""

import sys
from decimal import Decimal

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ledger.exceptions import ConfigurationError


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database Configuration - NO DEFAULT for production safety
    database_url: str = ""
    database_pool_size: int = 10
    database_max_overflow: int = 5
    database_pool_timeout: int = 30
    database_pool_recycle: int = 3600
    run_migrations_on_startup: bool = False

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_title: str = "Marketplace Ledger API"
    api_version: str = "0.1.0"
    api_description: str = "Credits, entitlement and payout gating for the content marketplace"

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json or console

    # Observability
    metrics_enabled: bool = True
    tracing_enabled: bool = False
    otlp_endpoint: str = "http://otel-collector:4317"
    otlp_insecure: bool = True
    service_name: str = "marketplace-ledger"

    # Marketplace economics (seed values for the runtime MarketplaceSettings)
    platform_commission: Decimal = Decimal("0.50")
    credit_value_usd: Decimal = Decimal("0.01")
    withdrawal_cooldown_hours: float = 24.0
    content_delete_grace_hours: float = 24.0
    reward_amount: Decimal = Decimal("10")
    max_images_per_card: int = 5
    max_videos_per_card: int = 2
    comments_enabled: bool = False

    # Object storage
    storage_public_url: str = "https://storage.example.com"
    storage_bucket: str = "content-media"

    # Remote write reconciliation
    outbox_max_attempts: int = 5
    outbox_auto_flush: bool = True

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def validate_critical_config(self) -> "Settings":
        """
        FAIL FAST: Validate critical configuration at startup.

        The app MUST NOT start with a missing database or an economics
        configuration that would create or destroy credits.
        """
        errors: list[str] = []

        if not self.database_url:
            errors.append("DATABASE_URL is required but empty or missing")
        elif not self.database_url.startswith(("postgresql", "postgres")):
            errors.append(
                f"DATABASE_URL must be a PostgreSQL URL, got: {self.database_url[:20]}..."
            )

        if not Decimal("0") <= self.platform_commission <= Decimal("1"):
            errors.append(
                f"PLATFORM_COMMISSION must be between 0 and 1, got: {self.platform_commission}"
            )

        if self.withdrawal_cooldown_hours < 0:
            errors.append("WITHDRAWAL_COOLDOWN_HOURS cannot be negative")

        if self.reward_amount < 0:
            errors.append("REWARD_AMOUNT cannot be negative")

        if self.outbox_max_attempts < 1:
            errors.append("OUTBOX_MAX_ATTEMPTS must be at least 1")

        if errors:
            error_msg = "\n".join(
                [
                    "",
                    "=" * 60,
                    "CRITICAL CONFIGURATION ERROR - APPLICATION CANNOT START",
                    "=" * 60,
                    *[f"  ✗ {e}" for e in errors],
                    "=" * 60,
                    "",
                ]
            )
            print(error_msg, file=sys.stderr)
            raise ConfigurationError(error_msg)

        return self


# Global settings instance - validates at import time
settings = Settings()


def get_settings() -> Settings:
    """Get application settings instance."""
    return settings

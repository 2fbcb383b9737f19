"""
Application Configuration - Pydantic Settings for type-safe config.

NO DICTIONARIES - All configuration is strongly typed.
FAIL FAST - Critical config is validated at startup.
"""

import sys

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when critical configuration is missing or invalid."""

    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_title: str = "StoreKit Subscriptions API"
    api_version: str = "0.1.0"
    api_description: str = "Subscription entitlement service for StoreKit purchases"

    # Product catalog - fixed list of identifiers fetched once
    product_identifiers: list[str] = ["com.sample.app.subscription.standard"]
    price_period_suffix: str = "/月"  # Appended to display price on the detail screen

    # Subscription management (cancellation) link
    manage_subscriptions_url: str = "https://apps.apple.com/account/subscriptions"

    # Transaction listener
    listener_restart_delay_seconds: float = 5.0

    # Apple App Store Server API - optional, enables AppStoreServerSource
    storekit_key_id: str = ""
    storekit_issuer_id: str = ""
    storekit_private_key: str = ""  # .p8 contents (plain or base64)
    storekit_bundle_id: str = ""
    storekit_environment: str = "sandbox"  # production or sandbox
    storekit_original_transaction_id: str = ""  # Subscription chain to track

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json or console

    # Observability
    metrics_enabled: bool = True
    service_name: str = "storekit-subscriptions"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @property
    def app_store_configured(self) -> bool:
        """True when all App Store Server API credentials are present."""
        return all(
            (
                self.storekit_key_id,
                self.storekit_issuer_id,
                self.storekit_private_key,
                self.storekit_bundle_id,
            )
        )

    @model_validator(mode="after")
    def validate_critical_config(self) -> "Settings":
        """
        FAIL FAST: Validate critical configuration at startup.

        The app MUST NOT start if critical config is missing.
        """
        errors: list[str] = []

        if not self.product_identifiers:
            errors.append("PRODUCT_IDENTIFIERS must list at least one product")
        elif any(not pid.strip() for pid in self.product_identifiers):
            errors.append("PRODUCT_IDENTIFIERS must not contain empty identifiers")

        if not self.manage_subscriptions_url.startswith(("https://", "http://")):
            errors.append(
                f"MANAGE_SUBSCRIPTIONS_URL must be an http(s) URL, got: "
                f"{self.manage_subscriptions_url[:40]}"
            )

        if self.listener_restart_delay_seconds < 0:
            errors.append("LISTENER_RESTART_DELAY_SECONDS cannot be negative")

        if self.storekit_environment.lower() not in ("production", "sandbox"):
            errors.append("STOREKIT_ENVIRONMENT must be 'production' or 'sandbox'")

        if self.log_format not in ("json", "console"):
            errors.append(f"LOG_FORMAT must be 'json' or 'console', got: {self.log_format}")

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

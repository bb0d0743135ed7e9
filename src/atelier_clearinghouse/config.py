"""Application configuration via pydantic-settings.

Reads from .env file or environment variables. All settings are validated
at startup - if a setting is malformed, the app fails fast with a clear
error message.

Usage:
    from atelier_clearinghouse.config import get_settings
    settings = get_settings()
    print(settings.platform_fee_percentage)
"""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal
from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration for the Atelier Clearinghouse."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Application ---
    app_env: Literal["development", "staging", "production"] = "development"
    app_debug: bool = True
    app_log_level: str = "DEBUG"
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    cors_allow_origins: list[str] = Field(default_factory=lambda: ["*"])

    # --- Database (PostgreSQL) ---
    database_url: str = (
        "postgresql+asyncpg://atelier:atelier_dev"
        "@localhost:5432/atelier_clearinghouse"
    )
    db_pool_size: int = 10
    db_max_overflow: int = 20
    db_pool_timeout: int = 30
    db_echo_sql: bool = False

    # --- Redis (scheduler leases) ---
    redis_url: str = "redis://localhost:6379/0"

    # --- Fees ---
    platform_fee_percentage: Decimal = Field(default=Decimal("0.10"), ge=0, le=1)

    # --- Negotiation ---
    offer_expiry_days: int = 7
    production_buffer_days: int = 3
    shipping_buffer_days: int = 3

    # --- Orders & Escrow ---
    order_number_prefix: str = "QT"
    min_tracking_number_length: int = 6
    min_dispute_reason_length: int = 10
    confirmation_window_days: int = 10
    buyer_protection_days: int = 60
    auto_confirm_warning_min_hours: int = 48
    auto_confirm_warning_max_hours: int = 72

    # --- Payouts ---
    min_withdrawal_amount: Decimal = Field(default=Decimal("1000.00"), gt=0)
    payout_fee: Decimal = Field(default=Decimal("10.00"), ge=0)
    payout_currency: str = "NGN"

    # --- Scheduler ---
    scheduler_enabled: bool = True
    scheduler_lease_seconds: int = 900
    shipment_poll_interval_hours: int = 6
    auto_confirm_hour: int = 2
    deadline_reminder_hour: int = 9
    auto_confirm_warning_hour: int = 10

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"

    @property
    def min_deadline_lead_time(self) -> timedelta:
        """Earliest acceptable customer deadline, measured from now."""
        return timedelta(days=self.production_buffer_days + self.shipping_buffer_days)

    @property
    def confirmation_window(self) -> timedelta:
        return timedelta(days=self.confirmation_window_days)

    @property
    def buyer_protection_window(self) -> timedelta:
        return timedelta(days=self.buyer_protection_days)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached singleton of the application settings."""
    return Settings()

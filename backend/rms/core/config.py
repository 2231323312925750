"""Application configuration using pydantic-settings.

All environment variables should be accessed through the settings object
rather than using os.getenv() directly.
"""

from decimal import Decimal
from functools import lru_cache
from typing import List, Literal, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str = "sqlite:///./rms.db"
    db_pool_size: int = 20
    db_max_overflow: int = 40
    db_echo: bool = False

    # CORS - comma-separated origins or "*" for development only
    cors_origins: str = "http://localhost:3000,http://localhost:8000"

    # ==========================================================================
    # Checkout pricing
    # ==========================================================================
    order_tax_rate: Decimal = Decimal("0.08")
    delivery_fee: Decimal = Decimal("5.00")
    delivery_minimum_order: Decimal = Decimal("15.00")

    # ==========================================================================
    # Kitchen display thresholds (per-station values override these)
    # ==========================================================================
    kitchen_warning_minutes: int = 10
    kitchen_critical_minutes: int = 15
    kitchen_metrics_window_hours: int = 24

    # ==========================================================================
    # Waitlist quoting policy
    # ==========================================================================
    waitlist_avg_turnover_minutes: int = 45
    waitlist_parallel_parties: int = 3

    # ==========================================================================
    # Payment gateways
    # ==========================================================================
    stripe_secret_key: str = ""
    stripe_currency: str = "pkr"
    jazzcash_merchant_id: str = ""
    jazzcash_password: str = ""
    jazzcash_integrity_hash: str = ""
    jazzcash_api_url: str = "https://sandbox.jazzcash.com.pk/ApplicationAPI/API/2.0/Purchase/PAY"
    easypaisa_store_id: str = ""
    easypaisa_hash_key: str = ""
    easypaisa_api_url: str = (
        "https://easypay.easypaisa.com.pk/easypay-service/rest/v4/initiate-ma-transaction"
    )
    gateway_timeout_seconds: float = 15.0

    # Waitlist notification dispatch (SMS / WhatsApp relay)
    sms_webhook_url: Optional[str] = None

    # Server
    debug: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # API
    api_v1_prefix: str = "/api/v1"

    # Rate limiting
    rate_limit_enabled: bool = True

    @field_validator("order_tax_rate")
    @classmethod
    def validate_tax_rate(cls, v: Decimal) -> Decimal:
        if v < 0 or v > 1:
            raise ValueError("order_tax_rate must be a fraction between 0 and 1")
        return v

    @field_validator("waitlist_parallel_parties", "waitlist_avg_turnover_minutes")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("waitlist quoting values must be positive")
        return v

    @field_validator("kitchen_warning_minutes", "kitchen_critical_minutes")
    @classmethod
    def validate_thresholds(cls, v: int) -> int:
        if v < 0:
            raise ValueError("kitchen thresholds cannot be negative")
        return v

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins into a list."""
        if self.cors_origins == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()

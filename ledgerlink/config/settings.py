"""
Configuration Management for LedgerLink

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what external dependencies exist and
ensures all required configuration is validated at startup.
"""

from decimal import Decimal
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CurrencySettings(BaseSettings):
    """Exchange rate provider configuration."""

    model_config = SettingsConfigDict(
        env_prefix="CURRENCY_",
        extra="ignore"
    )

    rates_url: str = Field(
        default="https://api.frankfurter.app/latest?from=USD",
        description="Endpoint returning all rates relative to USD"
    )
    currencies_url: str = Field(
        default="https://api.frankfurter.app/currencies",
        description="Endpoint returning supported currency codes and names"
    )
    cache_ttl_seconds: int = Field(
        default=3600,
        ge=0,
        description="How long a fetched rate table stays fresh"
    )
    request_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="HTTP timeout for rate provider calls"
    )


class BillProcessingSettings(BaseSettings):
    """Auto-deduction and recurrence processing configuration."""

    model_config = SettingsConfigDict(
        env_prefix="BILL_PROCESSING_",
        extra="ignore"
    )

    cooldown_seconds: float = Field(
        default=2.0,
        ge=0.0,
        description="Delay before the processing guard releases after a pass"
    )
    auto_pay_category_id: str = Field(
        default="bills",
        description="Category assigned to transactions created by bill payments"
    )


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Validation thresholds
    max_transaction_amount: Decimal = Field(
        default=Decimal("1000000000"),
        gt=0,
        description="Largest amount accepted for a single transaction or bill"
    )

    # Preferences
    default_base_currency: str = Field(
        default="USD",
        min_length=3,
        max_length=3,
        description="Base currency used when the user has not picked one"
    )
    preferences_path: Optional[str] = Field(
        default=None,
        description="JSON file for local preferences (in-memory if unset)"
    )

    # Live query limits
    transactions_limit: int = Field(default=50, ge=1)
    wallets_limit: int = Field(default=20, ge=1)
    bills_limit: int = Field(default=50, ge=1)

    @field_validator('default_base_currency')
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.upper()


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @property
    def currency(self) -> CurrencySettings:
        return CurrencySettings()

    @property
    def bill_processing(self) -> BillProcessingSettings:
        return BillProcessingSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}
    settings = get_settings()

    for name in ("currency", "bill_processing", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results

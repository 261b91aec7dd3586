"""Configuration package."""

from ledgerlink.config.settings import (
    AppSettings,
    BillProcessingSettings,
    CurrencySettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "BillProcessingSettings",
    "CurrencySettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]

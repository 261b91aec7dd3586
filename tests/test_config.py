"""Tests for environment-driven configuration."""

import pytest
from decimal import Decimal

from pydantic import ValidationError

from ledgerlink.config import (
    AppSettings,
    BillProcessingSettings,
    CurrencySettings,
    get_settings,
    validate_all_settings,
)


@pytest.fixture(autouse=True)
def fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestSettings:

    def test_defaults(self):
        assert CurrencySettings().cache_ttl_seconds == 3600
        assert BillProcessingSettings().cooldown_seconds == 2.0
        assert AppSettings().max_transaction_amount == Decimal("1000000000")

    def test_env_prefix_overrides(self, monkeypatch):
        monkeypatch.setenv("CURRENCY_CACHE_TTL_SECONDS", "60")
        monkeypatch.setenv("BILL_PROCESSING_AUTO_PAY_CATEGORY_ID", "utilities")

        assert CurrencySettings().cache_ttl_seconds == 60
        assert BillProcessingSettings().auto_pay_category_id == "utilities"

    def test_base_currency_is_upper_cased(self, monkeypatch):
        monkeypatch.setenv("DEFAULT_BASE_CURRENCY", "php")
        assert AppSettings().default_base_currency == "PHP"

    def test_negative_cooldown_is_rejected(self, monkeypatch):
        monkeypatch.setenv("BILL_PROCESSING_COOLDOWN_SECONDS", "-1")
        with pytest.raises(ValidationError):
            BillProcessingSettings()

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()


class TestValidateAllSettings:

    def test_all_valid(self):
        assert validate_all_settings() == {
            "currency": True,
            "bill_processing": True,
            "app": True,
        }

    def test_reports_invalid_section(self, monkeypatch):
        monkeypatch.setenv("CURRENCY_REQUEST_TIMEOUT_SECONDS", "0")

        results = validate_all_settings()

        assert results["currency"] is False
        assert "currency_error" in results
        assert results["app"] is True

    def test_app_settings_fields(self):
        assert set(AppSettings.model_fields) == {
            "max_transaction_amount",
            "default_base_currency",
            "preferences_path",
            "transactions_limit",
            "wallets_limit",
            "bills_limit",
        }

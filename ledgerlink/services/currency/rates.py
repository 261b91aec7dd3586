"""
Exchange Rate Provider and Cache

DESIGN DECISION: There is no module-level rate table. The cache is an
explicit object owned by a CurrencyService instance, created at startup
by whoever composes the services and refreshed on demand.

Provider failures never propagate to callers: the last known table (or
the built-in defaults) is returned instead, and the failure is logged.
"""

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, Optional

import requests
import structlog
from pydantic import BaseModel, Field
from tenacity import retry, stop_after_attempt, wait_exponential

from ledgerlink.audit import AuditLogger
from ledgerlink.config import CurrencySettings, get_settings
from ledgerlink.services.currency.conversion import USD, Number, convert_amount, to_decimal


DEFAULT_RATES: dict[str, Decimal] = {
    "USD": Decimal("1"),
    "PHP": Decimal("56"),
    "EUR": Decimal("0.92"),
    "GBP": Decimal("0.79"),
    "JPY": Decimal("150"),
}

DEFAULT_CURRENCY_NAMES: dict[str, str] = {
    "USD": "United States Dollar",
    "PHP": "Philippine Peso",
    "EUR": "Euro",
    "GBP": "British Pound",
    "JPY": "Japanese Yen",
}


class RateProviderError(Exception):
    """The rate provider returned an error or an unusable payload."""
    pass


class ExchangeRateCache(BaseModel):
    """Rate table relative to USD plus the time it was fetched."""

    table: dict[str, Decimal] = Field(default_factory=lambda: dict(DEFAULT_RATES))
    last_fetched_at: Optional[datetime] = None
    ttl: timedelta = Field(default=timedelta(hours=1))

    def is_fresh(self, now: datetime) -> bool:
        if self.last_fetched_at is None:
            return False
        return now - self.last_fetched_at < self.ttl

    def store(self, table: dict[str, Decimal], now: datetime) -> None:
        self.table = {**table, USD: Decimal("1")}
        self.last_fetched_at = now

    def invalidate(self) -> None:
        """Force the next lookup to hit the provider; keeps the table as fallback."""
        self.last_fetched_at = None


class RateProvider(ABC):
    """Source of exchange rates relative to USD."""

    @abstractmethod
    def fetch_rates(self) -> dict[str, Decimal]:
        """
        Fetch all rates relative to USD.

        Raises:
            RateProviderError: If the provider is unreachable or returns garbage
        """
        pass

    @abstractmethod
    def fetch_currencies(self) -> dict[str, str]:
        """Fetch supported currency codes mapped to display names."""
        pass


class FrankfurterRateProvider(RateProvider):
    """
    Rates from the Frankfurter API (ECB reference rates).

    Network calls are retried with exponential backoff before giving up.
    """

    def __init__(
        self,
        settings: Optional[CurrencySettings] = None,
        session: Optional[requests.Session] = None,
    ):
        self._settings = settings or get_settings().currency
        self._session = session or requests.Session()

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        reraise=True,
    )
    def _get_json(self, url: str) -> dict:
        try:
            response = self._session.get(url, timeout=self._settings.request_timeout_seconds)
            response.raise_for_status()
            return response.json()
        except (requests.RequestException, ValueError) as e:
            raise RateProviderError(f"Failed to fetch {url}: {e}")

    def fetch_rates(self) -> dict[str, Decimal]:
        payload = self._get_json(self._settings.rates_url)
        rates = payload.get("rates")
        if not isinstance(rates, dict):
            raise RateProviderError("Rate payload has no 'rates' mapping")
        return {code.upper(): to_decimal(value) for code, value in rates.items()}

    def fetch_currencies(self) -> dict[str, str]:
        payload = self._get_json(self._settings.currencies_url)
        if not isinstance(payload, dict) or not payload:
            raise RateProviderError("Currency payload is empty")
        return {code.upper(): str(name) for code, name in payload.items()}


class CurrencyService:
    """
    Owns the rate cache and answers conversion questions with it.

    get_all_rates() and get_supported_currencies() never raise; they fall
    back to the last known data.
    """

    def __init__(
        self,
        provider: Optional[RateProvider] = None,
        cache: Optional[ExchangeRateCache] = None,
        settings: Optional[CurrencySettings] = None,
        clock: Callable[[], datetime] = datetime.now,
        audit_logger: Optional[AuditLogger] = None,
    ):
        settings = settings or get_settings().currency
        self._provider = provider or FrankfurterRateProvider(settings)
        self._cache = cache or ExchangeRateCache(
            ttl=timedelta(seconds=settings.cache_ttl_seconds)
        )
        self._clock = clock
        self._audit_logger = audit_logger
        self._currencies: Optional[dict[str, str]] = None
        self._logger = structlog.get_logger(__name__)

    @property
    def cache(self) -> ExchangeRateCache:
        return self._cache

    @property
    def rates(self) -> dict[str, Decimal]:
        """Current table without touching the provider."""
        return dict(self._cache.table)

    async def get_all_rates(self) -> dict[str, Decimal]:
        """Cached rates, refreshed from the provider once the TTL has passed."""
        if self._cache.is_fresh(self._clock()):
            return self.rates
        return await self.refresh()

    async def refresh(self) -> dict[str, Decimal]:
        """Fetch rates now regardless of the TTL."""
        try:
            table = await asyncio.to_thread(self._provider.fetch_rates)
        except Exception as e:
            self._logger.warning("rate_refresh_failed", error=str(e))
            if self._audit_logger:
                await self._audit_logger.log_rate_refresh_failed(str(e))
            return self.rates

        self._cache.store(table, self._clock())
        self._logger.info("rates_refreshed", currencies=len(self._cache.table))
        return self.rates

    async def get_supported_currencies(self) -> dict[str, str]:
        if self._currencies is not None:
            return dict(self._currencies)
        try:
            self._currencies = await asyncio.to_thread(self._provider.fetch_currencies)
        except Exception as e:
            self._logger.warning("currency_list_failed", error=str(e))
            return dict(DEFAULT_CURRENCY_NAMES)
        return dict(self._currencies)

    def invalidate(self) -> None:
        self._cache.invalidate()
        self._currencies = None

    def convert(self, amount: Number, from_currency: str, to_currency: str) -> Decimal:
        """Convert with the currently cached table."""
        return convert_amount(amount, from_currency, to_currency, self._cache.table)

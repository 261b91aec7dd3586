"""Currency conversion and exchange rate services."""

from ledgerlink.services.currency.conversion import (
    CURRENCY_SYMBOLS,
    USD,
    Rates,
    convert_amount,
    convert_from_usd,
    convert_to_usd,
    format_clean,
    format_compact,
    format_currency,
    format_with_code,
    get_symbol,
    to_decimal,
)
from ledgerlink.services.currency.rates import (
    DEFAULT_CURRENCY_NAMES,
    DEFAULT_RATES,
    CurrencyService,
    ExchangeRateCache,
    FrankfurterRateProvider,
    RateProvider,
    RateProviderError,
)

__all__ = [
    # Conversion
    "CURRENCY_SYMBOLS",
    "USD",
    "Rates",
    "convert_amount",
    "convert_from_usd",
    "convert_to_usd",
    "format_clean",
    "format_compact",
    "format_currency",
    "format_with_code",
    "get_symbol",
    "to_decimal",
    # Rates
    "DEFAULT_CURRENCY_NAMES",
    "DEFAULT_RATES",
    "CurrencyService",
    "ExchangeRateCache",
    "FrankfurterRateProvider",
    "RateProvider",
    "RateProviderError",
]

"""
Currency Conversion and Formatting

Every cross-currency computation in the ledger pivots through USD:

    to_usd(amount, cur)   = amount / rates[cur]
    from_usd(usd, cur)    = usd * rates[cur]

DESIGN DECISION: An unknown currency code (or a zero rate) is treated as
rate 1. This is a deliberate leniency: conversion is used by background
processing that must never stop on a bad code. Tests pin this behaviour.

All functions here are pure. The rate table is always passed in.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Mapping, Union


USD = "USD"

Number = Union[Decimal, int, float, str]
Rates = Mapping[str, Number]

CURRENCY_SYMBOLS = {
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "JPY": "¥",
    "PHP": "₱",
    "INR": "₹",
    "KRW": "₩",
    "CNY": "CN¥",
    "CAD": "CA$",
    "AUD": "A$",
    "NZD": "NZ$",
    "MXN": "MX$",
    "BRL": "R$",
    "HKD": "HK$",
    "ILS": "₪",
    "VND": "₫",
}

# Currencies displayed without minor units
ZERO_DECIMAL_CURRENCIES = {"JPY", "KRW", "VND", "ISK", "CLP"}

COMPACT_SUFFIXES = (
    (Decimal(10) ** 12, "T"),
    (Decimal(10) ** 9, "B"),
    (Decimal(10) ** 6, "M"),
    (Decimal(10) ** 3, "K"),
)


def to_decimal(value: Number) -> Decimal:
    """Convert int/float/str to Decimal without float artefacts."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _rate(currency: str, rates: Rates) -> Decimal:
    rate = rates.get(currency.upper())
    if not rate:
        return Decimal(1)
    return to_decimal(rate)


def convert_to_usd(amount: Number, from_currency: str, rates: Rates) -> Decimal:
    """Convert an amount in `from_currency` to USD."""
    amount = to_decimal(amount)
    if from_currency.upper() == USD:
        return amount
    return amount / _rate(from_currency, rates)


def convert_from_usd(amount_usd: Number, to_currency: str, rates: Rates) -> Decimal:
    """Convert a USD amount to `to_currency`."""
    amount_usd = to_decimal(amount_usd)
    if to_currency.upper() == USD:
        return amount_usd
    return amount_usd * _rate(to_currency, rates)


def convert_amount(
    amount: Number,
    from_currency: str,
    to_currency: str,
    rates: Rates,
) -> Decimal:
    """
    Convert between any two currencies via the USD pivot.

    Same-currency conversion returns the amount untouched.
    """
    amount = to_decimal(amount)
    if from_currency.upper() == to_currency.upper():
        return amount
    return convert_from_usd(convert_to_usd(amount, from_currency, rates), to_currency, rates)


# =============================================================================
# FORMATTING
# =============================================================================

def get_symbol(currency: str) -> str:
    """Display symbol for a currency, or the code itself if unknown."""
    code = currency.upper()
    return CURRENCY_SYMBOLS.get(code, code)


def _fraction_digits(currency: str) -> int:
    return 0 if currency.upper() in ZERO_DECIMAL_CURRENCIES else 2


def _prefix(currency: str, use_code: bool) -> str:
    code = currency.upper()
    symbol = CURRENCY_SYMBOLS.get(code)
    if use_code or symbol is None:
        return f"{code} "
    return symbol


def _render(amount: Decimal, currency: str, digits: int, use_code: bool = False) -> str:
    quantum = Decimal(1).scaleb(-digits)
    value = amount.quantize(quantum, rounding=ROUND_HALF_UP)
    sign = "-" if value < 0 else ""
    number = f"{abs(value):,.{digits}f}"
    return f"{sign}{_prefix(currency, use_code)}{number}"


def format_currency(amount: Number, currency: str) -> str:
    """
    en-US style currency string, e.g. "$1,234.56", "-€5.00", "¥1,500".

    Unknown codes render as "XYZ 1,234.56".
    """
    return _render(to_decimal(amount), currency, _fraction_digits(currency))


def format_with_code(amount: Number, currency: str) -> str:
    """Same as format_currency but always shows the ISO code: "PHP 1,000.00"."""
    return _render(to_decimal(amount), currency, _fraction_digits(currency), use_code=True)


def format_clean(amount: Number, currency: str) -> str:
    """
    Currency string that drops the fraction for whole amounts.

    format_clean(100, "USD") -> "$100"
    format_clean(100.5, "USD") -> "$100.50"
    """
    amount = to_decimal(amount)
    digits = _fraction_digits(currency)
    rounded = amount.quantize(Decimal(1).scaleb(-digits), rounding=ROUND_HALF_UP)
    if rounded == rounded.to_integral_value():
        digits = 0
    return _render(amount, currency, digits)


def format_compact(amount: Number, currency: str, max_len: int = 9) -> str:
    """
    Clean format if it fits in `max_len` characters, else SI-abbreviated.

    format_compact(1250000, "USD") -> "$1.3M"
    format_compact(-2530000, "EUR") -> "-€2.5M"
    """
    amount = to_decimal(amount)
    clean = format_clean(amount, currency)
    if len(clean) <= max_len:
        return clean

    magnitude = abs(amount)
    for threshold, suffix in COMPACT_SUFFIXES:
        if magnitude >= threshold:
            scaled = (magnitude / threshold).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)
            number = f"{scaled:f}"
            if number.endswith(".0"):
                number = number[:-2]
            sign = "-" if amount < 0 else ""
            return f"{sign}{_prefix(currency, use_code=False)}{number}{suffix}"

    # Long only because of the prefix (e.g. unknown code); nothing to abbreviate
    return clean

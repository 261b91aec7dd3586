"""Validation package."""

from ledgerlink.validation.validator import (
    TransactionValidator,
    is_valid_string,
    parse_amount,
)

__all__ = ["TransactionValidator", "is_valid_string", "parse_amount"]

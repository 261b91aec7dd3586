"""
Ledger Exceptions

Three families, matching how callers must react:

- LedgerValidationError: bad input, raised before any store call
- LedgerNotFoundError: a record vanished; raised inside an atomic unit,
  which is then rolled back
- LedgerPreconditionError: a record is in the wrong state (e.g. already
  paid); raised inside an atomic unit before any write
"""

from decimal import Decimal
from typing import Optional

from ledgerlink.services.currency.conversion import format_currency


class LedgerError(Exception):
    """Base exception for ledger operations."""
    pass


class LedgerValidationError(LedgerError):
    """User input rejected before touching the store."""

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)


class InsufficientBalanceError(LedgerValidationError):
    """Wallet balance does not cover an expense."""

    def __init__(
        self,
        wallet_name: str,
        available: Decimal,
        required: Decimal,
        currency: str,
        message: Optional[str] = None,
    ):
        self.wallet_name = wallet_name
        self.available = available
        self.required = required
        self.currency = currency
        super().__init__(
            message or (
                f"Insufficient balance in {wallet_name}. "
                f"Available: {format_currency(available, currency)}, "
                f"Required: {format_currency(required, currency)}"
            ),
            field="amount",
        )


class LedgerNotFoundError(LedgerError):
    """A record required by an operation does not exist."""
    pass


class WalletNotFoundError(LedgerNotFoundError):
    def __init__(self, wallet_id: str):
        self.wallet_id = wallet_id
        super().__init__(f"Wallet does not exist: {wallet_id}")


class TransactionNotFoundError(LedgerNotFoundError):
    def __init__(self, transaction_id: str):
        self.transaction_id = transaction_id
        super().__init__(f"Transaction does not exist: {transaction_id}")


class BillNotFoundError(LedgerNotFoundError):
    def __init__(self, bill_id: str):
        self.bill_id = bill_id
        super().__init__(f"Bill does not exist: {bill_id}")


class LedgerPreconditionError(LedgerError):
    """A record is not in the state the operation requires."""
    pass


class BillAlreadyPaidError(LedgerPreconditionError):
    def __init__(self, bill_id: str):
        self.bill_id = bill_id
        super().__init__(f"Bill is already paid: {bill_id}")

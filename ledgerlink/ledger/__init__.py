"""
Ledger core: balance consistency, bill recurrence, auto-deduction and
dashboard aggregation.
"""

from ledgerlink.ledger.autopay import AutoDeductionOrchestrator, ProcessingGuard
from ledgerlink.ledger.balance import WalletBalanceEngine, ensure_sufficient_balance
from ledgerlink.ledger.dashboard import (
    DashboardAggregator,
    compute_dashboard_stats,
    percent_change,
    period_windows,
    total_for_flow,
)
from ledgerlink.ledger.errors import (
    BillAlreadyPaidError,
    BillNotFoundError,
    InsufficientBalanceError,
    LedgerError,
    LedgerNotFoundError,
    LedgerPreconditionError,
    LedgerValidationError,
    TransactionNotFoundError,
    WalletNotFoundError,
)
from ledgerlink.ledger.recurrence import (
    BillRecurrenceEngine,
    InstanceMatch,
    InstanceMatchKind,
    calculate_next_due_date,
    find_existing_instance,
    has_due_bills,
    instance_id,
)
from ledgerlink.ledger.repository import LedgerRepository

__all__ = [
    # Engines
    "AutoDeductionOrchestrator",
    "BillRecurrenceEngine",
    "DashboardAggregator",
    "LedgerRepository",
    "ProcessingGuard",
    "WalletBalanceEngine",
    # Functions
    "calculate_next_due_date",
    "compute_dashboard_stats",
    "ensure_sufficient_balance",
    "find_existing_instance",
    "has_due_bills",
    "instance_id",
    "percent_change",
    "period_windows",
    "total_for_flow",
    "InstanceMatch",
    "InstanceMatchKind",
    # Exceptions
    "BillAlreadyPaidError",
    "BillNotFoundError",
    "InsufficientBalanceError",
    "LedgerError",
    "LedgerNotFoundError",
    "LedgerPreconditionError",
    "LedgerValidationError",
    "TransactionNotFoundError",
    "WalletNotFoundError",
]

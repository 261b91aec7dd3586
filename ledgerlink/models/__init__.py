"""
Data Models Package

This package contains all Pydantic models used by the LedgerLink core.
All records read from or written to the ledger store conform to these schemas.
"""

from ledgerlink.models.ledger import (
    Bill,
    BillFrequency,
    Category,
    DashboardStats,
    LedgerDocument,
    ProcessingResult,
    Timeframe,
    Transaction,
    TransactionFlow,
    ValidationIssue,
    ValidationResult,
    Wallet,
)
from ledgerlink.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "Bill",
    "BillFrequency",
    "Category",
    "DashboardStats",
    "LedgerDocument",
    "ProcessingResult",
    "Timeframe",
    "Transaction",
    "TransactionFlow",
    "ValidationIssue",
    "ValidationResult",
    "Wallet",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]

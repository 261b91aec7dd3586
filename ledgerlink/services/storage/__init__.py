"""
Storage Services Package

Provides the abstract ledger store contract and an in-memory implementation.
Backends are swappable: ledger rules only talk to LedgerStoreInterface.
"""

from ledgerlink.services.storage.interface import (
    BILLS,
    CATEGORIES,
    TRANSACTIONS,
    WALLETS,
    AtomicTransaction,
    AtomicTransactionError,
    AuditStorageInterface,
    Document,
    DocumentRef,
    LedgerStoreInterface,
    LiveQuery,
    NotFoundError,
    StorageError,
    Unsubscribe,
)
from ledgerlink.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryLedgerStore,
)

__all__ = [
    # Collections
    "BILLS",
    "CATEGORIES",
    "TRANSACTIONS",
    "WALLETS",
    # Interfaces
    "AtomicTransaction",
    "AuditStorageInterface",
    "Document",
    "DocumentRef",
    "LedgerStoreInterface",
    "LiveQuery",
    "Unsubscribe",
    # Exceptions
    "AtomicTransactionError",
    "NotFoundError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryLedgerStore",
]

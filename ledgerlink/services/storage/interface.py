"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap the document store backend without touching ledger rules
2. Use in-memory storage for testing
3. Keep business logic decoupled from storage implementation

The ledger core needs exactly two capabilities from a store:
- atomic multi-document read-modify-write (run_atomic)
- live queries that push the current matching documents on every change

Everything else is convenience built on plain get/set/update/delete.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

from ledgerlink.models.audit import AuditEvent


T = TypeVar("T")

WALLETS = "wallets"
TRANSACTIONS = "transactions"
BILLS = "bills"
CATEGORIES = "categories"


@dataclass(frozen=True)
class DocumentRef:
    """Address of one document: collection name plus document id."""

    collection: str
    id: str


@dataclass(frozen=True)
class LiveQuery:
    """
    A per-user live view over one collection.

    Documents are filtered by user_id, ordered by `order_by` when set,
    and truncated to `limit` when set.
    """

    collection: str
    user_id: str
    order_by: Optional[str] = None
    descending: bool = False
    limit: Optional[int] = None
    include_shared: bool = False  # also match documents with user_id None


Document = dict[str, Any]
SnapshotCallback = Callable[[list[Document]], None]
ErrorCallback = Callable[[Exception], None]
Unsubscribe = Callable[[], None]


class AtomicTransaction(ABC):
    """
    Handle passed to a run_atomic callback.

    All reads must happen before writes. Writes are buffered and applied
    together when the callback returns; if it raises, none are applied.
    """

    @abstractmethod
    async def read(self, ref: DocumentRef) -> Optional[Document]:
        """
        Read a document inside the unit.

        Returns:
            The document payload (with an "id" key), or None if absent
        """
        pass

    @abstractmethod
    def write(self, ref: DocumentRef, data: Document) -> None:
        """Create or replace a document."""
        pass

    @abstractmethod
    def update(self, ref: DocumentRef, partial: Document) -> None:
        """
        Merge fields into an existing document.

        Raises:
            NotFoundError: at commit time if the document does not exist
        """
        pass

    @abstractmethod
    def delete(self, ref: DocumentRef) -> None:
        """Delete a document (no-op if absent)."""
        pass


class LedgerStoreInterface(ABC):
    """
    Abstract interface for the ledger document store.

    Any backend must implement these methods. Implementations guarantee that
    run_atomic units are serializable: concurrent units touching the same
    documents behave as if they ran one after another.
    """

    @abstractmethod
    def new_ref(self, collection: str) -> DocumentRef:
        """Allocate a reference with a fresh unique id."""
        pass

    @abstractmethod
    async def run_atomic(
        self,
        callback: Callable[[AtomicTransaction], Awaitable[T]],
    ) -> T:
        """
        Run callback as one all-or-nothing unit.

        Args:
            callback: Coroutine function receiving the transaction handle

        Returns:
            Whatever the callback returns

        Raises:
            Whatever the callback raises (nothing is written in that case)
            AtomicTransactionError: If the backend fails to commit
        """
        pass

    @abstractmethod
    async def get(self, ref: DocumentRef) -> Optional[Document]:
        """Read one document outside any atomic unit."""
        pass

    @abstractmethod
    async def set(self, ref: DocumentRef, data: Document) -> None:
        """Create or replace one document."""
        pass

    @abstractmethod
    async def update(self, ref: DocumentRef, partial: Document) -> None:
        """
        Merge fields into one document.

        Raises:
            NotFoundError: If the document doesn't exist
        """
        pass

    @abstractmethod
    async def delete(self, ref: DocumentRef) -> None:
        """Delete one document (no-op if absent)."""
        pass

    @abstractmethod
    async def query(self, live_query: LiveQuery) -> list[Document]:
        """Return the documents currently matching a live query."""
        pass

    @abstractmethod
    def subscribe(
        self,
        live_query: LiveQuery,
        on_snapshot: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Unsubscribe:
        """
        Start a change stream.

        on_snapshot is called once with the current matches and again after
        every committed change to the collection. Listener failures are
        reported through on_error.

        Returns:
            A function that stops the stream
        """
        pass

    async def add(self, collection: str, data: Document) -> DocumentRef:
        """Create a document with a fresh id."""
        ref = self.new_ref(collection)
        await self.set(ref, data)
        return ref


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """Get all events for a specific entity, oldest first."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get the most recent audit events, newest first."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class AtomicTransactionError(StorageError):
    """An atomic unit could not be committed."""
    pass

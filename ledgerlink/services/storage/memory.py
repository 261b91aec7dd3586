"""
In-Memory Storage Implementation

DESIGN DECISION: The in-memory store is a complete implementation of the
store contract, not a mock. It is the backend for tests and for running the
ledger core locally, and it is the reference for what "atomic" means:

- One asyncio.Lock serializes every write path, so atomic units never
  interleave their read-then-write phases.
- Writes inside a unit are buffered and staged against a copy of the
  affected collections; the copy replaces the live data only if every
  buffered operation succeeds.
- Listeners are notified after the lock is released, with the full
  current result of their query.

TRADEOFFS:
- Single process only (no cross-process isolation)
- Data is lost on exit
"""

import asyncio
import copy
import itertools
from collections import defaultdict
from typing import Awaitable, Callable, Optional, TypeVar
from uuid import uuid4

import structlog

from ledgerlink.models.audit import AuditEvent
from ledgerlink.services.storage.interface import (
    AtomicTransaction,
    AtomicTransactionError,
    AuditStorageInterface,
    Document,
    DocumentRef,
    ErrorCallback,
    LedgerStoreInterface,
    LiveQuery,
    NotFoundError,
    SnapshotCallback,
    Unsubscribe,
)


T = TypeVar("T")

logger = structlog.get_logger(__name__)


class _BufferedTransaction(AtomicTransaction):
    """Collects the operations of one run_atomic callback."""

    def __init__(self, store: "InMemoryLedgerStore"):
        self._store = store
        self.operations: list[tuple[str, DocumentRef, Optional[Document]]] = []

    async def read(self, ref: DocumentRef) -> Optional[Document]:
        if self.operations:
            raise AtomicTransactionError(
                "Atomic units must perform all reads before any write"
            )
        return self._store._read(ref)

    def write(self, ref: DocumentRef, data: Document) -> None:
        self.operations.append(("write", ref, copy.deepcopy(data)))

    def update(self, ref: DocumentRef, partial: Document) -> None:
        self.operations.append(("update", ref, copy.deepcopy(partial)))

    def delete(self, ref: DocumentRef) -> None:
        self.operations.append(("delete", ref, None))


class InMemoryLedgerStore(LedgerStoreInterface):
    """
    Process-local document store with serializable atomic units
    and change notifications.
    """

    def __init__(self):
        self._collections: dict[str, dict[str, Document]] = defaultdict(dict)
        self._lock = asyncio.Lock()
        self._listeners: dict[int, tuple[LiveQuery, SnapshotCallback, Optional[ErrorCallback]]] = {}
        self._listener_ids = itertools.count()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _read(self, ref: DocumentRef) -> Optional[Document]:
        data = self._collections[ref.collection].get(ref.id)
        if data is None:
            return None
        return {**copy.deepcopy(data), "id": ref.id}

    def _commit(self, operations) -> set[str]:
        """Apply buffered operations all-or-nothing. Returns touched collections."""
        touched = {ref.collection for _, ref, _ in operations}
        staged = {name: dict(self._collections[name]) for name in touched}

        for op, ref, data in operations:
            docs = staged[ref.collection]
            if op == "write":
                docs[ref.id] = {k: v for k, v in data.items() if k != "id"}
            elif op == "update":
                if ref.id not in docs:
                    raise NotFoundError(
                        f"Cannot update missing document {ref.collection}/{ref.id}"
                    )
                docs[ref.id] = {**docs[ref.id], **{k: v for k, v in data.items() if k != "id"}}
            elif op == "delete":
                docs.pop(ref.id, None)

        for name, docs in staged.items():
            self._collections[name] = docs
        return touched

    def _matches(self, live_query: LiveQuery) -> list[Document]:
        docs = [
            {**copy.deepcopy(data), "id": doc_id}
            for doc_id, data in self._collections[live_query.collection].items()
            if data.get("user_id") == live_query.user_id
            or (live_query.include_shared and data.get("user_id") is None)
        ]
        if live_query.order_by:
            key = live_query.order_by
            present = [d for d in docs if d.get(key) is not None]
            missing = [d for d in docs if d.get(key) is None]
            present.sort(key=lambda d: d[key], reverse=live_query.descending)
            docs = present + missing
        if live_query.limit is not None:
            docs = docs[:live_query.limit]
        return docs

    def _notify(self, collections: set[str]) -> None:
        for query_, on_snapshot, on_error in list(self._listeners.values()):
            if query_.collection not in collections:
                continue
            self._deliver(query_, on_snapshot, on_error)

    def _deliver(self, live_query, on_snapshot, on_error) -> None:
        try:
            on_snapshot(self._matches(live_query))
        except Exception as e:
            logger.error(
                "listener_failed",
                collection=live_query.collection,
                error=str(e),
            )
            if on_error is not None:
                on_error(e)

    # ------------------------------------------------------------------
    # LedgerStoreInterface
    # ------------------------------------------------------------------
    def new_ref(self, collection: str) -> DocumentRef:
        return DocumentRef(collection, uuid4().hex)

    async def run_atomic(
        self,
        callback: Callable[[AtomicTransaction], Awaitable[T]],
    ) -> T:
        async with self._lock:
            transaction = _BufferedTransaction(self)
            result = await callback(transaction)
            touched = self._commit(transaction.operations)
        self._notify(touched)
        return result

    async def get(self, ref: DocumentRef) -> Optional[Document]:
        return self._read(ref)

    async def set(self, ref: DocumentRef, data: Document) -> None:
        async with self._lock:
            touched = self._commit([("write", ref, copy.deepcopy(data))])
        self._notify(touched)

    async def update(self, ref: DocumentRef, partial: Document) -> None:
        async with self._lock:
            touched = self._commit([("update", ref, copy.deepcopy(partial))])
        self._notify(touched)

    async def delete(self, ref: DocumentRef) -> None:
        async with self._lock:
            touched = self._commit([("delete", ref, None)])
        self._notify(touched)

    async def query(self, live_query: LiveQuery) -> list[Document]:
        return self._matches(live_query)

    def subscribe(
        self,
        live_query: LiveQuery,
        on_snapshot: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Unsubscribe:
        listener_id = next(self._listener_ids)
        self._listeners[listener_id] = (live_query, on_snapshot, on_error)
        self._deliver(live_query, on_snapshot, on_error)

        def unsubscribe() -> None:
            self._listeners.pop(listener_id, None)

        return unsubscribe

    @property
    def listener_count(self) -> int:
        return len(self._listeners)


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only audit log kept in a list."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = sorted(self._events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]

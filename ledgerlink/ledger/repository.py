"""
Typed record access on top of the ledger store.

Nothing here moves a wallet balance as a side effect of another record;
balance-consistent operations live in ledgerlink.ledger.balance.
"""

from typing import Any, Optional

from ledgerlink.ledger.errors import (
    BillNotFoundError,
    TransactionNotFoundError,
    WalletNotFoundError,
)
from ledgerlink.models.ledger import Bill, Category, Transaction, Wallet
from ledgerlink.services.storage import (
    BILLS,
    CATEGORIES,
    TRANSACTIONS,
    WALLETS,
    DocumentRef,
    LedgerStoreInterface,
    LiveQuery,
    NotFoundError,
)


class LedgerRepository:
    """CRUD for wallets, bills, transactions and categories."""

    def __init__(self, store: LedgerStoreInterface):
        self._store = store

    @property
    def store(self) -> LedgerStoreInterface:
        return self._store

    async def _update(self, ref: DocumentRef, changes: dict[str, Any], missing_error) -> None:
        try:
            await self._store.update(ref, changes)
        except NotFoundError:
            raise missing_error(ref.id)

    # ------------------------------------------------------------------
    # Wallets
    # ------------------------------------------------------------------
    async def add_wallet(self, wallet: Wallet) -> Wallet:
        ref = await self._store.add(WALLETS, wallet.to_document())
        return wallet.model_copy(update={"id": ref.id})

    async def get_wallet(self, wallet_id: str) -> Optional[Wallet]:
        data = await self._store.get(DocumentRef(WALLETS, wallet_id))
        return Wallet.from_document(wallet_id, data) if data else None

    async def update_wallet(self, wallet_id: str, changes: dict[str, Any]) -> None:
        """
        Explicit user edit of a wallet (name, color, or a manual balance correction).

        Raises:
            WalletNotFoundError: If the wallet doesn't exist
        """
        await self._update(DocumentRef(WALLETS, wallet_id), changes, WalletNotFoundError)

    async def delete_wallet(self, wallet_id: str) -> None:
        await self._store.delete(DocumentRef(WALLETS, wallet_id))

    async def list_wallets(self, user_id: str, limit: Optional[int] = None) -> list[Wallet]:
        docs = await self._store.query(
            LiveQuery(WALLETS, user_id, order_by="created_at", descending=True, limit=limit)
        )
        return [Wallet.from_document(d["id"], d) for d in docs]

    # ------------------------------------------------------------------
    # Bills
    # ------------------------------------------------------------------
    async def add_bill(self, bill: Bill) -> Bill:
        ref = await self._store.add(BILLS, bill.to_document())
        return bill.model_copy(update={"id": ref.id})

    async def get_bill(self, bill_id: str) -> Optional[Bill]:
        data = await self._store.get(DocumentRef(BILLS, bill_id))
        return Bill.from_document(bill_id, data) if data else None

    async def update_bill(self, bill_id: str, changes: dict[str, Any]) -> None:
        await self._update(DocumentRef(BILLS, bill_id), changes, BillNotFoundError)

    async def delete_bill(self, bill_id: str) -> None:
        """Delete one bill. Instances generated from a template are kept."""
        await self._store.delete(DocumentRef(BILLS, bill_id))

    async def list_bills(self, user_id: str, limit: Optional[int] = None) -> list[Bill]:
        docs = await self._store.query(
            LiveQuery(BILLS, user_id, order_by="due_date", limit=limit)
        )
        return [Bill.from_document(d["id"], d) for d in docs]

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------
    async def add_transaction(self, transaction: Transaction) -> Transaction:
        """Store a transaction without any wallet effect."""
        ref = await self._store.add(TRANSACTIONS, transaction.to_document())
        return transaction.model_copy(update={"id": ref.id})

    async def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        data = await self._store.get(DocumentRef(TRANSACTIONS, transaction_id))
        return Transaction.from_document(transaction_id, data) if data else None

    async def update_transaction(self, transaction_id: str, changes: dict[str, Any]) -> None:
        await self._update(
            DocumentRef(TRANSACTIONS, transaction_id), changes, TransactionNotFoundError
        )

    async def list_transactions(
        self,
        user_id: str,
        limit: Optional[int] = None,
    ) -> list[Transaction]:
        docs = await self._store.query(
            LiveQuery(TRANSACTIONS, user_id, order_by="created_at", descending=True, limit=limit)
        )
        return [Transaction.from_document(d["id"], d) for d in docs]

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------
    async def add_category(self, category: Category) -> Category:
        ref = await self._store.add(CATEGORIES, category.to_document())
        return category.model_copy(update={"id": ref.id})

    async def list_categories(self, user_id: str) -> list[Category]:
        docs = await self._store.query(LiveQuery(CATEGORIES, user_id, order_by="name"))
        return [Category.from_document(d["id"], d) for d in docs]

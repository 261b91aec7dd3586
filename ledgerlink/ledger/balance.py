"""
Wallet Balance Engine

Keeps every wallet's balance consistent with the transactions recorded
against it.

CRITICAL: A wallet balance is only ever changed inside an atomic unit that
also writes (or deletes) the transaction responsible for the change. The
engine never overwrites a balance it did not read in the same unit, so
concurrent writers against one wallet cannot lose each other's updates.

What the engine does NOT do:
- Check sufficiency of funds inside the atomic unit. That is the caller's
  job (see ensure_sufficient_balance), done before the unit is attempted.
- Re-adjust balances when an existing transaction is edited. Editing
  changes the transaction record only.
"""

from decimal import Decimal
from typing import Any, Optional

import structlog

from ledgerlink.audit import AuditLogger
from ledgerlink.config import BillProcessingSettings, get_settings
from ledgerlink.ledger.errors import (
    BillAlreadyPaidError,
    BillNotFoundError,
    InsufficientBalanceError,
    LedgerValidationError,
    TransactionNotFoundError,
    WalletNotFoundError,
)
from ledgerlink.models.ledger import Bill, Transaction, TransactionFlow, Wallet
from ledgerlink.services.currency import Rates, convert_amount
from ledgerlink.services.storage import (
    BILLS,
    TRANSACTIONS,
    WALLETS,
    AtomicTransaction,
    DocumentRef,
    LedgerStoreInterface,
)


logger = structlog.get_logger(__name__)

# Fields a transaction edit may not touch
IMMUTABLE_TRANSACTION_FIELDS = {"id", "user_id", "created_at"}


def ensure_sufficient_balance(
    wallet: Wallet,
    amount: Decimal,
    currency: str,
    rates: Rates,
) -> Decimal:
    """
    Check that `wallet` can cover an expense of `amount` in `currency`.

    Returns:
        The required amount in the wallet's currency

    Raises:
        InsufficientBalanceError: If wallet.balance < required
    """
    required = convert_amount(abs(amount), currency, wallet.currency, rates)
    if wallet.balance < required:
        raise InsufficientBalanceError(
            wallet_name=wallet.name,
            available=wallet.balance,
            required=required,
            currency=wallet.currency,
        )
    return required


async def _read_wallet(tx: AtomicTransaction, wallet_id: str) -> Wallet:
    data = await tx.read(DocumentRef(WALLETS, wallet_id))
    if data is None:
        raise WalletNotFoundError(wallet_id)
    return Wallet.from_document(wallet_id, data)


class WalletBalanceEngine:
    """
    Atomic create/delete/pay operations that move wallet balances.

    Every public coroutine either fully succeeds or raises with nothing
    written.
    """

    def __init__(
        self,
        store: LedgerStoreInterface,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[BillProcessingSettings] = None,
    ):
        self._store = store
        self._audit_logger = audit_logger
        self._settings = settings or get_settings().bill_processing

    async def add_transaction_with_wallet(
        self,
        transaction: Transaction,
        rates: Rates,
    ) -> Transaction:
        """
        Store a transaction and apply it to its wallet in one unit.

        Without a wallet_id the transaction is stored with no balance effect.
        Otherwise the amount is converted to the wallet's currency and added
        to its balance (negative amounts decrease it).

        Returns:
            The stored transaction, with its id

        Raises:
            WalletNotFoundError: If the wallet doesn't exist (nothing written)
        """
        tx_ref = self._store.new_ref(TRANSACTIONS)

        if not transaction.wallet_id:
            await self._store.set(tx_ref, transaction.to_document())
            stored = transaction.model_copy(update={"id": tx_ref.id})
            logger.info("transaction_recorded", transaction_id=tx_ref.id, wallet_id=None)
            await self._audit_created(stored)
            return stored

        async def unit(tx: AtomicTransaction) -> Decimal:
            wallet = await _read_wallet(tx, transaction.wallet_id)
            adjusted = convert_amount(
                transaction.amount, transaction.currency, wallet.currency, rates
            )
            new_balance = wallet.balance + adjusted

            tx.write(tx_ref, transaction.to_document())
            tx.update(DocumentRef(WALLETS, wallet.id), {"balance": new_balance})
            return new_balance

        new_balance = await self._store.run_atomic(unit)
        stored = transaction.model_copy(update={"id": tx_ref.id})
        logger.info(
            "transaction_recorded",
            transaction_id=tx_ref.id,
            wallet_id=transaction.wallet_id,
            new_balance=str(new_balance),
        )
        await self._audit_created(stored)
        return stored

    async def delete_transaction_with_wallet(
        self,
        transaction_id: str,
        rates: Rates,
    ) -> Optional[Decimal]:
        """
        Delete a transaction and reverse its original effect on its wallet.

        Returns:
            The amount added back to the wallet (in wallet currency),
            or None if the transaction had no wallet

        Raises:
            TransactionNotFoundError: If already deleted
            WalletNotFoundError: If the linked wallet no longer exists
        """
        tx_ref = DocumentRef(TRANSACTIONS, transaction_id)

        async def unit(tx: AtomicTransaction) -> tuple[Transaction, Optional[Decimal]]:
            data = await tx.read(tx_ref)
            if data is None:
                raise TransactionNotFoundError(transaction_id)
            record = Transaction.from_document(transaction_id, data)

            if not record.wallet_id:
                tx.delete(tx_ref)
                return record, None

            wallet = await _read_wallet(tx, record.wallet_id)
            amount_to_reverse = convert_amount(
                -record.amount, record.currency, wallet.currency, rates
            )
            tx.update(
                DocumentRef(WALLETS, wallet.id),
                {"balance": wallet.balance + amount_to_reverse},
            )
            tx.delete(tx_ref)
            return record, amount_to_reverse

        record, reversed_amount = await self._store.run_atomic(unit)
        logger.info(
            "transaction_deleted",
            transaction_id=transaction_id,
            wallet_id=record.wallet_id,
            reversed_amount=str(reversed_amount) if reversed_amount is not None else None,
        )
        if self._audit_logger:
            await self._audit_logger.log_transaction_deleted(
                transaction_id=transaction_id,
                wallet_id=record.wallet_id,
                reversed_amount=str(reversed_amount) if reversed_amount is not None else None,
            )
        return reversed_amount

    async def pay_bill_atomic(
        self,
        bill_id: str,
        rates: Rates,
        wallet_id: Optional[str] = None,
        automatic: bool = False,
        correlation_id=None,
    ) -> Transaction:
        """
        Pay a bill from a wallet: expense transaction, balance update and
        is_paid flag, all in one unit.

        Args:
            bill_id: Bill to pay
            rates: Rate table for converting the bill into wallet currency
            wallet_id: Wallet to pay from (defaults to the bill's own wallet)
            automatic: True when called by background auto-deduction

        Returns:
            The payment transaction

        Raises:
            BillNotFoundError: If the bill doesn't exist
            BillAlreadyPaidError: If the bill is already paid (nothing written)
            WalletNotFoundError: If the wallet doesn't exist
        """
        bill_ref = DocumentRef(BILLS, bill_id)
        payment_ref = self._store.new_ref(TRANSACTIONS)

        async def unit(tx: AtomicTransaction) -> tuple[Bill, Transaction]:
            data = await tx.read(bill_ref)
            if data is None:
                raise BillNotFoundError(bill_id)
            bill = Bill.from_document(bill_id, data)
            if bill.is_paid:
                raise BillAlreadyPaidError(bill_id)

            source_id = wallet_id or bill.wallet_id
            if not source_id:
                raise LedgerValidationError(
                    f"Bill '{bill.title}' has no wallet to pay from", field="wallet_id"
                )
            wallet = await _read_wallet(tx, source_id)
            amount = convert_amount(bill.amount, bill.currency, wallet.currency, rates)

            payment = Transaction(
                user_id=bill.user_id,
                wallet_id=wallet.id,
                flow=TransactionFlow.EXPENSE,
                category_id=self._settings.auto_pay_category_id,
                currency=wallet.currency,
                title=f"Auto-pay: {bill.title}" if automatic else f"Paid: {bill.title}",
                subtitle="Automatic Bill Payment" if automatic else "Bill Payment",
                amount=-amount,
            )
            tx.write(payment_ref, payment.to_document())
            tx.update(DocumentRef(WALLETS, wallet.id), {"balance": wallet.balance - amount})
            tx.update(bill_ref, {"is_paid": True})
            return bill, payment.model_copy(update={"id": payment_ref.id})

        bill, payment = await self._store.run_atomic(unit)
        logger.info(
            "bill_paid",
            bill_id=bill_id,
            wallet_id=payment.wallet_id,
            amount=str(-payment.amount),
            automatic=automatic,
        )
        if self._audit_logger:
            await self._audit_logger.log_bill_paid(
                bill_id=bill_id,
                wallet_id=payment.wallet_id,
                amount=str(-payment.amount),
                automatic=automatic,
                correlation_id=correlation_id,
            )
        return payment

    async def update_transaction(
        self,
        transaction_id: str,
        changes: dict[str, Any],
    ) -> Transaction:
        """
        Edit stored transaction fields.

        The linked wallet's balance is NOT touched: it keeps reflecting the
        amount the transaction had when it was created.

        Raises:
            TransactionNotFoundError: If the transaction doesn't exist
            LedgerValidationError: If the edit touches an immutable field
                or produces an invalid record
        """
        forbidden = IMMUTABLE_TRANSACTION_FIELDS.intersection(changes)
        if forbidden:
            raise LedgerValidationError(
                f"Cannot edit transaction fields: {', '.join(sorted(forbidden))}",
                field=sorted(forbidden)[0],
            )

        tx_ref = DocumentRef(TRANSACTIONS, transaction_id)
        data = await self._store.get(tx_ref)
        if data is None:
            raise TransactionNotFoundError(transaction_id)

        try:
            updated = Transaction.from_document(transaction_id, {**data, **changes})
        except ValueError as e:
            raise LedgerValidationError(f"Invalid transaction edit: {e}")

        stored = updated.to_document()
        await self._store.update(tx_ref, {key: stored[key] for key in changes})
        logger.info("transaction_updated", transaction_id=transaction_id, fields=sorted(changes))
        if self._audit_logger:
            await self._audit_logger.log_transaction_updated(
                transaction_id=transaction_id,
                fields=sorted(changes),
            )
        return updated

    async def transfer_between_wallets(
        self,
        source: Wallet,
        destination: Wallet,
        amount: Decimal,
        currency: str,
        rates: Rates,
        subtitle: str = "",
        category_id: str = "transfer",
    ) -> tuple[Transaction, Transaction]:
        """
        Move money between two wallets as an expense leg and an income leg.

        KNOWN GAP: the legs are two separate atomic units run one after the
        other. If the second fails, the source wallet stays debited; the
        failure is logged and re-raised.

        Returns:
            (expense_leg, income_leg)
        """
        source_amount = convert_amount(abs(amount), currency, source.currency, rates)
        destination_amount = convert_amount(abs(amount), currency, destination.currency, rates)

        expense_leg = await self.add_transaction_with_wallet(
            Transaction(
                user_id=source.user_id,
                wallet_id=source.id,
                flow=TransactionFlow.EXPENSE,
                category_id=category_id,
                currency=source.currency,
                title=f"Transfer to {destination.name}",
                subtitle=subtitle or "Wallet Transfer",
                amount=-source_amount,
            ),
            rates,
        )

        try:
            income_leg = await self.add_transaction_with_wallet(
                Transaction(
                    user_id=destination.user_id,
                    wallet_id=destination.id,
                    flow=TransactionFlow.INCOME,
                    category_id=category_id,
                    currency=destination.currency,
                    title=f"Transfer from {source.name}",
                    subtitle=subtitle or "Wallet Transfer",
                    amount=destination_amount,
                ),
                rates,
            )
        except Exception as e:
            logger.error(
                "transfer_half_applied",
                expense_transaction_id=expense_leg.id,
                source_wallet_id=source.id,
                destination_wallet_id=destination.id,
                error=str(e),
            )
            raise

        if self._audit_logger:
            await self._audit_logger.log_transfer_completed(
                source_wallet_id=source.id,
                destination_wallet_id=destination.id,
                amount=str(abs(amount)),
                currency=currency,
            )
        return expense_leg, income_leg

    async def _audit_created(self, transaction: Transaction) -> None:
        if self._audit_logger:
            await self._audit_logger.log_transaction_created(
                transaction_id=transaction.id,
                wallet_id=transaction.wallet_id,
                amount=str(transaction.amount),
                currency=transaction.currency,
            )

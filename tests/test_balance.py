"""
Tests for the wallet balance engine.

Every test checks the store afterwards: an operation either applied all of
its writes or none of them.
"""

import asyncio
import pytest
from decimal import Decimal

from ledgerlink.audit import AuditLogger
from ledgerlink.config import BillProcessingSettings
from ledgerlink.ledger import (
    BillAlreadyPaidError,
    BillNotFoundError,
    InsufficientBalanceError,
    LedgerValidationError,
    TransactionNotFoundError,
    WalletBalanceEngine,
    WalletNotFoundError,
    ensure_sufficient_balance,
)
from ledgerlink.models.ledger import Bill, Transaction, TransactionFlow, Wallet
from ledgerlink.services.storage import (
    BILLS,
    TRANSACTIONS,
    WALLETS,
    DocumentRef,
    InMemoryAuditStorage,
    LiveQuery,
)

from conftest import RATES, USER_ID, put_bill, put_wallet, wallet_balance


def make_engine(store, audit_logger=None):
    return WalletBalanceEngine(
        store,
        audit_logger=audit_logger,
        settings=BillProcessingSettings(auto_pay_category_id="bills"),
    )


def expense(amount, wallet_id="w1", currency="USD", title="Groceries"):
    return Transaction(
        user_id=USER_ID,
        wallet_id=wallet_id,
        flow=TransactionFlow.EXPENSE,
        currency=currency,
        title=title,
        amount=Decimal(str(amount)),
    )


async def stored_transactions(store):
    return await store.query(LiveQuery(TRANSACTIONS, USER_ID))


class TestEnsureSufficientBalance:

    def test_returns_required_amount_in_wallet_currency(self):
        wallet = Wallet(id="w1", user_id=USER_ID, name="Peso", currency="PHP", balance=Decimal("100"))
        assert ensure_sufficient_balance(wallet, Decimal("-1"), "USD", RATES) == Decimal("56")

    def test_raises_when_short(self):
        wallet = Wallet(id="w1", user_id=USER_ID, name="Cash", balance=Decimal("10"))
        with pytest.raises(InsufficientBalanceError) as exc_info:
            ensure_sufficient_balance(wallet, Decimal("10.01"), "USD", RATES)

        assert exc_info.value.field == "amount"
        assert "Insufficient balance in Cash" in str(exc_info.value)

    def test_exact_balance_is_enough(self):
        wallet = Wallet(id="w1", user_id=USER_ID, name="Cash", balance=Decimal("10"))
        assert ensure_sufficient_balance(wallet, Decimal("10"), "USD", RATES) == Decimal("10")


class TestAddTransaction:
    """Tests for add_transaction_with_wallet."""

    @pytest.mark.asyncio
    async def test_expense_decreases_balance(self, store):
        await put_wallet(store, "w1", 100)
        engine = make_engine(store)

        stored = await engine.add_transaction_with_wallet(expense(-30), RATES)

        assert stored.id is not None
        assert await wallet_balance(store, "w1") == Decimal("70")
        assert await store.get(DocumentRef(TRANSACTIONS, stored.id)) is not None

    @pytest.mark.asyncio
    async def test_amount_is_converted_to_wallet_currency(self, store):
        """Test a PHP expense against a USD wallet."""
        await put_wallet(store, "w1", 100, currency="USD")
        engine = make_engine(store)

        await engine.add_transaction_with_wallet(expense(-560, currency="PHP"), RATES)

        assert await wallet_balance(store, "w1") == Decimal("90")

    @pytest.mark.asyncio
    async def test_without_wallet_has_no_balance_effect(self, store):
        await put_wallet(store, "w1", 100)
        engine = make_engine(store)

        stored = await engine.add_transaction_with_wallet(expense(-30, wallet_id=None), RATES)

        assert stored.wallet_id is None
        assert await wallet_balance(store, "w1") == Decimal("100")
        assert len(await stored_transactions(store)) == 1

    @pytest.mark.asyncio
    async def test_missing_wallet_writes_nothing(self, store):
        """Test that the transaction is not stored when its wallet is gone."""
        engine = make_engine(store)

        with pytest.raises(WalletNotFoundError):
            await engine.add_transaction_with_wallet(expense(-30, wallet_id="ghost"), RATES)

        assert await stored_transactions(store) == []

    @pytest.mark.asyncio
    async def test_audit_event_is_recorded(self, store):
        await put_wallet(store, "w1", 100)
        audit_storage = InMemoryAuditStorage()
        engine = make_engine(store, AuditLogger(audit_storage))

        stored = await engine.add_transaction_with_wallet(expense(-30), RATES)

        events = await audit_storage.get_events_by_entity("transaction", stored.id)
        assert len(events) == 1


class TestDeleteTransaction:
    """Tests for delete_transaction_with_wallet."""

    @pytest.mark.asyncio
    async def test_add_then_delete_restores_balance_across_currencies(self, store):
        """Test that deleting reverses exactly what adding applied."""
        await put_wallet(store, "w1", 50, currency="EUR")
        engine = make_engine(store)
        income = Transaction(
            user_id=USER_ID,
            wallet_id="w1",
            flow=TransactionFlow.INCOME,
            currency="PHP",
            title="Refund",
            amount=Decimal("112"),
        )

        stored = await engine.add_transaction_with_wallet(income, RATES)
        assert await wallet_balance(store, "w1") == Decimal("51.84")

        reversed_amount = await engine.delete_transaction_with_wallet(stored.id, RATES)

        assert reversed_amount == Decimal("-1.84")
        assert await wallet_balance(store, "w1") == Decimal("50")
        assert await stored_transactions(store) == []

    @pytest.mark.asyncio
    async def test_delete_without_wallet_returns_none(self, store):
        engine = make_engine(store)
        stored = await engine.add_transaction_with_wallet(expense(-5, wallet_id=None), RATES)

        assert await engine.delete_transaction_with_wallet(stored.id, RATES) is None
        assert await stored_transactions(store) == []

    @pytest.mark.asyncio
    async def test_delete_missing_transaction(self, store):
        engine = make_engine(store)
        with pytest.raises(TransactionNotFoundError):
            await engine.delete_transaction_with_wallet("ghost", RATES)

    @pytest.mark.asyncio
    async def test_delete_with_missing_wallet_keeps_transaction(self, store):
        await put_wallet(store, "w1", 100)
        engine = make_engine(store)
        stored = await engine.add_transaction_with_wallet(expense(-30), RATES)
        await store.delete(DocumentRef(WALLETS, "w1"))

        with pytest.raises(WalletNotFoundError):
            await engine.delete_transaction_with_wallet(stored.id, RATES)

        assert await store.get(DocumentRef(TRANSACTIONS, stored.id)) is not None


class TestPayBill:
    """Tests for pay_bill_atomic."""

    @pytest.mark.asyncio
    async def test_pay_bill_from_other_currency_wallet(self, store):
        await put_wallet(store, "w1", 5000, currency="PHP")
        await put_bill(store, "b1", wallet_id="w1")
        engine = make_engine(store)

        payment = await engine.pay_bill_atomic("b1", RATES)

        assert payment.amount == Decimal("-2800")
        assert payment.currency == "PHP"
        assert payment.title == "Paid: Electricity"
        assert payment.subtitle == "Bill Payment"
        assert payment.category_id == "bills"
        assert await wallet_balance(store, "w1") == Decimal("2200")
        bill = await store.get(DocumentRef(BILLS, "b1"))
        assert bill["is_paid"] is True

    @pytest.mark.asyncio
    async def test_automatic_payment_labels(self, store):
        await put_wallet(store, "w1", 100)
        await put_bill(store, "b1", wallet_id="w1", auto_deduct=True)
        engine = make_engine(store)

        payment = await engine.pay_bill_atomic("b1", RATES, automatic=True)

        assert payment.title == "Auto-pay: Electricity"
        assert payment.subtitle == "Automatic Bill Payment"

    @pytest.mark.asyncio
    async def test_explicit_wallet_overrides_bill_wallet(self, store):
        await put_wallet(store, "w1", 100)
        await put_wallet(store, "w2", 100)
        await put_bill(store, "b1", wallet_id="w1")
        engine = make_engine(store)

        await engine.pay_bill_atomic("b1", RATES, wallet_id="w2")

        assert await wallet_balance(store, "w1") == Decimal("100")
        assert await wallet_balance(store, "w2") == Decimal("50")

    @pytest.mark.asyncio
    async def test_second_payment_is_rejected_without_writes(self, store):
        """Test that a bill can be paid only once."""
        await put_wallet(store, "w1", 100)
        await put_bill(store, "b1", wallet_id="w1")
        engine = make_engine(store)
        await engine.pay_bill_atomic("b1", RATES)

        with pytest.raises(BillAlreadyPaidError):
            await engine.pay_bill_atomic("b1", RATES)

        assert await wallet_balance(store, "w1") == Decimal("50")
        assert len(await stored_transactions(store)) == 1

    @pytest.mark.asyncio
    async def test_missing_bill(self, store):
        engine = make_engine(store)
        with pytest.raises(BillNotFoundError):
            await engine.pay_bill_atomic("ghost", RATES)

    @pytest.mark.asyncio
    async def test_bill_without_wallet(self, store):
        await put_bill(store, "b1")
        engine = make_engine(store)

        with pytest.raises(LedgerValidationError):
            await engine.pay_bill_atomic("b1", RATES)

        assert (await store.get(DocumentRef(BILLS, "b1")))["is_paid"] is False

    @pytest.mark.asyncio
    async def test_missing_wallet_leaves_bill_unpaid(self, store):
        await put_bill(store, "b1", wallet_id="ghost")
        engine = make_engine(store)

        with pytest.raises(WalletNotFoundError):
            await engine.pay_bill_atomic("b1", RATES)

        assert (await store.get(DocumentRef(BILLS, "b1")))["is_paid"] is False
        assert await stored_transactions(store) == []


class TestUpdateTransaction:
    """Tests for update_transaction."""

    @pytest.mark.asyncio
    async def test_edit_does_not_adjust_wallet(self, store):
        """Test that changing the amount leaves the balance where it was."""
        await put_wallet(store, "w1", 100)
        engine = make_engine(store)
        stored = await engine.add_transaction_with_wallet(expense(-30), RATES)

        updated = await engine.update_transaction(stored.id, {"amount": Decimal("-50"), "title": "Dinner"})

        assert updated.amount == Decimal("-50")
        assert updated.title == "Dinner"
        assert await wallet_balance(store, "w1") == Decimal("70")
        doc = await store.get(DocumentRef(TRANSACTIONS, stored.id))
        assert doc["amount"] == Decimal("-50")

    @pytest.mark.asyncio
    async def test_immutable_fields_are_rejected(self, store):
        engine = make_engine(store)
        stored = await engine.add_transaction_with_wallet(expense(-5, wallet_id=None), RATES)

        with pytest.raises(LedgerValidationError) as exc_info:
            await engine.update_transaction(stored.id, {"user_id": "someone-else"})

        assert exc_info.value.field == "user_id"

    @pytest.mark.asyncio
    async def test_invalid_edit_is_rejected(self, store):
        engine = make_engine(store)
        stored = await engine.add_transaction_with_wallet(expense(-5, wallet_id=None), RATES)

        with pytest.raises(LedgerValidationError):
            await engine.update_transaction(stored.id, {"title": "   "})

        doc = await store.get(DocumentRef(TRANSACTIONS, stored.id))
        assert doc["title"] == "Groceries"

    @pytest.mark.asyncio
    async def test_missing_transaction(self, store):
        engine = make_engine(store)
        with pytest.raises(TransactionNotFoundError):
            await engine.update_transaction("ghost", {"title": "X"})


class TestTransfer:
    """Tests for transfer_between_wallets."""

    @pytest.mark.asyncio
    async def test_transfer_writes_two_legs(self, store):
        source = await put_wallet(store, "w1", 100, currency="USD", name="Checking")
        destination = await put_wallet(store, "w2", 0, currency="PHP", name="Peso")
        engine = make_engine(store)

        expense_leg, income_leg = await engine.transfer_between_wallets(
            source, destination, Decimal("10"), "USD", RATES
        )

        assert expense_leg.amount == Decimal("-10")
        assert expense_leg.title == "Transfer to Peso"
        assert income_leg.amount == Decimal("560")
        assert income_leg.title == "Transfer from Checking"
        assert income_leg.subtitle == "Wallet Transfer"
        assert await wallet_balance(store, "w1") == Decimal("90")
        assert await wallet_balance(store, "w2") == Decimal("560")

    @pytest.mark.asyncio
    async def test_failed_second_leg_keeps_first(self, store):
        """Test the known gap: a vanished destination leaves the source debited."""
        source = await put_wallet(store, "w1", 100, name="Checking")
        destination = Wallet(id="ghost", user_id=USER_ID, name="Gone")
        engine = make_engine(store)

        with pytest.raises(WalletNotFoundError):
            await engine.transfer_between_wallets(
                source, destination, Decimal("10"), "USD", RATES
            )

        assert await wallet_balance(store, "w1") == Decimal("90")
        assert len(await stored_transactions(store)) == 1


class TestConcurrentWriters:
    """Atomic units racing on one wallet must each land exactly once."""

    @pytest.mark.asyncio
    async def test_concurrent_expenses_all_apply(self, store):
        await put_wallet(store, "w1", 100)
        engine = make_engine(store)

        await asyncio.gather(*(
            engine.add_transaction_with_wallet(expense(-56, currency="PHP"), RATES)
            for _ in range(20)
        ))

        assert await wallet_balance(store, "w1") == Decimal("80")
        assert len(await stored_transactions(store)) == 20

    @pytest.mark.asyncio
    async def test_mixed_expenses_and_bill_payments(self, store):
        await put_wallet(store, "w1", 200)
        await put_bill(store, "b1", wallet_id="w1")
        await put_bill(store, "b2", wallet_id="w1", title="Water", amount=Decimal("30"))
        engine = make_engine(store)

        writers = [
            engine.add_transaction_with_wallet(expense(-56, currency="PHP"), RATES)
            for _ in range(10)
        ]
        writers.insert(3, engine.pay_bill_atomic("b1", RATES))
        writers.insert(7, engine.pay_bill_atomic("b2", RATES))
        await asyncio.gather(*writers)

        assert await wallet_balance(store, "w1") == Decimal("110")
        assert len(await stored_transactions(store)) == 12

    @pytest.mark.asyncio
    async def test_racing_payments_of_one_bill(self, store):
        await put_wallet(store, "w1", 100)
        await put_bill(store, "b1", wallet_id="w1")
        engine = make_engine(store)

        results = await asyncio.gather(
            engine.pay_bill_atomic("b1", RATES),
            engine.pay_bill_atomic("b1", RATES),
            return_exceptions=True,
        )

        paid = [r for r in results if isinstance(r, Transaction)]
        rejected = [r for r in results if isinstance(r, BillAlreadyPaidError)]
        assert len(paid) == 1
        assert len(rejected) == 1
        assert await wallet_balance(store, "w1") == Decimal("50")
        assert len(await stored_transactions(store)) == 1

"""Tests for typed record access."""

import pytest
from datetime import date
from decimal import Decimal

from ledgerlink.ledger import (
    BillNotFoundError,
    LedgerRepository,
    TransactionNotFoundError,
    WalletNotFoundError,
)
from ledgerlink.models.ledger import Bill, Category, Transaction, TransactionFlow, Wallet

from conftest import USER_ID


@pytest.fixture
def repository(store):
    return LedgerRepository(store)


class TestLedgerRepository:

    @pytest.mark.asyncio
    async def test_wallet_crud(self, repository):
        wallet = await repository.add_wallet(Wallet(user_id=USER_ID, name="Cash"))

        await repository.update_wallet(wallet.id, {"name": "Pocket"})
        loaded = await repository.get_wallet(wallet.id)
        assert loaded.name == "Pocket"

        await repository.delete_wallet(wallet.id)
        assert await repository.get_wallet(wallet.id) is None

    @pytest.mark.asyncio
    async def test_updates_of_missing_records_raise_typed_errors(self, repository):
        with pytest.raises(WalletNotFoundError):
            await repository.update_wallet("ghost", {"name": "x"})
        with pytest.raises(BillNotFoundError):
            await repository.update_bill("ghost", {"title": "x"})
        with pytest.raises(TransactionNotFoundError):
            await repository.update_transaction("ghost", {"title": "x"})

    @pytest.mark.asyncio
    async def test_list_bills_orders_by_due_date(self, repository):
        for day in (20, 5, 12):
            await repository.add_bill(Bill(
                user_id=USER_ID, title=f"Bill {day}", amount=Decimal("1"),
                due_date=date(2026, 1, day),
            ))

        bills = await repository.list_bills(USER_ID, limit=2)

        assert [b.due_date.day for b in bills] == [5, 12]

    @pytest.mark.asyncio
    async def test_add_transaction_has_no_wallet_effect(self, repository):
        wallet = await repository.add_wallet(Wallet(user_id=USER_ID, name="Cash", balance=Decimal("10")))

        await repository.add_transaction(Transaction(
            user_id=USER_ID, wallet_id=wallet.id, flow=TransactionFlow.EXPENSE,
            title="Imported", amount=Decimal("-5"),
        ))

        assert (await repository.get_wallet(wallet.id)).balance == Decimal("10")
        assert len(await repository.list_transactions(USER_ID)) == 1

    @pytest.mark.asyncio
    async def test_categories_are_per_user(self, repository):
        await repository.add_category(Category(name="Pets", user_id=USER_ID))
        await repository.add_category(Category(name="Boats", user_id="someone-else"))

        categories = await repository.list_categories(USER_ID)

        assert [c.name for c in categories] == ["Pets"]

"""
Shared fixtures for LedgerLink tests.

All tests run against the in-memory store and fixed rate tables.
No network calls: rate providers are stubbed.
"""

from datetime import date
from decimal import Decimal

import pytest

from ledgerlink.models.ledger import Bill, BillFrequency, Wallet
from ledgerlink.services.currency import RateProvider, RateProviderError
from ledgerlink.services.storage import (
    BILLS,
    WALLETS,
    DocumentRef,
    InMemoryLedgerStore,
    LiveQuery,
)


USER_ID = "user-1"

RATES = {
    "USD": Decimal("1"),
    "PHP": Decimal("56"),
    "EUR": Decimal("0.92"),
    "GBP": Decimal("0.79"),
    "JPY": Decimal("150"),
}


class StubRateProvider(RateProvider):
    """Returns a fixed table, or fails when told to."""

    def __init__(self, table=None, currencies=None, fail=False):
        self.table = dict(table or RATES)
        self.currencies = dict(currencies or {"USD": "United States Dollar", "PHP": "Philippine Peso"})
        self.fail = fail
        self.calls = 0

    def fetch_rates(self):
        self.calls += 1
        if self.fail:
            raise RateProviderError("provider down")
        return dict(self.table)

    def fetch_currencies(self):
        if self.fail:
            raise RateProviderError("provider down")
        return dict(self.currencies)


@pytest.fixture
def rates():
    return dict(RATES)


@pytest.fixture
def store():
    return InMemoryLedgerStore()


@pytest.fixture
def user_id():
    return USER_ID


async def put_wallet(store, wallet_id, balance, currency="USD", name=None, user_id=USER_ID):
    """Write a wallet document with a known id."""
    wallet = Wallet(
        id=wallet_id,
        user_id=user_id,
        name=name or f"Wallet {wallet_id}",
        balance=Decimal(str(balance)),
        currency=currency,
    )
    await store.set(DocumentRef(WALLETS, wallet_id), wallet.to_document())
    return wallet


async def put_bill(store, bill_id, **fields):
    """Write a bill document with a known id; fields override sensible defaults."""
    data = {
        "user_id": USER_ID,
        "title": "Electricity",
        "amount": Decimal("50"),
        "currency": "USD",
        "due_date": date(2026, 1, 13),
        "frequency": BillFrequency.ONCE,
    }
    data.update(fields)
    bill = Bill(id=bill_id, **data)
    await store.set(DocumentRef(BILLS, bill_id), bill.to_document())
    return bill


async def wallet_balance(store, wallet_id):
    data = await store.get(DocumentRef(WALLETS, wallet_id))
    return Wallet.from_document(wallet_id, data).balance


async def all_bills(store, user_id=USER_ID):
    docs = await store.query(LiveQuery(BILLS, user_id, order_by="due_date"))
    return [Bill.from_document(d["id"], d) for d in docs]

"""
Dashboard Aggregation

Rolls the in-memory transaction and wallet snapshots up into period
statistics in the user's base currency. Everything here is pure except
DashboardAggregator, which remembers its last answer.

NOTE: balance_change compares net flow (income - expenses) of the current
period with the previous one. It is a trend indicator, not a historical
balance delta; balances are only ever known as a current snapshot.
"""

from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Iterable, Optional

from ledgerlink.models.ledger import (
    DashboardStats,
    Timeframe,
    Transaction,
    TransactionFlow,
    Wallet,
)
from ledgerlink.services.currency import Rates, convert_amount


Window = tuple[datetime, datetime]

HUNDRED = Decimal("100")


def _day_bounds(first: date, last: date) -> Window:
    return datetime.combine(first, time.min), datetime.combine(last, time.max)


def period_windows(timeframe: Timeframe, today: date) -> tuple[Window, Window]:
    """
    Current period containing `today` and the period immediately before it.

    Weeks start on Sunday. Bounds are inclusive, from 00:00 of the first
    day to the last microsecond of the last day.

    Returns:
        ((current_start, current_end), (previous_start, previous_end))
    """
    timeframe = Timeframe(timeframe)

    if timeframe == Timeframe.DAILY:
        yesterday = today - timedelta(days=1)
        return _day_bounds(today, today), _day_bounds(yesterday, yesterday)

    if timeframe == Timeframe.WEEKLY:
        start = today - timedelta(days=(today.weekday() + 1) % 7)
        previous = start - timedelta(days=7)
        return (
            _day_bounds(start, start + timedelta(days=6)),
            _day_bounds(previous, start - timedelta(days=1)),
        )

    if timeframe == Timeframe.MONTHLY:
        start = today.replace(day=1)
        if start.month == 12:
            next_start = date(start.year + 1, 1, 1)
        else:
            next_start = date(start.year, start.month + 1, 1)
        previous_end = start - timedelta(days=1)
        return (
            _day_bounds(start, next_start - timedelta(days=1)),
            _day_bounds(previous_end.replace(day=1), previous_end),
        )

    return (
        _day_bounds(date(today.year, 1, 1), date(today.year, 12, 31)),
        _day_bounds(date(today.year - 1, 1, 1), date(today.year - 1, 12, 31)),
    )


def in_window(transactions: Iterable[Transaction], window: Window) -> list[Transaction]:
    start, end = window
    return [t for t in transactions if start <= t.date <= end]


def total_for_flow(
    transactions: Iterable[Transaction],
    flow: TransactionFlow,
    base_currency: str,
    rates: Rates,
) -> Decimal:
    """Sum of |amount| in base currency over transactions of one flow."""
    return sum(
        (
            abs(convert_amount(t.amount, t.currency, base_currency, rates))
            for t in transactions
            if t.flow == flow
        ),
        Decimal("0"),
    )


def total_balance(wallets: Iterable[Wallet], base_currency: str, rates: Rates) -> Decimal:
    """Current balance of every wallet, in base currency."""
    return sum(
        (convert_amount(w.balance, w.currency, base_currency, rates) for w in wallets),
        Decimal("0"),
    )


def percent_change(current: Decimal, previous: Decimal) -> Decimal:
    """
    Relative change in percent.

    With no previous value: 100 if anything happened now, else 0.
    """
    if previous == 0:
        return HUNDRED if current > 0 else Decimal("0")
    return (current - previous) / previous * HUNDRED


def compute_dashboard_stats(
    transactions: Iterable[Transaction],
    wallets: Iterable[Wallet],
    rates: Rates,
    base_currency: str,
    timeframe: Timeframe,
    today: date,
) -> DashboardStats:
    transactions = list(transactions)
    current_window, previous_window = period_windows(timeframe, today)
    current = in_window(transactions, current_window)
    previous = in_window(transactions, previous_window)

    income = total_for_flow(current, TransactionFlow.INCOME, base_currency, rates)
    expenses = total_for_flow(current, TransactionFlow.EXPENSE, base_currency, rates)
    previous_income = total_for_flow(previous, TransactionFlow.INCOME, base_currency, rates)
    previous_expenses = total_for_flow(previous, TransactionFlow.EXPENSE, base_currency, rates)

    return DashboardStats(
        total_balance=total_balance(wallets, base_currency, rates),
        income=income,
        expenses=expenses,
        profit=income - expenses,
        income_change=percent_change(income, previous_income),
        expenses_change=percent_change(expenses, previous_expenses),
        balance_change=percent_change(income - expenses, previous_income - previous_expenses),
    )


class DashboardAggregator:
    """
    Memoizes compute_dashboard_stats on its inputs.

    Only the most recent answer is kept; any change to a transaction,
    wallet balance, rate, base currency, timeframe or date recomputes.
    """

    def __init__(self):
        self._key: Optional[tuple] = None
        self._stats: Optional[DashboardStats] = None
        self.computations = 0

    @staticmethod
    def _make_key(transactions, wallets, rates, base_currency, timeframe, today) -> tuple:
        return (
            tuple((t.id, t.amount, t.currency, t.flow, t.date) for t in transactions),
            tuple((w.id, w.balance, w.currency) for w in wallets),
            tuple(sorted((code, str(rate)) for code, rate in rates.items())),
            base_currency.upper(),
            Timeframe(timeframe),
            today,
        )

    def stats(
        self,
        transactions: Iterable[Transaction],
        wallets: Iterable[Wallet],
        rates: Rates,
        base_currency: str,
        timeframe: Timeframe = Timeframe.MONTHLY,
        today: Optional[date] = None,
    ) -> DashboardStats:
        today = today or date.today()
        transactions = list(transactions)
        wallets = list(wallets)

        key = self._make_key(transactions, wallets, rates, base_currency, timeframe, today)
        if key == self._key and self._stats is not None:
            return self._stats

        self._stats = compute_dashboard_stats(
            transactions, wallets, rates, base_currency.upper(), timeframe, today
        )
        self._key = key
        self.computations += 1
        return self._stats

    def invalidate(self) -> None:
        self._key = None
        self._stats = None

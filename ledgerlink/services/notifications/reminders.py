"""
Bill Reminders

Tells the user about overdue bills and bills due tomorrow, once per
session, unless they turned reminders off.
"""

from datetime import date, timedelta
from typing import Iterable

import structlog

from ledgerlink.models.ledger import Bill
from ledgerlink.services.notifications.sink import NotificationSink
from ledgerlink.services.preferences import PreferenceStore


logger = structlog.get_logger(__name__)


def get_overdue_bills(bills: Iterable[Bill], today: date) -> list[Bill]:
    """Unpaid bills due strictly before today."""
    return [b for b in bills if not b.is_paid and b.due_date < today]


def get_upcoming_bills(bills: Iterable[Bill], today: date) -> list[Bill]:
    """Unpaid bills due exactly tomorrow."""
    tomorrow = today + timedelta(days=1)
    return [b for b in bills if not b.is_paid and b.due_date == tomorrow]


class BillReminderService:
    """
    Emits bill reminders through a notification sink.

    Reminders are marked as shown only when something was actually sent,
    so an empty first snapshot does not use up the session's reminders.
    """

    def __init__(self, sink: NotificationSink, preferences: PreferenceStore):
        self._sink = sink
        self._preferences = preferences
        self._shown = False

    @property
    def shown(self) -> bool:
        return self._shown

    def reset(self) -> None:
        """Allow reminders to be shown again."""
        self._shown = False

    def show_bill_notifications(self, bills: Iterable[Bill], today: date) -> int:
        """
        Send reminders for `bills` as of `today`.

        Returns:
            Number of notifications sent
        """
        if self._shown or not self._preferences.bill_notifications_enabled():
            return 0

        bills = list(bills)
        overdue = get_overdue_bills(bills, today)
        upcoming = get_upcoming_bills(bills, today)
        sent = 0

        if overdue:
            plural = "s" if len(overdue) > 1 else ""
            self._sink.error(f"You have {len(overdue)} overdue bill{plural}")
            sent += 1

        for bill in upcoming:
            self._sink.info(f'Bill "{bill.title}" is due tomorrow')
            sent += 1

        if sent:
            self._shown = True
            logger.info("bill_reminders_sent", overdue=len(overdue), upcoming=len(upcoming))
        return sent

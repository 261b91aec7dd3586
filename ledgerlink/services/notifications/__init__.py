"""User notifications and bill reminders."""

from ledgerlink.services.notifications.reminders import (
    BillReminderService,
    get_overdue_bills,
    get_upcoming_bills,
)
from ledgerlink.services.notifications.sink import (
    LoggingNotificationSink,
    Notification,
    NotificationLevel,
    NotificationSink,
    RecordingNotificationSink,
)

__all__ = [
    "BillReminderService",
    "LoggingNotificationSink",
    "Notification",
    "NotificationLevel",
    "NotificationSink",
    "RecordingNotificationSink",
    "get_overdue_bills",
    "get_upcoming_bills",
]

"""
Notification Sinks

Fire-and-forget user-facing messages. Nothing in the ledger waits on or
inspects the outcome of a notification, so sinks must not raise.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

import structlog


class NotificationLevel(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    INFO = "info"


@dataclass(frozen=True)
class Notification:
    level: NotificationLevel
    message: str
    created_at: datetime = field(default_factory=datetime.now)


class NotificationSink(ABC):
    """Accepts messages for the user."""

    @abstractmethod
    def notify(self, level: NotificationLevel, message: str) -> None:
        pass

    def success(self, message: str) -> None:
        self.notify(NotificationLevel.SUCCESS, message)

    def error(self, message: str) -> None:
        self.notify(NotificationLevel.ERROR, message)

    def info(self, message: str) -> None:
        self.notify(NotificationLevel.INFO, message)


class LoggingNotificationSink(NotificationSink):
    """Writes notifications to the structured log."""

    def __init__(self):
        self._logger = structlog.get_logger(__name__)

    def notify(self, level: NotificationLevel, message: str) -> None:
        if level == NotificationLevel.ERROR:
            self._logger.warning("user_notification", level=level.value, message=message)
        else:
            self._logger.info("user_notification", level=level.value, message=message)


class RecordingNotificationSink(NotificationSink):
    """Keeps notifications in memory for a UI (or a test) to poll."""

    def __init__(self):
        self.notifications: list[Notification] = []

    def notify(self, level: NotificationLevel, message: str) -> None:
        self.notifications.append(Notification(level=level, message=message))

    def messages(self, level: Optional[NotificationLevel] = None) -> list[str]:
        return [
            n.message for n in self.notifications
            if level is None or n.level == level
        ]

    def clear(self) -> None:
        self.notifications.clear()

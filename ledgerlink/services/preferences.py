"""
Local Preference Store

Key -> string persistence for per-device settings such as the dashboard
base currency and whether bill reminders are shown. Synchronous, no TTL.
"""

import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Union

import structlog

from ledgerlink.services.storage import StorageError


BASE_CURRENCY_KEY = "baseCurrency"
BILL_NOTIFICATIONS_KEY = "billNotificationsEnabled"

logger = structlog.get_logger(__name__)


class PreferenceStore(ABC):
    """Synchronous key/value store for string preferences."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        pass

    def get_bool(self, key: str, default: bool) -> bool:
        """Booleans are stored as 'true'/'false'; anything else reads as False."""
        stored = self.get(key)
        if stored is None:
            return default
        return stored == "true"

    def set_bool(self, key: str, value: bool) -> None:
        self.set(key, "true" if value else "false")

    def get_base_currency(self, default: str = "USD") -> str:
        return (self.get(BASE_CURRENCY_KEY) or default).upper()

    def set_base_currency(self, currency: str) -> None:
        self.set(BASE_CURRENCY_KEY, currency.strip().upper())

    def bill_notifications_enabled(self) -> bool:
        """Reminders are on unless the user turned them off."""
        return self.get_bool(BILL_NOTIFICATIONS_KEY, default=True)

    def set_bill_notifications_enabled(self, enabled: bool) -> None:
        self.set_bool(BILL_NOTIFICATIONS_KEY, enabled)


class InMemoryPreferenceStore(PreferenceStore):
    def __init__(self, initial: Optional[dict[str, str]] = None):
        self._values: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value


class JsonFilePreferenceStore(PreferenceStore):
    """
    Preferences kept in a small JSON object on disk.

    The file is read once on construction and rewritten on every set().
    A missing file starts empty; an unreadable one raises StorageError.
    """

    def __init__(self, path: Union[str, Path]):
        self._path = Path(path)
        self._values: dict[str, str] = {}

        if self._path.exists():
            try:
                data = json.loads(self._path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as e:
                raise StorageError(f"Cannot read preferences from {self._path}: {e}")
            if not isinstance(data, dict):
                raise StorageError(f"Preferences file {self._path} is not a JSON object")
            self._values = {str(k): str(v) for k, v in data.items()}

    @property
    def path(self) -> Path:
        return self._path

    def get(self, key: str) -> Optional[str]:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(json.dumps(self._values, indent=2, sort_keys=True), encoding="utf-8")
        except OSError as e:
            logger.error("preferences_write_failed", path=str(self._path), error=str(e))
            raise StorageError(f"Cannot write preferences to {self._path}: {e}")

"""
Identity Provider

The ledger trusts the current user id as an opaque tenant key for every
user_id field it writes and every live query it opens.
"""

from abc import ABC, abstractmethod
from typing import Optional

import structlog


logger = structlog.get_logger(__name__)


class NotSignedInError(Exception):
    """An operation needed a user but nobody is signed in."""
    pass


class IdentityProvider(ABC):

    @property
    @abstractmethod
    def current_user_id(self) -> Optional[str]:
        """Id of the signed-in user, or None."""
        pass

    @abstractmethod
    def sign_out(self) -> None:
        pass

    def require_user_id(self) -> str:
        """
        Raises:
            NotSignedInError: If no user is signed in
        """
        user_id = self.current_user_id
        if not user_id:
            raise NotSignedInError("No user is signed in")
        return user_id


class StaticIdentityProvider(IdentityProvider):
    """A fixed user, for local use and tests."""

    def __init__(self, user_id: Optional[str] = None):
        self._user_id = user_id

    @property
    def current_user_id(self) -> Optional[str]:
        return self._user_id

    def sign_in(self, user_id: str) -> None:
        self._user_id = user_id
        logger.info("user_signed_in", user_id=user_id)

    def sign_out(self) -> None:
        logger.info("user_signed_out", user_id=self._user_id)
        self._user_id = None

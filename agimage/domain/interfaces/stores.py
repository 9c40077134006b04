"""Interfaces for persisting accounts and sessions."""

import abc
from typing import List, Optional

from ..models.account import AccountsConfig
from ..models.session import Session


class AccountStore(abc.ABC):
    """Abstract Base Class for loading and saving the accounts file."""

    @abc.abstractmethod
    def load(self) -> Optional[AccountsConfig]:
        """Loads accounts, or returns None if no accounts file could be read."""
        pass

    @abc.abstractmethod
    def save(self, config: AccountsConfig) -> None:
        """Writes accounts back to where they were loaded from."""
        pass


class SessionStore(abc.ABC):
    """Abstract Base Class for session persistence."""

    @abc.abstractmethod
    async def load(self, session_id: str) -> Optional[Session]:
        """Returns the stored session or None if it does not exist or is unreadable."""
        pass

    @abc.abstractmethod
    async def save(self, session: Session) -> None:
        pass

    @abc.abstractmethod
    async def list_ids(self) -> List[str]:
        pass

    @abc.abstractmethod
    async def delete(self, session_id: str) -> bool:
        """Deletes a session. Returns False if there was nothing to delete."""
        pass

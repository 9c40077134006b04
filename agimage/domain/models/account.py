"""Domain models for accounts (credentials) and their runtime scheduling state."""

import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional

from .common import AccountKey


@dataclass
class CachedQuota:
    """Soft, possibly stale quota estimate for one account.

    Only a scheduling hint: it deprioritizes an account, it never blocks it.
    """
    remaining_fraction: float        # 0..1
    updated_at: float                # Unix timestamp of the observation
    reset_time: Optional[str] = None # ISO timestamp reported by the backend


@dataclass
class Account:
    """One configured account: identity, secret and mutable runtime state."""
    email: AccountKey
    refresh_token: str
    project_id: Optional[str] = None
    managed_project_id: Optional[str] = None
    last_used: Optional[float] = None          # None = never used
    rate_limited_until: Optional[float] = None # None or past = eligible
    cached_quota: Optional[CachedQuota] = None
    extra: Dict[str, Any] = field(default_factory=dict) # Unknown keys from the accounts file

    @property
    def known_project_id(self) -> Optional[str]:
        return self.project_id or self.managed_project_id

    def is_cooling_down(self, now: float) -> bool:
        return self.rate_limited_until is not None and self.rate_limited_until > now


@dataclass
class AccountsConfig:
    """Contents of the accounts file."""
    accounts: List[Account] = field(default_factory=list)
    extra: Dict[str, Any] = field(default_factory=dict)


class AccountPool:
    """Mutable account store shared by every logical call in the process.

    All reads and writes of record fields go through ``locked()`` so that a
    single record is never observed half-updated. Selection itself is not
    exclusive: two concurrent calls may pick the same account.
    """

    def __init__(self, config: AccountsConfig):
        self.config = config
        self._lock = threading.Lock()

    @contextmanager
    def locked(self) -> Iterator[List[Account]]:
        with self._lock:
            yield self.config.accounts

    def find(self, email: str) -> Optional[Account]:
        """Returns the record for ``email`` or None. Caller must hold the lock."""
        for account in self.config.accounts:
            if account.email == email:
                return account
        return None

    def snapshot(self) -> List[Account]:
        """Returns the accounts in insertion order."""
        with self._lock:
            return list(self.config.accounts)

    def __len__(self) -> int:
        return len(self.config.accounts)

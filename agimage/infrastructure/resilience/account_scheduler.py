"""Chooses which account serves the next request and records outcomes.

Selection is least-recently-used over the accounts that are not cooling down
after a rate limit, preferring accounts whose cached quota still has
headroom. The recording methods are infallible: an unknown email is a
designed no-op, never an error.
"""

import logging
import time
from typing import Any, Callable, Iterable, List, Optional

from agimage.domain.events.api_events import AccountCooledDown, AccountSelected
from agimage.domain.models.account import Account, AccountPool, CachedQuota
from agimage.infrastructure.config.settings import SchedulerSettings

logger = logging.getLogger(__name__)

NEVER_USED = float("-inf")


def _log_event(event: Any) -> None:
    logger.debug(f"EVENT: {event}")


class AccountScheduler:
    """Owns the account pool and answers "which account next?".

    Every operation goes through the pool handle given at construction, so
    independent schedulers (e.g. in tests) never share state.
    """

    def __init__(
        self,
        pool: AccountPool,
        settings: Optional[SchedulerSettings] = None,
        clock: Callable[[], float] = time.time,
        event_handler: Callable[[Any], None] = _log_event,
    ):
        self.pool = pool
        self.settings = settings or SchedulerSettings()
        self._clock = clock
        self._dispatch = event_handler
        logger.debug(
            f"AccountScheduler initialized: {len(pool)} account(s), "
            f"soft_threshold={self.settings.soft_quota_threshold}, "
            f"quota_ttl={self.settings.quota_cache_ttl_s}s, cooldown={self.settings.rate_limit_cooldown_s}s"
        )

    def _now(self, now: Optional[float]) -> float:
        return self._clock() if now is None else now

    # --- Selection ---

    def is_soft_quota_exceeded(self, account: Account, now: Optional[float] = None) -> bool:
        """True only for a fresh cached quota at or below the threshold.

        A cached quota older than the freshness window counts as unknown.
        """
        quota = account.cached_quota
        if quota is None:
            return False
        now = self._now(now)
        if now - quota.updated_at > self.settings.quota_cache_ttl_s:
            return False
        return quota.remaining_fraction <= self.settings.soft_quota_threshold

    def select(self, exclude: Iterable[str] = (), now: Optional[float] = None) -> Optional[Account]:
        """Returns the best account to use next, or None if none is eligible.

        Args:
            exclude: Emails already tried in this logical call.
            now: Reference time (epoch seconds); defaults to the clock.

        Returns:
            The least-recently-used eligible account, from the headroom pool
            when it is non-empty, otherwise from the soft-exceeded pool.
        """
        now = self._now(now)
        excluded = set(exclude)

        with self.pool.locked() as accounts:
            headroom: List[Account] = []
            soft_exceeded: List[Account] = []
            for account in accounts:
                if account.email in excluded or account.is_cooling_down(now):
                    continue
                if self.is_soft_quota_exceeded(account, now):
                    soft_exceeded.append(account)
                else:
                    headroom.append(account)

            candidates = headroom or soft_exceeded
            if not candidates:
                logger.debug(f"No account available ({len(accounts)} configured, {len(excluded)} excluded)")
                return None

            # min() keeps the first of equal keys, so insertion order breaks ties
            chosen = min(
                candidates,
                key=lambda a: NEVER_USED if a.last_used is None else a.last_used,
            )

        if not headroom:
            logger.info(f"All eligible accounts are near their quota; using {chosen.email} anyway")
        self._dispatch(AccountSelected(email=chosen.email, excluded=len(excluded)))
        return chosen

    # --- Recording (infallible) ---

    def record_used(self, email: str, now: Optional[float] = None) -> None:
        now = self._now(now)
        with self.pool.locked():
            account = self.pool.find(email)
            if account is None:
                logger.debug(f"record_used: unknown account {email}, ignoring")
                return
            account.last_used = now

    def record_rate_limited(self, email: str, now: Optional[float] = None) -> None:
        """Puts the account into cooldown until now + cooldown, replacing any earlier cooldown."""
        now = self._now(now)
        until = now + self.settings.rate_limit_cooldown_s
        with self.pool.locked():
            account = self.pool.find(email)
            if account is None:
                logger.debug(f"record_rate_limited: unknown account {email}, ignoring")
                return
            account.rate_limited_until = until
        logger.info(f"Account {email} rate-limited, cooling down for {self.settings.rate_limit_cooldown_s:.0f}s")
        self._dispatch(AccountCooledDown(email=email, until=until))

    def record_quota_observation(
        self,
        email: str,
        remaining_fraction: float,
        reset_time: Optional[str] = None,
        now: Optional[float] = None,
    ) -> None:
        """Replaces the cached quota; the latest observation always wins."""
        now = self._now(now)
        with self.pool.locked():
            account = self.pool.find(email)
            if account is None:
                logger.debug(f"record_quota_observation: unknown account {email}, ignoring")
                return
            account.cached_quota = CachedQuota(
                remaining_fraction=remaining_fraction,
                updated_at=now,
                reset_time=reset_time,
            )

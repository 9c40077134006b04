import copy

import pytest
from unittest.mock import MagicMock

from agimage.domain.events.api_events import AccountCooledDown, AccountSelected
from agimage.infrastructure.config.settings import SchedulerSettings
from agimage.infrastructure.resilience.account_scheduler import AccountScheduler

NOW = 1_700_000_000.0
SETTINGS = SchedulerSettings(soft_quota_threshold=0.1, quota_cache_ttl_s=300, rate_limit_cooldown_s=300)


@pytest.fixture
def scheduler_for(pool_factory):
    """Builds a scheduler over the given accounts with a fixed clock."""
    def _build(*accounts, event_handler=None):
        return AccountScheduler(
            pool_factory(*accounts),
            SETTINGS,
            clock=lambda: NOW,
            event_handler=event_handler or MagicMock(),
        )
    return _build


# --- Selection ---

def test_select_picks_least_recently_used(scheduler_for, account_factory):
    scheduler = scheduler_for(
        account_factory("a@x.com", last_used=NOW - 10),
        account_factory("b@x.com", last_used=NOW - 100),
        account_factory("c@x.com", last_used=NOW - 50),
    )
    assert scheduler.select().email == "b@x.com"


def test_select_treats_never_used_as_oldest(scheduler_for, account_factory):
    scheduler = scheduler_for(
        account_factory("a@x.com", last_used=1.0),
        account_factory("b@x.com", last_used=None),
    )
    assert scheduler.select().email == "b@x.com"


def test_select_breaks_ties_by_insertion_order(scheduler_for, account_factory):
    scheduler = scheduler_for(
        account_factory("a@x.com", last_used=NOW - 5),
        account_factory("b@x.com", last_used=NOW - 5),
        account_factory("c@x.com", last_used=NOW - 5),
    )
    assert scheduler.select().email == "a@x.com"


def test_select_skips_cooling_down_accounts(scheduler_for, account_factory):
    scheduler = scheduler_for(
        account_factory("a@x.com", last_used=None, rate_limited_until=NOW + 1),
        account_factory("b@x.com", last_used=NOW - 1),
    )
    assert scheduler.select().email == "b@x.com"


def test_cooldown_expires_at_its_deadline(scheduler_for, account_factory):
    """An account becomes eligible again once now reaches rate_limited_until."""
    scheduler = scheduler_for(account_factory("a@x.com", rate_limited_until=NOW + 60))
    assert scheduler.select(now=NOW + 59) is None
    assert scheduler.select(now=NOW + 60).email == "a@x.com"


def test_select_never_returns_excluded_account(scheduler_for, account_factory):
    scheduler = scheduler_for(
        account_factory("best@x.com", last_used=None),
        account_factory("other@x.com", last_used=NOW - 1),
    )
    assert scheduler.select(exclude={"best@x.com"}).email == "other@x.com"


def test_select_returns_none_when_all_excluded_or_cooling(scheduler_for, account_factory):
    scheduler = scheduler_for(
        account_factory("a@x.com"),
        account_factory("b@x.com", rate_limited_until=NOW + 10),
    )
    assert scheduler.select(exclude=["a@x.com"]) is None


def test_select_on_empty_pool_returns_none(scheduler_for):
    assert scheduler_for().select() is None


def test_quota_at_threshold_is_soft_exceeded(scheduler_for, account_factory):
    at_threshold = account_factory("a@x.com", quota=0.1, quota_at=NOW)
    above = account_factory("b@x.com", quota=0.11, quota_at=NOW)
    scheduler = scheduler_for(at_threshold, above)

    assert scheduler.is_soft_quota_exceeded(at_threshold) is True
    assert scheduler.is_soft_quota_exceeded(above) is False


def test_select_prefers_headroom_over_soft_exceeded(scheduler_for, account_factory):
    scheduler = scheduler_for(
        account_factory("low@x.com", last_used=None, quota=0.05, quota_at=NOW - 10),
        account_factory("ok@x.com", last_used=NOW - 1, quota=0.8, quota_at=NOW - 10),
    )
    assert scheduler.select().email == "ok@x.com"


def test_stale_quota_counts_as_headroom(scheduler_for, account_factory):
    stale = account_factory("stale@x.com", last_used=None, quota=0.0, quota_at=NOW - 301)
    scheduler = scheduler_for(
        stale,
        account_factory("fresh@x.com", last_used=NOW - 1, quota=0.9, quota_at=NOW),
    )
    assert scheduler.is_soft_quota_exceeded(stale) is False
    assert scheduler.select().email == "stale@x.com"


def test_all_soft_exceeded_still_returns_least_recently_used(scheduler_for, account_factory):
    scheduler = scheduler_for(
        account_factory("a@x.com", last_used=NOW - 10, quota=0.01, quota_at=NOW),
        account_factory("b@x.com", last_used=NOW - 20, quota=0.02, quota_at=NOW),
    )
    assert scheduler.select().email == "b@x.com"


def test_round_robin_over_fresh_accounts(scheduler_for, account_factory):
    scheduler = scheduler_for(
        account_factory("a@x.com"),
        account_factory("b@x.com"),
        account_factory("c@x.com"),
    )
    order = []
    for tick in range(4):
        account = scheduler.select(now=NOW + tick)
        order.append(account.email)
        scheduler.record_used(account.email, now=NOW + tick)
    assert order == ["a@x.com", "b@x.com", "c@x.com", "a@x.com"]


def test_select_dispatches_event(scheduler_for, account_factory):
    handler = MagicMock()
    scheduler = scheduler_for(account_factory("a@x.com"), event_handler=handler)
    scheduler.select(exclude={"z@x.com"})
    event = handler.call_args.args[0]
    assert isinstance(event, AccountSelected)
    assert event.email == "a@x.com"
    assert event.excluded == 1


# --- Recording ---

def test_record_used_sets_last_used(scheduler_for, account_factory):
    account = account_factory("a@x.com")
    scheduler = scheduler_for(account)
    scheduler.record_used("a@x.com", now=NOW + 5)
    assert account.last_used == NOW + 5


def test_record_rate_limited_overwrites_previous_cooldown(scheduler_for, account_factory):
    account = account_factory("a@x.com", rate_limited_until=NOW + 10_000)
    handler = MagicMock()
    scheduler = scheduler_for(account, event_handler=handler)

    scheduler.record_rate_limited("a@x.com", now=NOW)

    assert account.rate_limited_until == NOW + 300
    event = handler.call_args.args[0]
    assert isinstance(event, AccountCooledDown)
    assert event.until == NOW + 300


def test_record_quota_observation_replaces_cached_quota(scheduler_for, account_factory):
    account = account_factory("a@x.com", quota=0.9, quota_at=NOW - 100)
    scheduler = scheduler_for(account)

    scheduler.record_quota_observation("a@x.com", 0.05, "2030-01-01T00:00:00Z", now=NOW)

    assert account.cached_quota.remaining_fraction == 0.05
    assert account.cached_quota.updated_at == NOW
    assert account.cached_quota.reset_time == "2030-01-01T00:00:00Z"


def test_recording_unknown_account_is_a_no_op(scheduler_for, account_factory):
    scheduler = scheduler_for(account_factory("a@x.com", last_used=NOW - 1))
    before = copy.deepcopy(scheduler.pool.config.accounts)

    scheduler.record_used("ghost@x.com")
    scheduler.record_rate_limited("ghost@x.com")
    scheduler.record_quota_observation("ghost@x.com", 0.5)

    assert scheduler.pool.config.accounts == before


def test_independent_schedulers_do_not_share_state(scheduler_for, account_factory):
    first = scheduler_for(account_factory("a@x.com"))
    second = scheduler_for(account_factory("a@x.com"))
    first.record_rate_limited("a@x.com", now=NOW)
    assert first.select() is None
    assert second.select().email == "a@x.com"

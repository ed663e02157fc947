"""Tests for profile construction and the daily usage window."""

from datetime import UTC, datetime, timedelta, timezone

import pytest

from optimizecode.domain.plans import Plan, SubscriptionStatus, limits_for
from optimizecode.domain.profiles import (
    apply_usage,
    effective_plan,
    effective_usage,
    is_new_day,
    new_profile,
    quota_status,
    roll_over,
    start_of_day,
)

pytestmark = pytest.mark.unit


def test_new_profile_starts_on_free_preset(now):
    profile = new_profile("u1", "ada@example.com", now=now)

    assert profile.subscription.plan == Plan.FREE
    assert profile.limits == limits_for(Plan.FREE)
    assert profile.usage.optimizations_today == 0
    assert profile.usage.total_optimizations == 0
    assert profile.usage.current_day_start == start_of_day(now)


def test_new_profile_display_name_defaults_to_email_local_part(now):
    assert new_profile("u1", "ada@example.com", now=now).display_name == "ada"
    assert new_profile("u1", "ada@example.com", display_name="Ada L", now=now).display_name == "Ada L"


def test_same_utc_date_is_not_new_day(make_profile, now):
    profile = make_profile()
    assert not is_new_day(profile.usage, now.replace(hour=23, minute=59))


def test_next_utc_date_is_new_day(make_profile, now):
    profile = make_profile()
    assert is_new_day(profile.usage, now + timedelta(days=1))


def test_day_boundary_uses_utc_not_local_offset(make_profile):
    profile = make_profile()
    # 2030-06-16 01:00 at UTC+05:00 is still 2030-06-15 in UTC
    plus_five = timezone(timedelta(hours=5))
    assert not is_new_day(profile.usage, datetime(2030, 6, 16, 1, 0, tzinfo=plus_five))


def test_stale_window_reads_as_zero(make_profile, now):
    profile = make_profile(used_today=10)
    tomorrow = now + timedelta(days=1)

    assert effective_usage(profile, now) == 10
    assert effective_usage(profile, tomorrow) == 0
    status = quota_status(profile, tomorrow)
    assert status.allowed
    assert status.used == 0


def test_quota_status_at_limit_not_allowed(make_profile, now):
    status = quota_status(make_profile(used_today=10), now)
    assert not status.allowed
    assert status.used == 10
    assert status.limit == 10
    assert status.remaining == 0


def test_quota_status_unlimited(make_profile, now):
    status = quota_status(make_profile(plan=Plan.UNLEASHED, used_today=5000), now)
    assert status.allowed
    assert status.is_unlimited
    assert status.remaining == -1


def test_apply_usage_same_day_increments(make_profile, now):
    profile = apply_usage(make_profile(used_today=3), now)
    assert profile.usage.optimizations_today == 4
    assert profile.usage.total_optimizations == 4
    assert profile.usage.last_optimization_date == now


def test_apply_usage_after_rollover_restarts_daily_count(make_profile, now):
    tomorrow = now + timedelta(days=1)
    profile = apply_usage(make_profile(used_today=9), tomorrow)

    assert profile.usage.optimizations_today == 1
    assert profile.usage.total_optimizations == 10
    assert profile.usage.current_day_start == datetime(2030, 6, 16, tzinfo=UTC)


def test_roll_over_returns_same_object_when_nothing_changes(make_profile, now):
    profile = make_profile(used_today=2)
    assert roll_over(profile, now) is profile


@pytest.mark.parametrize(
    "plan, status, expected",
    [
        (Plan.PRO, SubscriptionStatus.ACTIVE, Plan.PRO),
        (Plan.UNLEASHED, SubscriptionStatus.TRIALING, Plan.UNLEASHED),
        (Plan.PRO, SubscriptionStatus.PAST_DUE, Plan.FREE),
        (Plan.UNLEASHED, SubscriptionStatus.PAST_DUE, Plan.FREE),
        (Plan.FREE, SubscriptionStatus.CANCELLED, Plan.FREE),
    ],
)
def test_effective_plan(make_profile, plan, status, expected):
    profile = make_profile(plan=plan)
    profile = profile.model_copy(update={"subscription": profile.subscription.model_copy(update={"status": status})})

    assert effective_plan(profile) == expected
    assert profile.subscription.plan == plan

"""Subscription tiers and their limit presets.

Pure functions only: no I/O, no clock reads. Callers pass ``now`` so the
plan-change transition stays deterministic in tests.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel

UNLIMITED = -1


class Plan(str, Enum):
    FREE = "free"
    PRO = "pro"
    UNLEASHED = "unleashed"


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    CANCELLED = "cancelled"
    PAST_DUE = "past_due"
    TRIALING = "trialing"


class PlanLimits(BaseModel):
    optimizations_per_day: int
    max_file_uploads: int
    max_paste_characters: int
    max_file_size_mb: int
    priority_support: bool
    advanced_features: bool


class GenerationProfile(BaseModel):
    """Which model a tier is served by and how deep the instructions go."""

    model_setting: str
    max_tokens: int
    thorough: bool


_PLAN_ORDER: dict[Plan, int] = {Plan.FREE: 0, Plan.PRO: 1, Plan.UNLEASHED: 2}

_PRESETS: dict[Plan, PlanLimits] = {
    Plan.FREE: PlanLimits(
        optimizations_per_day=10,
        max_file_uploads=2,
        max_paste_characters=10_000,
        max_file_size_mb=1,
        priority_support=False,
        advanced_features=False,
    ),
    Plan.PRO: PlanLimits(
        optimizations_per_day=300,
        max_file_uploads=50,
        max_paste_characters=100_000,
        max_file_size_mb=10,
        priority_support=True,
        advanced_features=True,
    ),
    Plan.UNLEASHED: PlanLimits(
        optimizations_per_day=UNLIMITED,
        max_file_uploads=UNLIMITED,
        max_paste_characters=UNLIMITED,
        max_file_size_mb=100,
        priority_support=True,
        advanced_features=True,
    ),
}

_GENERATION: dict[Plan, GenerationProfile] = {
    Plan.FREE: GenerationProfile(model_setting="free_model", max_tokens=4096, thorough=False),
    Plan.PRO: GenerationProfile(model_setting="pro_model", max_tokens=8192, thorough=True),
    Plan.UNLEASHED: GenerationProfile(model_setting="unleashed_model", max_tokens=8192, thorough=True),
}


def limits_for(plan: Plan | str) -> PlanLimits:
    """Return a fresh copy of the preset for ``plan``."""
    return _PRESETS[Plan(plan)].model_copy()


def generation_profile_for(plan: Plan | str) -> GenerationProfile:
    return _GENERATION[Plan(plan)]


def meets_plan(current: Plan | str, required: Plan | str) -> bool:
    """True when ``current`` is at or above ``required`` in free < pro < unleashed."""
    return _PLAN_ORDER[Plan(current)] >= _PLAN_ORDER[Plan(required)]


def is_unlimited(value: int) -> bool:
    return value == UNLIMITED


def within_limit(value: int, limit: int) -> bool:
    """Check ``value`` against a limit where -1 means unlimited."""
    return is_unlimited(limit) or value <= limit


def change_plan(profile, plan: Plan | str, now: datetime):
    """Return a copy of ``profile`` moved onto ``plan``.

    The limits sub-record is replaced wholesale with the preset; nothing from
    the previous limits survives. The status becomes active and any pending
    cancellation is cleared.
    """
    plan = Plan(plan)
    subscription = profile.subscription.model_copy(
        update={
            "plan": plan,
            "status": SubscriptionStatus.ACTIVE,
            "start_date": now,
            "cancel_at_period_end": False,
            "cancelled_at": None,
        }
    )
    return profile.model_copy(
        update={
            "subscription": subscription,
            "limits": limits_for(plan),
            "updated_at": now,
        }
    )

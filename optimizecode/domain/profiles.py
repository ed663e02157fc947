"""User profile document and the usage-window transitions applied to it."""

from datetime import UTC, datetime

from pydantic import BaseModel, Field

from optimizecode.domain.plans import (
    Plan,
    PlanLimits,
    SubscriptionStatus,
    is_unlimited,
    limits_for,
)


def utc_now() -> datetime:
    return datetime.now(UTC)


class Subscription(BaseModel):
    plan: Plan = Plan.FREE
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    start_date: datetime
    cancel_at_period_end: bool = False
    billing_customer_id: str | None = None
    billing_subscription_id: str | None = None
    billing_interval: str | None = None
    cancelled_at: datetime | None = None


class Usage(BaseModel):
    optimizations_today: int = Field(default=0, ge=0)
    total_optimizations: int = Field(default=0, ge=0)
    current_day_start: datetime
    last_optimization_date: datetime | None = None


class UserProfile(BaseModel):
    uid: str
    email: str
    display_name: str
    email_verified: bool = False
    created_at: datetime
    updated_at: datetime
    last_login_at: datetime | None = None
    subscription: Subscription
    limits: PlanLimits
    usage: Usage


class QuotaStatus(BaseModel):
    allowed: bool
    used: int
    limit: int
    is_unlimited: bool

    @property
    def remaining(self) -> int:
        if self.is_unlimited:
            return -1
        return max(0, self.limit - self.used)


def start_of_day(now: datetime) -> datetime:
    now = now.astimezone(UTC)
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def new_profile(
    uid: str,
    email: str,
    display_name: str | None = None,
    email_verified: bool = False,
    now: datetime | None = None,
) -> UserProfile:
    """Build a free-tier profile for a newly seen account."""
    now = now or utc_now()
    return UserProfile(
        uid=uid,
        email=email,
        display_name=display_name or email.split("@")[0] or "User",
        email_verified=email_verified,
        created_at=now,
        updated_at=now,
        last_login_at=now,
        subscription=Subscription(start_date=now),
        limits=limits_for(Plan.FREE),
        usage=Usage(current_day_start=start_of_day(now)),
    )


def effective_plan(profile: UserProfile) -> Plan:
    """Plan whose entitlements apply now.

    A ``past_due`` subscription keeps its stored plan so a recovered payment
    can restore it, but until then it is entitled to free features only.
    """
    if profile.subscription.status == SubscriptionStatus.PAST_DUE:
        return Plan.FREE
    return profile.subscription.plan


def is_new_day(usage: Usage, now: datetime) -> bool:
    """True when the stored window started on a different UTC calendar date."""
    stored = usage.current_day_start.astimezone(UTC).date()
    return stored != now.astimezone(UTC).date()


def effective_usage(profile: UserProfile, now: datetime) -> int:
    """Today's count, treating a stale window as zero."""
    if is_new_day(profile.usage, now):
        return 0
    return profile.usage.optimizations_today


def quota_status(profile: UserProfile, now: datetime) -> QuotaStatus:
    limit = profile.limits.optimizations_per_day
    used = effective_usage(profile, now)
    unlimited = is_unlimited(limit)
    return QuotaStatus(
        allowed=unlimited or used < limit,
        used=used,
        limit=limit,
        is_unlimited=unlimited,
    )


def roll_over(profile: UserProfile, now: datetime) -> UserProfile:
    """Reset the daily window when the date changed; otherwise return as is."""
    if not is_new_day(profile.usage, now):
        return profile
    usage = profile.usage.model_copy(
        update={"optimizations_today": 0, "current_day_start": start_of_day(now)}
    )
    return profile.model_copy(update={"usage": usage, "updated_at": now})


def apply_usage(profile: UserProfile, now: datetime) -> UserProfile:
    """Count one accepted optimization request against the profile."""
    profile = roll_over(profile, now)
    usage = profile.usage.model_copy(
        update={
            "optimizations_today": profile.usage.optimizations_today + 1,
            "total_optimizations": profile.usage.total_optimizations + 1,
            "last_optimization_date": now,
        }
    )
    return profile.model_copy(update={"usage": usage, "updated_at": now})

"""Profile, usage, and plan routes for the authenticated user."""

import structlog
from fastapi import APIRouter, Depends
from pydantic import BaseModel, EmailStr, Field

from optimizecode.core.auth import get_current_profile, require_auth
from optimizecode.core.capabilities import Capabilities, get_capabilities
from optimizecode.core.identity import Principal
from optimizecode.domain.plans import Plan, PlanLimits, change_plan
from optimizecode.domain.profiles import Subscription, Usage, UserProfile, utc_now
from optimizecode.services.usage_service import UsageService

logger = structlog.get_logger(__name__)

router = APIRouter()


# ── Request / Response schemas ──────────────────────────────────────


class ProfileUpdateRequest(BaseModel):
    display_name: str | None = Field(default=None, min_length=1, max_length=100)
    email: EmailStr | None = None


class ProfileEnvelope(BaseModel):
    profile: UserProfile


class UsageResponse(BaseModel):
    usage: Usage
    limits: PlanLimits
    subscription: Subscription


class TrackedUsage(BaseModel):
    used: int
    remaining: int  # -1 = unlimited
    total: int
    is_unlimited: bool


class TrackUsageResponse(BaseModel):
    success: bool
    usage: TrackedUsage


class ChangePlanRequest(BaseModel):
    plan: Plan


class ChangePlanResponse(BaseModel):
    message: str
    plan: Plan
    limits: PlanLimits


# ── Endpoints ───────────────────────────────────────────────────────


@router.get("/user/profile", response_model=ProfileEnvelope)
async def get_profile(profile: UserProfile = Depends(get_current_profile)):
    return ProfileEnvelope(profile=profile)


@router.put("/user/profile", response_model=ProfileEnvelope)
async def update_profile(
    body: ProfileUpdateRequest,
    user: Principal = Depends(require_auth),
    caps: Capabilities = Depends(get_capabilities),
):
    updates = body.model_dump(exclude_none=True)
    if "display_name" in updates:
        updates["display_name"] = updates["display_name"].strip()

    def _apply(profile: UserProfile) -> UserProfile:
        if not updates:
            return profile
        return profile.model_copy(update={**updates, "updated_at": utc_now()})

    profile = await caps.profiles.update(user.uid, _apply)
    logger.info("profile_updated", user_id=user.uid, fields=sorted(updates))
    return ProfileEnvelope(profile=profile)


@router.get("/user/usage", response_model=UsageResponse)
async def get_usage(
    user: Principal = Depends(require_auth),
    caps: Capabilities = Depends(get_capabilities),
):
    """Usage, limits and subscription; persists the daily reset when a new day started."""
    profile = await UsageService(caps.profiles).sync_day_window(user.uid)
    return UsageResponse(usage=profile.usage, limits=profile.limits, subscription=profile.subscription)


@router.post("/user/track-usage", response_model=TrackUsageResponse)
async def track_usage(
    user: Principal = Depends(require_auth),
    caps: Capabilities = Depends(get_capabilities),
):
    status = await UsageService(caps.profiles).check_and_reserve(user.uid)
    return TrackUsageResponse(
        success=True,
        usage=TrackedUsage(
            used=status.used,
            remaining=status.remaining,
            total=status.limit,
            is_unlimited=status.is_unlimited,
        ),
    )


@router.post("/user/change-plan", response_model=ChangePlanResponse)
async def change_user_plan(
    body: ChangePlanRequest,
    user: Principal = Depends(require_auth),
    caps: Capabilities = Depends(get_capabilities),
):
    now = utc_now()
    profile = await caps.profiles.update(user.uid, lambda p: change_plan(p, body.plan, now))
    logger.info("plan_changed", user_id=user.uid, plan=body.plan.value)
    return ChangePlanResponse(
        message=f"Successfully changed to {body.plan.value} plan",
        plan=body.plan,
        limits=profile.limits,
    )

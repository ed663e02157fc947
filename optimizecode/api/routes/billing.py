"""Billing routes: Stripe Checkout, Customer Portal, cancellation, webhooks, and status."""

from typing import Literal

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from optimizecode.core.auth import get_current_profile
from optimizecode.core.capabilities import Capabilities, get_app_settings, get_capabilities
from optimizecode.core.config import Settings
from optimizecode.domain.profiles import UserProfile
from optimizecode.services.billing_service import BillingService, billing_status

router = APIRouter()


# ── Request / Response schemas ──────────────────────────────────────


class CheckoutRequest(BaseModel):
    plan: Literal["pro", "unleashed"]
    interval: Literal["monthly", "yearly"] = "monthly"


class CheckoutResponse(BaseModel):
    checkout_url: str


class PortalResponse(BaseModel):
    portal_url: str


class BillingStatusResponse(BaseModel):
    plan: str
    status: str
    has_subscription: bool
    cancel_at_period_end: bool
    billing_interval: str | None = None


def get_billing_service(
    caps: Capabilities = Depends(get_capabilities),
    settings: Settings = Depends(get_app_settings),
) -> BillingService:
    return BillingService(caps, settings)


# ── Endpoints ───────────────────────────────────────────────────────


@router.post("/billing/checkout", response_model=CheckoutResponse)
async def create_checkout_session(
    body: CheckoutRequest,
    profile: UserProfile = Depends(get_current_profile),
    billing: BillingService = Depends(get_billing_service),
):
    """Create a Stripe Checkout session and return the URL."""
    url = await billing.create_checkout_session(profile, body.plan, body.interval)
    return CheckoutResponse(checkout_url=url)


@router.post("/billing/portal", response_model=PortalResponse)
async def create_portal_session(
    profile: UserProfile = Depends(get_current_profile),
    billing: BillingService = Depends(get_billing_service),
):
    """Create a Stripe Customer Portal session and return the URL."""
    url = await billing.create_portal_session(profile)
    return PortalResponse(portal_url=url)


@router.get("/billing/status", response_model=BillingStatusResponse)
async def get_billing_status(profile: UserProfile = Depends(get_current_profile)):
    """Return the user's current plan and subscription status."""
    return BillingStatusResponse(**billing_status(profile))


@router.post("/billing/cancel", response_model=BillingStatusResponse)
async def cancel_subscription(
    profile: UserProfile = Depends(get_current_profile),
    billing: BillingService = Depends(get_billing_service),
):
    updated = await billing.cancel_subscription(profile)
    return BillingStatusResponse(**billing_status(updated))


@router.post("/webhooks/stripe")
async def stripe_webhook(request: Request, billing: BillingService = Depends(get_billing_service)):
    """Stripe event delivery; the raw body is needed for signature checks."""
    payload = await request.body()
    applied = await billing.receive_webhook(payload, request.headers.get("stripe-signature"))
    return {"status": "ok"} if applied else {"status": "ok", "duplicate": True}

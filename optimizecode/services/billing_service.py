"""Stripe billing: checkout, portal, cancellation, and webhook event handling.

Webhook handlers translate Stripe events into profile updates through the
profile store's compare-and-swap ``update``; they never raise for unknown
users or missing metadata, only log.
"""

from datetime import datetime

import stripe
import structlog

from optimizecode.core.capabilities import Capabilities
from optimizecode.core.config import Settings
from optimizecode.core.exceptions import (
    ProfileNotFoundError,
    UpstreamProviderError,
    ValidationFailedError,
    WebhookRejectedError,
)
from optimizecode.domain.plans import Plan, SubscriptionStatus, change_plan, limits_for
from optimizecode.domain.profiles import UserProfile, utc_now
from optimizecode.metrics.cloudwatch import emit_business_event

logger = structlog.get_logger(__name__)

PAID_PLANS = (Plan.PRO, Plan.UNLEASHED)
INTERVALS = ("monthly", "yearly")

# Stripe subscription status -> stored status
_STATUS_MAP: dict[str, SubscriptionStatus] = {
    "active": SubscriptionStatus.ACTIVE,
    "trialing": SubscriptionStatus.TRIALING,
    "past_due": SubscriptionStatus.PAST_DUE,
    "unpaid": SubscriptionStatus.PAST_DUE,
    "incomplete": SubscriptionStatus.PAST_DUE,
    "canceled": SubscriptionStatus.CANCELLED,
    "incomplete_expired": SubscriptionStatus.CANCELLED,
}


def build_price_map(settings: Settings) -> dict[tuple[str, str], str]:
    """Mapping of (plan, interval) -> Stripe Price ID from config."""
    return {
        ("pro", "monthly"): settings.stripe_price_pro_monthly,
        ("pro", "yearly"): settings.stripe_price_pro_yearly,
        ("unleashed", "monthly"): settings.stripe_price_unleashed_monthly,
        ("unleashed", "yearly"): settings.stripe_price_unleashed_yearly,
    }


def validate_price_map(settings: Settings) -> None:
    """Fail fast if any Stripe price ID is missing at startup."""
    if settings.debug or settings.uses_demo_identity:
        return
    missing = [
        f"stripe_price_{plan}_{interval}"
        for (plan, interval), price_id in build_price_map(settings).items()
        if not price_id
    ]
    if missing:
        raise RuntimeError(f"Missing Stripe price IDs at startup: {missing}")


def _get_stripe(settings: Settings) -> None:
    """Configure the stripe module with the secret key."""
    stripe.api_key = settings.stripe_secret_key


def _upstream(exc: stripe.StripeError, action: str) -> UpstreamProviderError:
    logger.error("stripe_request_failed", action=action, error=str(exc), error_type=type(exc).__name__)
    return UpstreamProviderError("billing", f"Billing provider error while trying to {action}")


class BillingService:
    def __init__(self, caps: Capabilities, settings: Settings):
        self.caps = caps
        self.settings = settings

    async def _get_or_create_customer(self, profile: UserProfile) -> str:
        """Return the Stripe customer ID, creating one if needed."""
        if profile.subscription.billing_customer_id:
            return profile.subscription.billing_customer_id

        _get_stripe(self.settings)
        try:
            customer = await stripe.Customer.create_async(
                email=profile.email,
                name=profile.display_name,
                metadata={"user_id": profile.uid},
            )
        except stripe.StripeError as exc:
            raise _upstream(exc, "create customer") from exc

        def _attach(p: UserProfile) -> UserProfile:
            # A concurrent request may have attached a customer already; keep theirs.
            if p.subscription.billing_customer_id:
                return p
            subscription = p.subscription.model_copy(update={"billing_customer_id": customer.id})
            return p.model_copy(update={"subscription": subscription, "updated_at": utc_now()})

        updated = await self.caps.profiles.update(profile.uid, _attach)
        return updated.subscription.billing_customer_id

    async def create_checkout_session(self, profile: UserProfile, plan: str, interval: str) -> str:
        """Create a Stripe Checkout session and return the URL."""
        price_id = build_price_map(self.settings).get((plan, interval))
        if not price_id:
            raise ValidationFailedError(f"Invalid plan/interval: {plan}/{interval}")

        customer_id = await self._get_or_create_customer(profile)
        _get_stripe(self.settings)
        try:
            session = await stripe.checkout.Session.create_async(
                customer=customer_id,
                mode="subscription",
                line_items=[{"price": price_id, "quantity": 1}],
                success_url=f"{self.settings.frontend_url}/dashboard?checkout_success=true",
                cancel_url=f"{self.settings.frontend_url}/pricing",
                metadata={"user_id": profile.uid, "plan": plan, "interval": interval},
            )
        except stripe.StripeError as exc:
            raise _upstream(exc, "create checkout session") from exc

        logger.info("checkout_session_created", user_id=profile.uid, plan=plan, interval=interval)
        return session.url

    async def create_portal_session(self, profile: UserProfile) -> str:
        """Create a Stripe Customer Portal session and return the URL."""
        customer_id = profile.subscription.billing_customer_id
        if not customer_id:
            raise ValidationFailedError("No billing account found. Please subscribe first.")

        _get_stripe(self.settings)
        try:
            session = await stripe.billing_portal.Session.create_async(
                customer=customer_id,
                return_url=f"{self.settings.frontend_url}/subscription",
            )
        except stripe.StripeError as exc:
            raise _upstream(exc, "create portal session") from exc
        return session.url

    async def cancel_subscription(self, profile: UserProfile) -> UserProfile:
        """Schedule cancellation at the end of the current billing period."""
        subscription_id = profile.subscription.billing_subscription_id
        if not subscription_id:
            raise ValidationFailedError("No active subscription to cancel")

        _get_stripe(self.settings)
        try:
            await stripe.Subscription.modify_async(subscription_id, cancel_at_period_end=True)
        except stripe.StripeError as exc:
            raise _upstream(exc, "cancel subscription") from exc

        def _mark(p: UserProfile) -> UserProfile:
            subscription = p.subscription.model_copy(update={"cancel_at_period_end": True})
            return p.model_copy(update={"subscription": subscription, "updated_at": utc_now()})

        updated = await self.caps.profiles.update(profile.uid, _mark)
        logger.info("subscription_cancel_scheduled", user_id=profile.uid)
        return updated

    # ── Webhook handlers ────────────────────────────────────────────

    async def receive_webhook(self, payload: bytes, signature: str | None) -> bool:
        """Verify and apply one Stripe delivery.

        Returns False when the event id was processed before; the event is
        then acknowledged without being applied again.

        Raises:
            UpstreamProviderError: signing secret not configured (503)
            WebhookRejectedError: missing or invalid signature, malformed payload
        """
        secret = self.settings.stripe_webhook_secret
        if not secret:
            logger.error("stripe_webhook_secret_missing")
            raise UpstreamProviderError("billing", "Stripe webhook endpoint is not configured", status_code=503)
        if not signature:
            raise WebhookRejectedError("Missing stripe-signature header")

        try:
            event = stripe.Webhook.construct_event(payload, signature, secret)
        except ValueError as exc:
            raise WebhookRejectedError("Invalid payload") from exc
        except stripe.SignatureVerificationError as exc:
            logger.warning("stripe_signature_invalid")
            raise WebhookRejectedError("Invalid signature") from exc

        if not isinstance(event, dict):
            event = event.to_dict()
        if not await self.caps.events.claim(event["id"]):
            logger.info("stripe_duplicate_event_ignored", event_id=event["id"])
            return False

        try:
            await self.handle_event(event)
        except Exception:
            # A failed event stays unclaimed so Stripe's redelivery is applied
            await self.caps.events.release(event["id"])
            logger.error("stripe_webhook_handler_failed", event_id=event["id"], event_type=event.get("type"))
            raise
        return True

    async def handle_event(self, event: dict) -> None:
        event_type = event["type"]
        data = event["data"]["object"]

        logger.info("stripe_webhook_received", event_type=event_type, event_id=event.get("id"))

        if event_type == "checkout.session.completed":
            await self._handle_checkout_completed(data)
        elif event_type == "customer.subscription.updated":
            await self._handle_subscription_updated(data)
        elif event_type == "customer.subscription.deleted":
            await self._handle_subscription_deleted(data)
        elif event_type == "invoice.payment_failed":
            await self._handle_payment_failed(data)
        else:
            logger.info("stripe_event_ignored", event_type=event_type)

    async def _update_by_customer(self, customer_id: str | None, mutate, event: str) -> UserProfile | None:
        if not customer_id:
            return None
        profile = await self.caps.profiles.find_by_customer_id(customer_id)
        if profile is None:
            logger.warning(f"{event}_unknown_customer", customer_id=customer_id)
            return None
        return await self.caps.profiles.update(profile.uid, mutate)

    async def _handle_checkout_completed(self, session_data: dict, now: datetime | None = None) -> None:
        """Move the user onto the purchased plan after successful checkout."""
        now = now or utc_now()
        metadata = session_data.get("metadata") or {}
        user_id = metadata.get("user_id")
        plan = metadata.get("plan")

        if not user_id or plan not in {p.value for p in PAID_PLANS}:
            logger.warning("checkout_completed_missing_metadata", session_id=session_data.get("id"))
            return

        def _upgrade(profile: UserProfile) -> UserProfile:
            profile = change_plan(profile, plan, now)
            subscription = profile.subscription.model_copy(
                update={
                    "billing_customer_id": session_data.get("customer")
                    or profile.subscription.billing_customer_id,
                    "billing_subscription_id": session_data.get("subscription"),
                    "billing_interval": metadata.get("interval"),
                }
            )
            return profile.model_copy(update={"subscription": subscription})

        try:
            await self.caps.profiles.update(user_id, _upgrade)
        except ProfileNotFoundError:
            logger.error("checkout_profile_not_found", user_id=user_id)
            return

        logger.info("plan_upgraded", plan=plan, user_id=user_id)
        await emit_business_event("new_subscription", plan=plan)

    async def _handle_subscription_updated(self, subscription: dict, now: datetime | None = None) -> None:
        """Sync subscription status and the pending-cancellation flag."""
        now = now or utc_now()
        raw_status = subscription.get("status")
        status = _STATUS_MAP.get(raw_status)
        if status is None:
            logger.info("subscription_status_unmapped", status=raw_status)
            return

        def _sync(profile: UserProfile) -> UserProfile:
            sub = profile.subscription.model_copy(
                update={
                    "status": status,
                    "cancel_at_period_end": bool(subscription.get("cancel_at_period_end", False)),
                    "billing_subscription_id": subscription.get("id")
                    or profile.subscription.billing_subscription_id,
                }
            )
            limits = profile.limits
            if status in (SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING):
                limits = limits_for(sub.plan)
            elif status == SubscriptionStatus.PAST_DUE:
                limits = limits_for(Plan.FREE)
            return profile.model_copy(update={"subscription": sub, "limits": limits, "updated_at": now})

        updated = await self._update_by_customer(subscription.get("customer"), _sync, "subscription_updated")
        if updated is not None:
            logger.info(
                "subscription_status_updated",
                status=status.value,
                customer_id=subscription.get("customer"),
                user_id=updated.uid,
            )

    async def _handle_subscription_deleted(self, subscription: dict, now: datetime | None = None) -> None:
        """Downgrade to free when the subscription ends."""
        now = now or utc_now()

        def _downgrade(profile: UserProfile) -> UserProfile:
            profile = change_plan(profile, Plan.FREE, now)
            sub = profile.subscription.model_copy(
                update={
                    "status": SubscriptionStatus.CANCELLED,
                    "cancelled_at": now,
                    "billing_subscription_id": None,
                    "billing_interval": None,
                }
            )
            return profile.model_copy(update={"subscription": sub})

        updated = await self._update_by_customer(subscription.get("customer"), _downgrade, "subscription_deleted")
        if updated is not None:
            logger.info("plan_downgraded_to_free", customer_id=subscription.get("customer"), user_id=updated.uid)
            await emit_business_event("subscription_cancelled", plan=Plan.FREE.value)

    async def _handle_payment_failed(self, invoice: dict, now: datetime | None = None) -> None:
        """Immediately restrict to free-tier limits on payment failure (no grace period).

        The stored plan is kept for recovery; ``effective_plan`` treats the
        ``past_due`` profile as free, so plan-gated features close too.
        """
        now = now or utc_now()

        def _restrict(profile: UserProfile) -> UserProfile:
            # Keep the subscription id; Stripe may still recover the subscription
            sub = profile.subscription.model_copy(update={"status": SubscriptionStatus.PAST_DUE})
            return profile.model_copy(
                update={"subscription": sub, "limits": limits_for(Plan.FREE), "updated_at": now}
            )

        updated = await self._update_by_customer(invoice.get("customer"), _restrict, "payment_failed")
        if updated is not None:
            logger.info("payment_failed_restricted_to_free", customer_id=invoice.get("customer"), user_id=updated.uid)


def billing_status(profile: UserProfile) -> dict:
    subscription = profile.subscription
    return {
        "plan": subscription.plan.value,
        "status": subscription.status.value,
        "has_subscription": subscription.billing_subscription_id is not None,
        "cancel_at_period_end": subscription.cancel_at_period_end,
        "billing_interval": subscription.billing_interval,
    }

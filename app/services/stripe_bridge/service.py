"""
StripeBridge: card rail adapter.

Hosted checkout creation, webhook signature verification and the event state
machine that feeds SubscriptionLedger. Card data never passes through here.
"""
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

import stripe
from sqlalchemy.orm import Session

from app.billing.config import StripeConfig
from app.billing.errors import (
    InvalidPlan,
    ProcessorError,
    ProcessorNotConfigured,
    TransientNetworkError,
)
from app.billing.models import (
    CheckoutSessionResult,
    PaymentMethod,
    Plan,
    StripeEventType,
    SubscriptionStatus,
    TIER_PRO,
    WebhookOutcome,
    WebhookVerification,
)
from app.billing.pricing import parse_plan
from app.models.profile import Profile
from app.services.ledger.service import SubscriptionLedger
from app.services.profiles.service import ProfileService
from app.utils.dates import utcnow
from app.utils.metrics import stripe_webhook_events_total, subscription_activations_total


logger = logging.getLogger(__name__)

# Processor statuses that end the entitlement immediately
TERMINAL_STATUSES = {"canceled", "unpaid", "incomplete_expired"}

STATUS_MAP = {
    "active": SubscriptionStatus.ACTIVE,
    "trialing": SubscriptionStatus.ACTIVE,
    "past_due": SubscriptionStatus.PAST_DUE,
    "canceled": SubscriptionStatus.CANCELED,
    "unpaid": SubscriptionStatus.CANCELED,
    "incomplete_expired": SubscriptionStatus.CANCELED,
}


def map_processor_status(status: str | None) -> SubscriptionStatus:
    """Unrecognized statuses are treated as active."""
    return STATUS_MAP.get(status or "", SubscriptionStatus.ACTIVE)


def verify_webhook(
    raw_payload: bytes,
    signature_header: str | None,
    secret: str,
    tolerance: int = 300,
) -> WebhookVerification:
    """
    Verify the Stripe-Signature header with the SDK and return the event as a
    plain dict. Signed bodies that are not an event with a `data.object`
    mapping are rejected too, so handlers never see a malformed payload.
    """
    if not secret:
        return WebhookVerification(valid=False, error="Webhook secret not configured")
    if not signature_header:
        return WebhookVerification(valid=False, error="Missing signature header")

    try:
        event = stripe.Webhook.construct_event(raw_payload, signature_header, secret, tolerance=tolerance)
    except stripe.SignatureVerificationError as e:
        return WebhookVerification(valid=False, error=f"Signature verification failed: {e.user_message or e}")
    except ValueError:
        return WebhookVerification(valid=False, error="Invalid JSON payload")
    except (AttributeError, TypeError):
        # Signed JSON that is not an object
        return WebhookVerification(valid=False, error="Invalid event payload")

    payload = event.to_dict()
    data = payload.get("data")
    if not payload.get("type") or not isinstance(data, dict) or not isinstance(data.get("object"), dict):
        return WebhookVerification(valid=False, error="Invalid event payload")
    return WebhookVerification(valid=True, event=payload)


def _period_end_from(obj: dict) -> datetime | None:
    raw = obj.get("current_period_end")
    if raw is None:
        # Newer API versions moved the period onto subscription items
        items = (obj.get("items") or {}).get("data") or []
        raw = items[0].get("current_period_end") if items else None
    if raw is None:
        return None
    return datetime.fromtimestamp(int(raw), tz=timezone.utc)


class StripeBridge:
    def __init__(self, db: Session, config: StripeConfig):
        self.db = db
        self.config = config
        self.profiles = ProfileService(db)
        self.ledger = SubscriptionLedger(db)

    # ----- checkout -----

    def create_checkout_session(
        self,
        plan: str | Plan,
        customer_email: str | None = None,
        wallet_address: str | None = None,
    ) -> CheckoutSessionResult:
        plan = parse_plan(plan)
        if not self.config.secret_key:
            raise ProcessorNotConfigured("Card payments are not configured")
        price_id = self.config.price_ids.get(plan)
        if not price_id:
            raise InvalidPlan(f"No processor price configured for {plan.value}")

        params: dict[str, Any] = {
            "mode": "subscription",
            "line_items": [{"price": price_id, "quantity": 1}],
            "success_url": self.config.success_url,
            "cancel_url": self.config.cancel_url,
            "allow_promotion_codes": True,
            "metadata": {"plan": plan.value, "wallet_address": wallet_address or ""},
        }
        if customer_email:
            params["customer_email"] = customer_email
        if wallet_address:
            params["client_reference_id"] = wallet_address

        try:
            session = stripe.checkout.Session.create(
                api_key=self.config.secret_key,
                idempotency_key=str(uuid.uuid4()),
                **params,
            )
        except stripe.AuthenticationError as e:
            logger.error("stripe_auth_failed", extra={"error": str(e)})
            raise ProcessorNotConfigured("Card processor rejected credentials")
        except stripe.APIConnectionError as e:
            logger.warning("stripe_unreachable", extra={"error": str(e)})
            raise TransientNetworkError("Card processor unreachable")
        except stripe.StripeError as e:
            logger.error("stripe_checkout_failed", extra={"error": str(e)})
            raise ProcessorError("Failed to create checkout session")

        logger.info(
            "stripe_checkout_created",
            extra={"plan": plan.value, "wallet": wallet_address, "session_id": session.id},
        )
        return CheckoutSessionResult(session_id=session.id, url=session.url)

    # ----- webhooks -----

    def verify(self, raw_payload: bytes, signature_header: str | None) -> WebhookVerification:
        result = verify_webhook(
            raw_payload,
            signature_header,
            self.config.webhook_secret,
            tolerance=self.config.webhook_tolerance_seconds,
        )
        if not result.valid:
            stripe_webhook_events_total.labels(event_type="unknown", outcome="rejected").inc()
            logger.warning("stripe_webhook_signature_invalid", extra={"reason": result.error})
        return result

    def handle_event(self, event: dict, now: datetime | None = None) -> WebhookOutcome:
        """Apply a verified event. Unknown types are acknowledged and ignored."""
        now = now or utcnow()
        event_type = StripeEventType.parse(event.get("type"))
        data = event.get("data")
        obj = data.get("object") if isinstance(data, dict) else None
        if not isinstance(obj, dict):
            obj = {}

        if event_type is StripeEventType.CHECKOUT_COMPLETED:
            outcome = self._on_checkout_completed(obj, now)
        elif event_type is StripeEventType.SUBSCRIPTION_DELETED:
            outcome = self._on_subscription_deleted(obj)
        elif event_type is StripeEventType.SUBSCRIPTION_UPDATED:
            outcome = self._on_subscription_updated(obj)
        else:
            outcome = WebhookOutcome.IGNORED

        self.db.commit()
        stripe_webhook_events_total.labels(
            event_type=event_type.value if event_type else "other",
            outcome=outcome.value,
        ).inc()
        logger.info(
            "stripe_webhook_handled",
            extra={"event_type": event.get("type"), "event_id": event.get("id"), "status": outcome.value},
        )
        return outcome

    def _on_checkout_completed(self, session: dict, now: datetime) -> WebhookOutcome:
        metadata = session.get("metadata") or {}
        wallet = metadata.get("wallet_address") or session.get("client_reference_id") or None
        email = session.get("customer_email") or (session.get("customer_details") or {}).get("email")
        customer_id = session.get("customer")
        subscription_id = session.get("subscription")

        profile = None
        if customer_id:
            profile = self.profiles.get_by_customer_id(customer_id)
        if profile is None:
            profile = self.profiles.resolve_for_checkout(wallet_address=wallet, email=email)
        if profile is None:
            profile = self.profiles.create(wallet_address=wallet, email=email)
            logger.info("profile_created_from_checkout", extra={"user_id": profile.id, "wallet": wallet})

        self._link_customer(profile, customer_id, subscription_id)
        self.ledger.upsert_active(
            profile.id,
            period_end=now + timedelta(days=self.config.period_days),
            payment_method=PaymentMethod.STRIPE,
            plan=TIER_PRO,
            stripe_customer_id=customer_id,
            stripe_subscription_id=subscription_id,
            now=now,
        )
        subscription_activations_total.labels(payment_method=PaymentMethod.STRIPE.value).inc()
        return WebhookOutcome.PROCESSED

    def _on_subscription_deleted(self, subscription: dict) -> WebhookOutcome:
        profile = self._profile_for_customer(subscription.get("customer"))
        if profile is None:
            return WebhookOutcome.IGNORED
        self.ledger.downgrade(profile.id, revoke_plan=True)
        return WebhookOutcome.PROCESSED

    def _on_subscription_updated(self, subscription: dict) -> WebhookOutcome:
        profile = self._profile_for_customer(subscription.get("customer"))
        if profile is None:
            return WebhookOutcome.IGNORED
        raw_status = subscription.get("status")
        synced = self.ledger.sync_processor_status(
            profile.id,
            map_processor_status(raw_status),
            _period_end_from(subscription),
        )
        if synced is None:
            logger.warning("stripe_subscription_missing", extra={"user_id": profile.id})
            return WebhookOutcome.IGNORED
        if raw_status in TERMINAL_STATUSES:
            self.ledger.downgrade(profile.id, revoke_plan=True)
        return WebhookOutcome.PROCESSED

    def _profile_for_customer(self, customer_id: str | None) -> Profile | None:
        profile = self.profiles.get_by_customer_id(customer_id) if customer_id else None
        if profile is None:
            logger.warning("stripe_customer_unknown", extra={"customer_id": customer_id})
        return profile

    def _link_customer(self, profile: Profile, customer_id: str | None, subscription_id: str | None) -> None:
        if customer_id and profile.stripe_customer_id != customer_id:
            profile.stripe_customer_id = customer_id
        if subscription_id:
            profile.stripe_subscription_id = subscription_id
        self.db.add(profile)
        self.db.flush()

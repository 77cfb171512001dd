"""
Billing vocabulary and DTOs shared by both payment rails.
Enums mirror the string values stored in the database.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class Plan(str, Enum):
    PRO_MONTHLY = "pro_monthly"
    PRO_YEARLY = "pro_yearly"


class Currency(str, Enum):
    USDC = "USDC"
    SOL = "SOL"


class IntentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    EXPIRED = "expired"


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    CANCELED = "canceled"
    PAST_DUE = "past_due"


class PaymentMethod(str, Enum):
    CRYPTO = "crypto"
    STRIPE = "stripe"


class ClaimSource(str, Enum):
    """Which entry point consumed a transaction signature."""

    INTENT = "intent"
    WALLET = "wallet"


# Entitlement tier stored on Subscription.plan / Profile.plan
TIER_PRO = "pro"
TIER_FREE = "free"


# ----- Results -----


class VerificationResult(BaseModel):
    """Outcome of OnChainVerifier.verify. `retriable` = the same reference may succeed later."""

    valid: bool
    reason: str | None = None
    retriable: bool = False
    received_amount: Decimal | None = None
    block_time: datetime | None = None
    memo_matched: bool | None = None

    model_config = {"frozen": True}


class ActivationResult(BaseModel):
    """Returned by both crypto entry points after the ledger write."""

    plan: str = TIER_PRO
    expires_at: datetime
    user_id: str
    already_processed: bool = False

    model_config = {"frozen": True}


class WebhookVerification(BaseModel):
    """Result of verifying a processor webhook: parsed event only when valid."""

    valid: bool
    event: dict[str, Any] | None = None
    error: str | None = None

    model_config = {"frozen": True}


class CheckoutSessionResult(BaseModel):
    session_id: str
    url: str

    model_config = {"frozen": True}


class WebhookOutcome(str, Enum):
    PROCESSED = "processed"
    IGNORED = "ignored"


class StripeEventType(str, Enum):
    """Processor events the webhook reacts to. Anything else is acknowledged and ignored."""

    CHECKOUT_COMPLETED = "checkout.session.completed"
    SUBSCRIPTION_DELETED = "customer.subscription.deleted"
    SUBSCRIPTION_UPDATED = "customer.subscription.updated"

    @classmethod
    def parse(cls, value: Any) -> StripeEventType | None:
        try:
            return cls(value)
        except ValueError:
            return None


class SweepResult(BaseModel):
    expired_intents: int = Field(0, description="pending intents moved to expired")
    lapsed_subscriptions: int = Field(0, description="subscriptions downgraded after period end")

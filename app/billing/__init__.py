"""
Billing core (internal library): vocabulary, errors, pricing, memos, config.
Pure code without I/O; services in app.services.* build on it.
"""
from app.billing.config import BillingConfig, StripeConfig, load_billing_config, load_stripe_config
from app.billing.memo import new_memo, wallet_memo
from app.billing.models import (
    ActivationResult,
    ClaimSource,
    Currency,
    IntentStatus,
    PaymentMethod,
    Plan,
    StripeEventType,
    SubscriptionStatus,
    VerificationResult,
    WebhookVerification,
)
from app.billing.pricing import AmountPolicy, parse_currency, parse_plan, subscription_period_end

__all__ = [
    "ActivationResult",
    "AmountPolicy",
    "BillingConfig",
    "ClaimSource",
    "Currency",
    "IntentStatus",
    "PaymentMethod",
    "Plan",
    "StripeConfig",
    "StripeEventType",
    "SubscriptionStatus",
    "VerificationResult",
    "WebhookVerification",
    "load_billing_config",
    "load_stripe_config",
    "new_memo",
    "parse_currency",
    "parse_plan",
    "subscription_period_end",
    "wallet_memo",
]

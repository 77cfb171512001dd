"""
Billing config: typed, immutable snapshots of app.core.config.settings.

Built once at startup and injected into AmountPolicy, OnChainVerifier,
PaymentIntentManager and StripeBridge, so verification code never reads
ambient settings and tests can pass fixture configs.
"""
from __future__ import annotations

import json
from datetime import timedelta
from decimal import Decimal
from functools import lru_cache

from pydantic import BaseModel

from app.billing.models import Currency, Plan
from app.core.config import Settings, settings


class BillingConfig(BaseModel):
    treasury_wallet: str
    usdc_mint: str
    treasury_usdc_account: str | None = None
    prices: dict[Plan, dict[Currency, Decimal]]
    amount_tolerance: Decimal = Decimal("0.01")
    intent_ttl: timedelta = timedelta(minutes=30)
    max_transaction_age: timedelta = timedelta(hours=1)

    model_config = {"frozen": True}


class StripeConfig(BaseModel):
    secret_key: str = ""
    webhook_secret: str = ""
    price_ids: dict[Plan, str] = {}
    success_url: str = ""
    cancel_url: str = ""
    webhook_tolerance_seconds: int = 300
    period_days: int = 30

    model_config = {"frozen": True}


def parse_price_table(raw: str) -> dict[Plan, dict[Currency, Decimal]]:
    """Parse PLAN_PRICES JSON into {Plan: {Currency: Decimal}}."""
    data = json.loads(raw)
    return {
        Plan(plan): {Currency(cur): Decimal(str(amount)) for cur, amount in by_currency.items()}
        for plan, by_currency in data.items()
    }


def billing_config_from_settings(s: Settings) -> BillingConfig:
    return BillingConfig(
        treasury_wallet=s.treasury_wallet,
        usdc_mint=s.usdc_mint,
        treasury_usdc_account=s.treasury_usdc_account or None,
        prices=parse_price_table(s.plan_prices),
        amount_tolerance=s.payment_amount_tolerance,
        intent_ttl=timedelta(minutes=s.payment_intent_ttl_minutes),
        max_transaction_age=timedelta(seconds=s.transaction_max_age_seconds),
    )


def stripe_config_from_settings(s: Settings) -> StripeConfig:
    app_url = s.app_url.rstrip("/")
    price_ids = {}
    if s.stripe_price_monthly:
        price_ids[Plan.PRO_MONTHLY] = s.stripe_price_monthly
    if s.stripe_price_yearly:
        price_ids[Plan.PRO_YEARLY] = s.stripe_price_yearly
    return StripeConfig(
        secret_key=s.stripe_secret_key,
        webhook_secret=s.stripe_webhook_secret,
        price_ids=price_ids,
        success_url=f"{app_url}/subscribe/success?session_id={{CHECKOUT_SESSION_ID}}",
        cancel_url=f"{app_url}/pricing",
        webhook_tolerance_seconds=s.stripe_webhook_tolerance_seconds,
        period_days=s.stripe_period_days,
    )


@lru_cache(maxsize=1)
def load_billing_config() -> BillingConfig:
    return billing_config_from_settings(settings)


@lru_cache(maxsize=1)
def load_stripe_config() -> StripeConfig:
    return stripe_config_from_settings(settings)

"""
AmountPolicy: the one authoritative price table and tolerance rules.
Every amount a payment must match is derived from here.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from app.billing.errors import InvalidCurrency, InvalidPlan
from app.billing.models import Currency, Plan
from app.utils.dates import add_months

# Hosted checkout historically used bare "monthly" / "yearly"
PLAN_ALIASES = {
    "monthly": Plan.PRO_MONTHLY,
    "yearly": Plan.PRO_YEARLY,
}


def parse_plan(value: str | Plan) -> Plan:
    if isinstance(value, Plan):
        return value
    key = (value or "").strip().lower()
    if key in PLAN_ALIASES:
        return PLAN_ALIASES[key]
    try:
        return Plan(key)
    except ValueError:
        raise InvalidPlan(f"Invalid plan: {value!r}")


def parse_currency(value: str | Currency) -> Currency:
    if isinstance(value, Currency):
        return value
    try:
        return Currency((value or "").strip().upper())
    except ValueError:
        raise InvalidCurrency(f"Unsupported currency: {value!r}")


def format_amount(value: Decimal) -> str:
    """Plain decimal string without exponent or trailing zeros (240.000000000 -> "240")."""
    return format(Decimal(value).normalize(), "f")


def subscription_period_end(plan: Plan, start: datetime) -> datetime:
    """Monthly plans add one calendar month, yearly plans one calendar year."""
    if plan is Plan.PRO_YEARLY:
        return add_months(start, 12)
    return add_months(start, 1)


class AmountPolicy:
    def __init__(self, prices: dict[Plan, dict[Currency, Decimal]], tolerance: Decimal = Decimal("0.01")) -> None:
        self._prices = prices
        self._tolerance = tolerance

    def price_for(self, plan: Plan, currency: Currency) -> Decimal:
        return self._prices[plan][currency]

    def minimum_accepted(self, expected: Decimal) -> Decimal:
        """Lowest amount accepted for `expected` (downward tolerance covers rounding)."""
        return expected * (Decimal("1") - self._tolerance)

    def is_sufficient(self, received: Decimal, expected: Decimal) -> bool:
        return received >= self.minimum_accepted(expected)

"""
Subscription: authoritative entitlement record, one row per user.
Written only through SubscriptionLedger (upsert keyed by user_id).
"""
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, String

from app.db.base import Base


class Subscription(Base):
    __tablename__ = "subscriptions"

    user_id = Column(String, primary_key=True)
    plan = Column(String, nullable=False)                      # pro / free
    status = Column(String, nullable=False)                    # active / canceled / past_due
    current_period_end = Column(DateTime(timezone=True), nullable=False)
    payment_method = Column(String, nullable=False)            # crypto / stripe
    last_payment_signature = Column(String, nullable=True)
    stripe_customer_id = Column(String, nullable=True)
    stripe_subscription_id = Column(String, nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

"""
Profile: identity anchor (wallet address or email / Stripe customer).
Owned by the wider application; the payment engine only resolves it and may
create a minimal row when a wallet or card customer pays without an account.
"""
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Column, DateTime, String

from app.db.base import Base


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    wallet_address = Column(String, unique=True, nullable=True, index=True)
    email = Column(String, nullable=True, index=True)
    plan = Column(String, nullable=False, default="free")  # free / pro, mirror of subscriptions for readers
    stripe_customer_id = Column(String, unique=True, nullable=True)
    stripe_subscription_id = Column(String, nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

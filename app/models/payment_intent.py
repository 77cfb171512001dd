"""
PaymentIntent: a promise to pay, created before funds move.
Status is monotonic: pending -> completed | expired, terminal once non-pending.
"""
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Column, DateTime, Numeric, String

from app.db.base import Base


class PaymentIntent(Base):
    __tablename__ = "payment_intents"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    user_id = Column(String, nullable=False, index=True)
    plan = Column(String, nullable=False)                       # pro_monthly / pro_yearly
    amount = Column(Numeric(18, 9), nullable=False)
    currency = Column(String, nullable=False)                   # USDC / SOL
    memo = Column(String, unique=True, nullable=False)
    status = Column(String, nullable=False, default="pending")  # pending / completed / expired
    expires_at = Column(DateTime(timezone=True), nullable=False)
    transaction_signature = Column(String, unique=True, nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

"""
UsedSignature: one row per consumed on-chain transaction.
The primary key is the replay guard: a second insert of the same signature fails.
"""
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, String

from app.db.base import Base


class UsedSignature(Base):
    __tablename__ = "used_signatures"

    signature = Column(String, primary_key=True)
    user_id = Column(String, nullable=True, index=True)
    source = Column(String, nullable=False)  # intent / wallet
    claimed_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

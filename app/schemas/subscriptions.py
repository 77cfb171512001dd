from datetime import datetime

from pydantic import Field

from app.schemas.common import CamelModel


class WalletActivateRequest(CamelModel):
    wallet_address: str = Field(..., min_length=1)
    plan: str
    signature: str = Field(..., min_length=1)
    currency: str = "USDC"


class SubscriptionOut(CamelModel):
    status: str
    plan: str
    current_period_end: datetime
    payment_method: str
    last_payment_signature: str | None = None


class AccountOut(CamelModel):
    plan: str = "free"
    email: str | None = None
    subscription: SubscriptionOut | None = None


class ProStatusOut(CamelModel):
    is_pro: bool


class CancelRequest(CamelModel):
    wallet_address: str = Field(..., min_length=1)


class CancelOut(CamelModel):
    success: bool = True
    status: str
    expires_at: datetime

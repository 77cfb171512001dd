from datetime import datetime

from pydantic import Field

from app.schemas.common import CamelModel


class CreateIntentRequest(CamelModel):
    user_id: str
    plan: str
    currency: str = "USDC"


class PaymentIntentOut(CamelModel):
    payment_id: str
    treasury_address: str
    amount: str
    currency: str
    memo: str
    expires_at: datetime
    solana_pay_url: str


class VerifyIntentRequest(CamelModel):
    signature: str = Field(..., min_length=1)


class ActivationOut(CamelModel):
    success: bool = True
    plan: str
    expires_at: datetime | None = None
    already_processed: bool = False

from app.schemas.common import CamelModel


class CheckoutRequest(CamelModel):
    plan: str
    email: str | None = None
    wallet_address: str | None = None


class CheckoutOut(CamelModel):
    url: str
    session_id: str

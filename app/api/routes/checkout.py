"""
Card rail: hosted checkout sessions and the processor webhook.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.concurrency import run_in_threadpool

from app.api.deps import get_stripe_bridge
from app.api.errors import http_error
from app.billing.errors import PaymentError, ProcessorSignatureInvalid
from app.services.stripe_bridge.service import StripeBridge
from app.schemas.checkout import CheckoutOut, CheckoutRequest


logger = logging.getLogger(__name__)

router = APIRouter(tags=["checkout"])


@router.post("/checkout/sessions", response_model=CheckoutOut)
def create_checkout_session(
    body: CheckoutRequest,
    bridge: StripeBridge = Depends(get_stripe_bridge),
):
    try:
        session = bridge.create_checkout_session(
            body.plan,
            customer_email=body.email,
            wallet_address=body.wallet_address,
        )
    except PaymentError as e:
        raise http_error(e)
    return CheckoutOut(url=session.url, session_id=session.session_id)


@router.post("/webhooks/payment-processor")
async def payment_processor_webhook(
    request: Request,
    bridge: StripeBridge = Depends(get_stripe_bridge),
):
    """
    400 only when the signature or payload is bad. Every verified event gets a
    200, including unhandled types, so the processor does not retry forever.
    """
    payload = await request.body()
    signature = request.headers.get("Stripe-Signature") or request.headers.get("signature")
    verification = bridge.verify(payload, signature)
    if not verification.valid:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": verification.error, "code": ProcessorSignatureInvalid.code},
        )
    outcome = await run_in_threadpool(bridge.handle_event, verification.event)
    return {"received": True, "outcome": outcome.value}

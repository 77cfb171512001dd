"""
Crypto rail: pre-registered payment intents.
"""
from decimal import Decimal

from fastapi import APIRouter, Depends

from app.api.deps import get_intent_manager
from app.api.errors import http_error
from app.billing.errors import AlreadyProcessed, PaymentError
from app.billing.models import Currency
from app.billing.pricing import format_amount
from app.services.intents.service import PaymentIntentManager, solana_pay_url
from app.services.rate_limit import enforce_verify_rate_limit
from app.schemas.payments import (
    ActivationOut,
    CreateIntentRequest,
    PaymentIntentOut,
    VerifyIntentRequest,
)
from app.utils.dates import as_utc


router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/intents", response_model=PaymentIntentOut)
def create_intent(
    body: CreateIntentRequest,
    manager: PaymentIntentManager = Depends(get_intent_manager),
):
    try:
        intent = manager.create_intent(body.user_id, body.plan, body.currency)
    except PaymentError as e:
        raise http_error(e)

    config = manager.config
    amount = Decimal(intent.amount)
    return PaymentIntentOut(
        payment_id=intent.id,
        treasury_address=config.treasury_wallet,
        amount=format_amount(amount),
        currency=intent.currency,
        memo=intent.memo,
        expires_at=as_utc(intent.expires_at),
        solana_pay_url=solana_pay_url(
            config.treasury_wallet,
            amount,
            Currency(intent.currency),
            intent.memo,
            config.usdc_mint,
        ),
    )


@router.put(
    "/intents/{intent_id}/verify",
    response_model=ActivationOut,
    dependencies=[Depends(enforce_verify_rate_limit)],
)
def verify_intent(
    intent_id: str,
    body: VerifyIntentRequest,
    manager: PaymentIntentManager = Depends(get_intent_manager),
):
    """Verify the on-chain transfer for an intent and activate pro."""
    try:
        result = manager.activate(intent_id, body.signature.strip())
    except AlreadyProcessed as e:
        return ActivationOut(plan=e.plan or "pro", expires_at=e.expires_at, already_processed=True)
    except PaymentError as e:
        raise http_error(e)
    return ActivationOut(plan=result.plan, expires_at=result.expires_at)

"""
Subscription endpoints: walk-up wallet activation, account lookup, cancel.
"""
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.api.deps import get_intent_manager
from app.api.errors import http_error
from app.billing.errors import NotFound, PaymentError
from app.billing.models import TIER_FREE
from app.db.session import get_db
from app.services.intents.service import PaymentIntentManager
from app.services.ledger.service import SubscriptionLedger
from app.services.profiles.service import ProfileService
from app.services.rate_limit import enforce_verify_rate_limit
from app.schemas.payments import ActivationOut
from app.schemas.subscriptions import (
    AccountOut,
    CancelOut,
    CancelRequest,
    ProStatusOut,
    SubscriptionOut,
    WalletActivateRequest,
)
from app.utils.dates import as_utc


router = APIRouter(prefix="/subscriptions", tags=["subscriptions"])


@router.post(
    "/wallet-activate",
    response_model=ActivationOut,
    dependencies=[Depends(enforce_verify_rate_limit)],
)
def wallet_activate(
    body: WalletActivateRequest,
    manager: PaymentIntentManager = Depends(get_intent_manager),
):
    """Pay first, prove it after: activate pro from a signature without an intent."""
    try:
        result = manager.activate_wallet(
            body.wallet_address.strip(),
            body.plan,
            body.signature.strip(),
            currency=body.currency,
        )
    except PaymentError as e:
        raise http_error(e)
    return ActivationOut(plan=result.plan, expires_at=result.expires_at)


@router.get("/account", response_model=AccountOut)
def get_account(wallet: str = Query(..., min_length=1), db: Session = Depends(get_db)):
    profile = ProfileService(db).get_by_wallet(wallet)
    if profile is None:
        return AccountOut(plan=TIER_FREE)
    sub = SubscriptionLedger(db).get(profile.id)
    return AccountOut(
        plan=profile.plan,
        email=profile.email,
        subscription=SubscriptionOut(
            status=sub.status,
            plan=sub.plan,
            current_period_end=as_utc(sub.current_period_end),
            payment_method=sub.payment_method,
            last_payment_signature=sub.last_payment_signature,
        ) if sub else None,
    )


@router.get("/pro-status", response_model=ProStatusOut)
def pro_status(
    wallet: str | None = None,
    email: str | None = None,
    db: Session = Depends(get_db),
):
    if not wallet and not email:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "wallet or email is required", "code": "invalid_request"},
        )
    profiles = ProfileService(db)
    profile = profiles.get_by_wallet(wallet) if wallet else None
    if profile is None and email:
        profile = profiles.get_by_email(email)
    if profile is None:
        return ProStatusOut(is_pro=False)
    return ProStatusOut(is_pro=SubscriptionLedger(db).has_pro_access(profile.id))


@router.post("/cancel", response_model=CancelOut)
def cancel_subscription(body: CancelRequest, db: Session = Depends(get_db)):
    """Cancel at period end: pro stays until current_period_end."""
    try:
        profile = ProfileService(db).get_by_wallet(body.wallet_address.strip())
        if profile is None:
            raise NotFound("Profile not found")
        sub = SubscriptionLedger(db).cancel(profile.id)
    except PaymentError as e:
        raise http_error(e)
    db.commit()
    return CancelOut(status=sub.status, expires_at=as_utc(sub.current_period_end))

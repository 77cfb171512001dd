"""
PaymentIntentManager: crypto-rail activation.

Two entry points share one verify -> claim -> ledger sequence:
- activate(): a pre-registered intent carries the exact amount and memo
- activate_wallet(): walk-up flow, the wallet pays first and proves it after

Writes happen only after verification succeeds; the replay claim is the first
of them, so a lost race rolls everything back.
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Callable
from urllib.parse import urlencode

from solders.pubkey import Pubkey
from sqlalchemy import update
from sqlalchemy.orm import Session

from app.billing.config import BillingConfig
from app.billing.errors import (
    AlreadyProcessed,
    Expired,
    InvalidWalletAddress,
    NotFound,
    ReplayDetected,
    VerificationFailed,
)
from app.billing.memo import new_memo, wallet_memo
from app.billing.models import (
    ActivationResult,
    ClaimSource,
    Currency,
    IntentStatus,
    PaymentMethod,
    Plan,
    TIER_PRO,
)
from app.billing.pricing import AmountPolicy, format_amount, parse_currency, parse_plan, subscription_period_end
from app.models.payment_intent import PaymentIntent
from app.services.ledger.service import SubscriptionLedger
from app.services.profiles.service import ProfileService
from app.services.replay_guard.service import ReplayGuard
from app.services.verification.service import OnChainVerifier
from app.utils.dates import as_utc, utcnow
from app.utils.metrics import payment_intents_created_total, subscription_activations_total


logger = logging.getLogger(__name__)


def solana_pay_url(
    recipient: str,
    amount: Decimal,
    currency: Currency,
    memo: str,
    usdc_mint: str,
) -> str:
    """solana:<recipient>?amount=..&spl-token=..&memo=.. (Solana Pay transfer request)."""
    params = {"amount": format_amount(amount)}
    if currency is Currency.USDC:
        params["spl-token"] = usdc_mint
    params["memo"] = memo
    return f"solana:{recipient}?{urlencode(params)}"


def expire_stale_intents(db: Session, now: datetime | None = None) -> int:
    """pending -> expired for every intent past its window. Does not commit."""
    now = now or utcnow()
    result = db.execute(
        update(PaymentIntent)
        .where(
            PaymentIntent.status == IntentStatus.PENDING.value,
            PaymentIntent.expires_at < now,
        )
        .values(status=IntentStatus.EXPIRED.value)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount:
        logger.info("payment_intents_expired", extra={"count": result.rowcount})
    return result.rowcount


class PaymentIntentManager:
    def __init__(self, db: Session, verifier: OnChainVerifier | None, config: BillingConfig):
        self.db = db
        self.verifier = verifier
        self.config = config
        self.policy = AmountPolicy(config.prices, config.amount_tolerance)
        self.profiles = ProfileService(db)
        self.ledger = SubscriptionLedger(db)
        self.replay_guard = ReplayGuard(db)

    # ----- intent flow -----

    def create_intent(
        self,
        user_id: str,
        plan: str | Plan,
        currency: str | Currency,
        now: datetime | None = None,
    ) -> PaymentIntent:
        plan = parse_plan(plan)
        currency = parse_currency(currency)
        if self.profiles.get(user_id) is None:
            raise NotFound("User not found")

        now = now or utcnow()
        intent = PaymentIntent(
            user_id=user_id,
            plan=plan.value,
            amount=self.policy.price_for(plan, currency),
            currency=currency.value,
            memo=new_memo(user_id, now_ms=int(now.timestamp() * 1000)),
            status=IntentStatus.PENDING.value,
            expires_at=now + self.config.intent_ttl,
            created_at=now,
        )
        self.db.add(intent)
        self.db.commit()
        self.db.refresh(intent)

        payment_intents_created_total.labels(plan=plan.value, currency=currency.value).inc()
        logger.info(
            "payment_intent_created",
            extra={
                "intent_id": intent.id,
                "user_id": user_id,
                "plan": plan.value,
                "currency": currency.value,
            },
        )
        return intent

    def get_intent(self, intent_id: str) -> PaymentIntent:
        intent = self.db.get(PaymentIntent, intent_id)
        if intent is None:
            raise NotFound("Payment intent not found")
        return intent

    def activate(self, intent_id: str, signature: str, now: datetime | None = None) -> ActivationResult:
        now = now or utcnow()
        intent = self.get_intent(intent_id)

        if intent.status == IntentStatus.COMPLETED.value:
            raise self._already_processed(intent.user_id)

        if intent.status == IntentStatus.EXPIRED.value or now > as_utc(intent.expires_at):
            self._mark_expired(intent)
            raise Expired("Payment intent has expired")

        plan = Plan(intent.plan)
        user_id = intent.user_id
        self._verify_and_claim(
            signature,
            currency=Currency(intent.currency),
            amount=Decimal(intent.amount),
            memo=intent.memo,
            source=ClaimSource.INTENT,
            resolve_user=lambda: user_id,
            now=now,
        )

        completed = self.db.execute(
            update(PaymentIntent)
            .where(PaymentIntent.id == intent_id, PaymentIntent.status == IntentStatus.PENDING.value)
            .values(
                status=IntentStatus.COMPLETED.value,
                transaction_signature=signature,
                completed_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if completed.rowcount == 0:
            # Lost a race against another signature for the same intent
            self.db.rollback()
            raise self._already_processed(user_id)

        return self._activate_subscription(user_id, plan, signature, now, intent_id=intent_id)

    # ----- walk-up flow -----

    def activate_wallet(
        self,
        wallet_address: str,
        plan: str | Plan,
        signature: str,
        currency: str | Currency = Currency.USDC,
        now: datetime | None = None,
    ) -> ActivationResult:
        try:
            Pubkey.from_string(wallet_address)
        except (ValueError, TypeError):
            raise InvalidWalletAddress("Invalid wallet address")
        plan = parse_plan(plan)
        currency = parse_currency(currency)
        now = now or utcnow()

        amount = self.policy.price_for(plan, currency)
        user_id = self._verify_and_claim(
            signature,
            currency=currency,
            amount=amount,
            memo=wallet_memo(wallet_address, plan.value),
            source=ClaimSource.WALLET,
            resolve_user=lambda: self.profiles.get_or_create_by_wallet(wallet_address).id,
            now=now,
        )

        intent = PaymentIntent(
            user_id=user_id,
            plan=plan.value,
            amount=amount,
            currency=currency.value,
            memo=new_memo(user_id, now_ms=int(now.timestamp() * 1000)),
            status=IntentStatus.COMPLETED.value,
            expires_at=now,
            transaction_signature=signature,
            completed_at=now,
            created_at=now,
        )
        self.db.add(intent)
        self.db.flush()

        return self._activate_subscription(user_id, plan, signature, now, wallet=wallet_address)

    # ----- sweep -----

    def expire_stale(self, now: datetime | None = None) -> int:
        return expire_stale_intents(self.db, now)

    # ----- shared steps -----

    def _verify_and_claim(
        self,
        signature: str,
        *,
        currency: Currency,
        amount: Decimal,
        memo: str,
        source: ClaimSource,
        resolve_user: Callable[[], str],
        now: datetime,
    ) -> str:
        """
        Verify on-chain, resolve the payer, then claim the signature. Returns
        the user id. Raises VerificationFailed or
        ReplayDetected with the session rolled back.
        """
        result = self.verifier.verify(signature, currency, amount, memo, now=now)
        if not result.valid:
            self.db.rollback()
            raise VerificationFailed(result.reason or "Verification failed", retriable=result.retriable)

        user_id = resolve_user()
        if not self.replay_guard.claim(signature, user_id=user_id, source=source):
            raise ReplayDetected("This transaction has already been used")
        return user_id

    def _activate_subscription(
        self,
        user_id: str,
        plan: Plan,
        signature: str,
        now: datetime,
        **log_fields,
    ) -> ActivationResult:
        sub = self.ledger.upsert_active(
            user_id,
            period_end=subscription_period_end(plan, now),
            payment_method=PaymentMethod.CRYPTO,
            correlation_ref=signature,
            now=now,
        )
        expires_at = as_utc(sub.current_period_end)
        self.db.commit()

        subscription_activations_total.labels(payment_method=PaymentMethod.CRYPTO.value).inc()
        logger.info(
            "payment_completed",
            extra={"user_id": user_id, "plan": plan.value, "signature": signature, **log_fields},
        )
        return ActivationResult(plan=TIER_PRO, expires_at=expires_at, user_id=user_id)

    def _mark_expired(self, intent: PaymentIntent) -> None:
        self.db.execute(
            update(PaymentIntent)
            .where(PaymentIntent.id == intent.id, PaymentIntent.status == IntentStatus.PENDING.value)
            .values(status=IntentStatus.EXPIRED.value)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        logger.info("payment_intent_expired", extra={"intent_id": intent.id, "user_id": intent.user_id})

    def _already_processed(self, user_id: str) -> AlreadyProcessed:
        sub = self.ledger.get(user_id)
        return AlreadyProcessed(
            "Payment already processed",
            plan=sub.plan if sub else TIER_PRO,
            expires_at=as_utc(sub.current_period_end) if sub else None,
        )

"""Tests for PaymentIntentManager: intent flow, walk-up flow, replay across both."""
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from app.billing.errors import (
    AlreadyProcessed,
    Expired,
    InvalidPlan,
    InvalidWalletAddress,
    NotFound,
    ReplayDetected,
    VerificationFailed,
)
from app.billing.models import Currency
from app.models.payment_intent import PaymentIntent
from app.models.profile import Profile
from app.models.subscription import Subscription
from app.models.used_signature import UsedSignature
from app.services.intents.service import PaymentIntentManager, solana_pay_url
from app.utils.dates import add_months, as_utc
from tests.constants import OTHER_WALLET, PAYER_WALLET, TREASURY_WALLET, USDC_MINT
from tests.factories import make_tx, memo, new_signature, sol_transfer, usdc_transfer_checked, usdc_units

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def manager(db_session, verifier, billing_config):
    return PaymentIntentManager(db_session, verifier, billing_config)


def _paid_tx(amount, memo_text=None, at=NOW):
    instructions = [usdc_transfer_checked(usdc_units(amount))]
    if memo_text:
        instructions.append(memo(memo_text))
    return make_tx(instructions, at)


class TestCreateIntent:
    def test_yearly_usdc_amount_from_price_table(self, manager, profile):
        intent = manager.create_intent(profile.id, "pro_yearly", "USDC", now=NOW)

        assert Decimal(intent.amount) == Decimal("240")
        assert intent.status == "pending"
        assert intent.currency == "USDC"
        assert intent.memo.startswith("PAY-")
        assert as_utc(intent.expires_at) == NOW + timedelta(minutes=30)

    def test_unknown_user(self, manager):
        with pytest.raises(NotFound):
            manager.create_intent("missing-user", "pro_monthly", "USDC", now=NOW)

    def test_invalid_plan(self, manager, profile):
        with pytest.raises(InvalidPlan):
            manager.create_intent(profile.id, "enterprise", "USDC", now=NOW)

    def test_memos_are_unique(self, manager, profile):
        memos = {manager.create_intent(profile.id, "pro_monthly", "SOL", now=NOW).memo for _ in range(5)}
        assert len(memos) == 5


class TestActivate:
    def test_end_to_end_yearly_then_walk_up_replay(self, manager, rpc, profile, db_session):
        intent = manager.create_intent(profile.id, "pro_yearly", "USDC", now=NOW)
        sig = rpc.add(new_signature(), _paid_tx("240", intent.memo, at=NOW + timedelta(minutes=2)))

        result = manager.activate(intent.id, sig, now=NOW + timedelta(minutes=3))

        assert result.plan == "pro"
        assert result.expires_at == add_months(NOW + timedelta(minutes=3), 12)
        assert 364 <= (result.expires_at - NOW).days <= 366

        db_session.expire_all()
        stored = db_session.get(PaymentIntent, intent.id)
        assert stored.status == "completed"
        assert stored.transaction_signature == sig
        sub = db_session.get(Subscription, profile.id)
        assert sub.payment_method == "crypto"
        assert sub.last_payment_signature == sig

        with pytest.raises(ReplayDetected):
            manager.activate_wallet(PAYER_WALLET, "pro_yearly", sig, now=NOW + timedelta(minutes=4))
        assert db_session.query(Subscription).count() == 1

    def test_monthly_period(self, manager, rpc, profile):
        intent = manager.create_intent(profile.id, "pro_monthly", "USDC", now=NOW)
        sig = rpc.add(new_signature(), _paid_tx("24", at=NOW))
        result = manager.activate(intent.id, sig, now=NOW + timedelta(minutes=1))
        assert result.expires_at == add_months(NOW + timedelta(minutes=1), 1)

    def test_expired_intent_never_reaches_verifier(self, manager, rpc, profile, db_session):
        intent = manager.create_intent(profile.id, "pro_monthly", "USDC", now=NOW)
        sig = rpc.add(new_signature(), _paid_tx("24", at=NOW + timedelta(minutes=29)))

        with pytest.raises(Expired):
            manager.activate(intent.id, sig, now=NOW + timedelta(minutes=31))

        assert rpc.calls == []
        db_session.expire_all()
        assert db_session.get(PaymentIntent, intent.id).status == "expired"
        with pytest.raises(Expired):
            manager.activate(intent.id, sig, now=NOW + timedelta(minutes=1))
        assert rpc.calls == []

    def test_failed_verification_leaves_intent_pending(self, manager, rpc, profile, db_session):
        intent = manager.create_intent(profile.id, "pro_monthly", "USDC", now=NOW)
        short_sig = rpc.add(new_signature(), _paid_tx("20", at=NOW))

        with pytest.raises(VerificationFailed) as exc:
            manager.activate(intent.id, short_sig, now=NOW + timedelta(minutes=1))
        assert exc.value.retriable is False

        db_session.expire_all()
        assert db_session.get(PaymentIntent, intent.id).status == "pending"
        assert db_session.query(UsedSignature).count() == 0
        assert db_session.query(Subscription).count() == 0

        good_sig = rpc.add(new_signature(), _paid_tx("24", at=NOW + timedelta(minutes=2)))
        assert manager.activate(intent.id, good_sig, now=NOW + timedelta(minutes=3)).plan == "pro"

    def test_unconfirmed_transaction_is_retriable(self, manager, profile):
        intent = manager.create_intent(profile.id, "pro_monthly", "USDC", now=NOW)
        with pytest.raises(VerificationFailed) as exc:
            manager.activate(intent.id, new_signature(), now=NOW + timedelta(minutes=1))
        assert exc.value.retriable is True

    def test_second_activation_is_already_processed(self, manager, rpc, profile):
        intent = manager.create_intent(profile.id, "pro_monthly", "USDC", now=NOW)
        sig = rpc.add(new_signature(), _paid_tx("24", at=NOW))
        first = manager.activate(intent.id, sig, now=NOW + timedelta(minutes=1))

        with pytest.raises(AlreadyProcessed) as exc:
            manager.activate(intent.id, sig, now=NOW + timedelta(minutes=2))
        assert exc.value.plan == "pro"
        assert exc.value.expires_at == first.expires_at

    def test_same_signature_on_second_intent_is_replay(self, manager, rpc, profile, db_session):
        first = manager.create_intent(profile.id, "pro_monthly", "USDC", now=NOW)
        second = manager.create_intent(profile.id, "pro_monthly", "USDC", now=NOW)
        sig = rpc.add(new_signature(), _paid_tx("24", at=NOW))
        manager.activate(first.id, sig, now=NOW + timedelta(minutes=1))

        with pytest.raises(ReplayDetected):
            manager.activate(second.id, sig, now=NOW + timedelta(minutes=2))
        db_session.expire_all()
        assert db_session.get(PaymentIntent, second.id).status == "pending"

    def test_unknown_intent(self, manager):
        with pytest.raises(NotFound):
            manager.activate("missing", new_signature(), now=NOW)


class TestWalletActivate:
    def test_creates_profile_and_subscription(self, manager, rpc, db_session):
        sig = rpc.add(new_signature(), _paid_tx("24", at=NOW))

        result = manager.activate_wallet(OTHER_WALLET, "pro_monthly", sig, now=NOW + timedelta(minutes=1))

        profile = db_session.query(Profile).filter(Profile.wallet_address == OTHER_WALLET).one()
        assert result.user_id == profile.id
        assert profile.plan == "pro"
        record = db_session.query(PaymentIntent).filter(PaymentIntent.transaction_signature == sig).one()
        assert record.status == "completed"
        assert db_session.get(UsedSignature, sig).source == "wallet"

    def test_walk_up_then_intent_is_replay(self, manager, rpc, profile, db_session):
        sig = rpc.add(new_signature(), _paid_tx("24", at=NOW))
        manager.activate_wallet(PAYER_WALLET, "pro_monthly", sig, now=NOW + timedelta(minutes=1))
        intent = manager.create_intent(profile.id, "pro_monthly", "USDC", now=NOW + timedelta(minutes=2))

        with pytest.raises(ReplayDetected):
            manager.activate(intent.id, sig, now=NOW + timedelta(minutes=3))
        db_session.expire_all()
        assert db_session.get(PaymentIntent, intent.id).status == "pending"

    def test_replay_does_not_leave_new_profile(self, manager, rpc, profile, db_session):
        sig = rpc.add(new_signature(), _paid_tx("24", at=NOW))
        manager.activate_wallet(PAYER_WALLET, "pro_monthly", sig, now=NOW + timedelta(minutes=1))

        with pytest.raises(ReplayDetected):
            manager.activate_wallet(OTHER_WALLET, "pro_monthly", sig, now=NOW + timedelta(minutes=2))
        assert db_session.query(Profile).filter(Profile.wallet_address == OTHER_WALLET).count() == 0

    def test_sol_currency(self, manager, rpc, db_session):
        sig = rpc.add(new_signature(), make_tx([sol_transfer(1_100_000_000)], NOW))
        result = manager.activate_wallet(OTHER_WALLET, "yearly", sig, currency="SOL", now=NOW + timedelta(minutes=1))
        assert result.expires_at == add_months(NOW + timedelta(minutes=1), 12)

    def test_invalid_wallet(self, manager):
        with pytest.raises(InvalidWalletAddress):
            manager.activate_wallet("not-a-wallet", "pro_monthly", new_signature(), now=NOW)


def test_expire_stale(manager, profile, db_session):
    stale = manager.create_intent(profile.id, "pro_monthly", "USDC", now=NOW - timedelta(hours=1))
    fresh = manager.create_intent(profile.id, "pro_monthly", "USDC", now=NOW)

    assert manager.expire_stale(now=NOW + timedelta(minutes=1)) == 1
    db_session.commit()
    db_session.expire_all()
    assert db_session.get(PaymentIntent, stale.id).status == "expired"
    assert db_session.get(PaymentIntent, fresh.id).status == "pending"


def test_solana_pay_url():
    url = solana_pay_url(TREASURY_WALLET, Decimal("24.000000000"), Currency.USDC, "PAY-X", USDC_MINT)
    assert url == f"solana:{TREASURY_WALLET}?amount=24&spl-token={USDC_MINT}&memo=PAY-X"

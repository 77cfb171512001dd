"""
SubscriptionLedger: the only writer of the subscriptions table.

Both payment rails converge here through upsert_active / downgrade; neither
rail knows about the other.
"""
import logging
from datetime import datetime

from sqlalchemy import case, select, update
from sqlalchemy.orm import Session

from app.billing.errors import AlreadyCanceled, NotFound
from app.billing.models import PaymentMethod, SubscriptionStatus, TIER_FREE, TIER_PRO
from app.db.base import upsert_insert
from app.models.profile import Profile
from app.models.subscription import Subscription
from app.utils.dates import as_utc, utcnow


logger = logging.getLogger(__name__)


class SubscriptionLedger:
    def __init__(self, db: Session):
        self.db = db

    def get(self, user_id: str) -> Subscription | None:
        return self.db.get(Subscription, user_id)

    def _set_profile_plan(self, user_id: str, plan: str) -> None:
        self.db.execute(update(Profile).where(Profile.id == user_id).values(plan=plan))

    def upsert_active(
        self,
        user_id: str,
        period_end: datetime,
        payment_method: PaymentMethod,
        correlation_ref: str | None = None,
        plan: str = TIER_PRO,
        stripe_customer_id: str | None = None,
        stripe_subscription_id: str | None = None,
        now: datetime | None = None,
    ) -> Subscription:
        """
        Single INSERT .. ON CONFLICT (user_id) DO UPDATE. Repeating it with the
        same arguments leaves the row unchanged; current_period_end never moves
        backward. Does not commit.
        """
        now = now or utcnow()
        if as_utc(period_end) <= now:
            raise ValueError("period_end must be in the future when activating")

        values = {
            "user_id": user_id,
            "plan": plan,
            "status": SubscriptionStatus.ACTIVE.value,
            "current_period_end": period_end,
            "payment_method": payment_method.value,
        }
        if correlation_ref is not None:
            values["last_payment_signature"] = correlation_ref
        if stripe_customer_id is not None:
            values["stripe_customer_id"] = stripe_customer_id
        if stripe_subscription_id is not None:
            values["stripe_subscription_id"] = stripe_subscription_id

        stmt = upsert_insert(self.db, Subscription).values(created_at=now, **values)
        updates = {k: getattr(stmt.excluded, k) for k in values if k != "user_id"}
        updates["current_period_end"] = case(
            (
                Subscription.current_period_end > stmt.excluded.current_period_end,
                Subscription.current_period_end,
            ),
            else_=stmt.excluded.current_period_end,
        )
        stmt = stmt.on_conflict_do_update(index_elements=[Subscription.user_id], set_=updates)
        self.db.execute(stmt)
        self._set_profile_plan(user_id, plan)

        sub = self.db.execute(
            select(Subscription)
            .where(Subscription.user_id == user_id)
            .execution_options(populate_existing=True)
        ).scalar_one()
        logger.info(
            "subscription_activated",
            extra={
                "user_id": user_id,
                "plan": plan,
                "source": payment_method.value,
                "signature": correlation_ref,
            },
        )
        return sub

    def downgrade(self, user_id: str, revoke_plan: bool = True) -> Subscription | None:
        """
        status=canceled; with revoke_plan the entitlement drops to free at once,
        without it the user keeps pro until current_period_end. The period end
        itself is never touched. Does not commit.
        """
        sub = self.get(user_id)
        if sub is None:
            return None
        sub.status = SubscriptionStatus.CANCELED.value
        if revoke_plan:
            sub.plan = TIER_FREE
            self._set_profile_plan(user_id, TIER_FREE)
        self.db.add(sub)
        self.db.flush()
        logger.info(
            "subscription_downgraded",
            extra={"user_id": user_id, "plan": sub.plan, "status": sub.status},
        )
        return sub

    def cancel(self, user_id: str) -> Subscription:
        """User-initiated cancel: pro stays until the paid period ends. Does not commit."""
        sub = self.get(user_id)
        if sub is None:
            raise NotFound("No subscription found")
        if sub.status == SubscriptionStatus.CANCELED.value:
            raise AlreadyCanceled(
                "Subscription is already canceled",
                expires_at=as_utc(sub.current_period_end),
            )
        return self.downgrade(user_id, revoke_plan=False)

    def has_pro_access(self, user_id: str, now: datetime | None = None) -> bool:
        now = now or utcnow()
        sub = self.get(user_id)
        if sub is None or sub.plan != TIER_PRO:
            return False
        return as_utc(sub.current_period_end) > now

    def sync_processor_status(
        self,
        user_id: str,
        status: SubscriptionStatus,
        period_end: datetime | None = None,
    ) -> Subscription | None:
        """Processor-driven status change. The period end only moves forward."""
        sub = self.get(user_id)
        if sub is None:
            return None
        sub.status = status.value
        if period_end is not None and as_utc(period_end) > as_utc(sub.current_period_end):
            sub.current_period_end = period_end
        self.db.add(sub)
        self.db.flush()
        logger.info(
            "subscription_status_synced",
            extra={"user_id": user_id, "status": status.value},
        )
        return sub

    def expire_lapsed(self, now: datetime | None = None) -> int:
        """Downgrade subscriptions whose period has ended. Returns count. Does not commit."""
        now = now or utcnow()
        lapsed = (
            self.db.query(Subscription)
            .filter(
                Subscription.plan == TIER_PRO,
                Subscription.status.in_(
                    [SubscriptionStatus.ACTIVE.value, SubscriptionStatus.CANCELED.value]
                ),
                Subscription.current_period_end <= now,
            )
            .all()
        )
        for sub in lapsed:
            self.downgrade(sub.user_id, revoke_plan=True)
        count = len(lapsed)
        if count:
            logger.info("subscriptions_lapsed", extra={"count": count})
        return count

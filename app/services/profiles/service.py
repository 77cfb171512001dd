from uuid import uuid4

from sqlalchemy.orm import Session

from app.billing.models import TIER_FREE
from app.db.base import upsert_insert
from app.models.profile import Profile
from app.utils.dates import utcnow


class ProfileService:
    """
    Resolves payers to profiles. Profiles belong to the wider application;
    here they are only looked up, or created minimally when someone pays
    without an account. Writes are flushed, never committed.
    """

    def __init__(self, db: Session):
        self.db = db

    def get(self, user_id: str) -> Profile | None:
        return self.db.get(Profile, user_id)

    def get_by_wallet(self, wallet_address: str) -> Profile | None:
        return self.db.query(Profile).filter(Profile.wallet_address == wallet_address).one_or_none()

    def get_by_email(self, email: str) -> Profile | None:
        return (
            self.db.query(Profile)
            .filter(Profile.email == email.strip().lower())
            .order_by(Profile.created_at)
            .first()
        )

    def get_by_customer_id(self, customer_id: str) -> Profile | None:
        return self.db.query(Profile).filter(Profile.stripe_customer_id == customer_id).one_or_none()

    def create(self, wallet_address: str | None = None, email: str | None = None) -> Profile:
        profile = Profile(
            wallet_address=wallet_address,
            email=email.strip().lower() if email else None,
        )
        self.db.add(profile)
        self.db.flush()
        return profile

    def get_or_create_by_wallet(self, wallet_address: str) -> Profile:
        """
        Two first-time payments from one wallet may race here; the insert skips
        on the wallet_address unique key and both callers read the same row.
        """
        profile = self.get_by_wallet(wallet_address)
        if profile:
            return profile
        self.db.execute(
            upsert_insert(self.db, Profile)
            .values(id=str(uuid4()), wallet_address=wallet_address, plan=TIER_FREE, created_at=utcnow())
            .on_conflict_do_nothing(index_elements=[Profile.wallet_address])
        )
        return self.get_by_wallet(wallet_address)

    def resolve_for_checkout(self, wallet_address: str | None = None, email: str | None = None) -> Profile | None:
        """Prior wallet linkage wins over email."""
        if wallet_address:
            profile = self.get_by_wallet(wallet_address)
            if profile:
                return profile
        if email:
            return self.get_by_email(email)
        return None

import logging

from sqlalchemy import insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.billing.models import ClaimSource
from app.models.used_signature import UsedSignature
from app.utils.dates import utcnow
from app.utils.metrics import payment_replays_total


logger = logging.getLogger(__name__)


class ReplayGuard:
    """
    Atomic check-and-set over used_signatures.
    A claim is an INSERT on the primary key, never read-then-write, so two
    concurrent activations of one transaction cannot both succeed.
    """

    def __init__(self, db: Session):
        self.db = db

    def claim(self, signature: str, *, user_id: str | None, source: ClaimSource) -> bool:
        """
        Record `signature` as consumed inside the caller's transaction.
        On conflict the transaction is rolled back and False is returned, so the
        claim must be the first write of the activation.
        """
        try:
            self.db.execute(
                insert(UsedSignature).values(
                    signature=signature,
                    user_id=user_id,
                    source=source.value,
                    claimed_at=utcnow(),
                )
            )
        except IntegrityError:
            self.db.rollback()
            payment_replays_total.labels(source=source.value).inc()
            logger.warning(
                "payment_replay_detected",
                extra={"signature": signature, "user_id": user_id, "source": source.value},
            )
            return False
        return True

"""
Expiry sweep, run from cron (scripts/expire_payments.py) or POST /maintenance/expire.
There is no in-process scheduler; activation paths also expire intents lazily.
"""
import logging
from datetime import datetime

from sqlalchemy.orm import Session

from app.billing.models import SweepResult
from app.services.intents.service import expire_stale_intents
from app.services.ledger.service import SubscriptionLedger
from app.utils.dates import utcnow


logger = logging.getLogger(__name__)


def run_expiry_sweep(db: Session, now: datetime | None = None) -> SweepResult:
    now = now or utcnow()
    expired = expire_stale_intents(db, now)
    lapsed = SubscriptionLedger(db).expire_lapsed(now)
    db.commit()
    logger.info("expiry_sweep_done", extra={"count": expired + lapsed})
    return SweepResult(expired_intents=expired, lapsed_subscriptions=lapsed)

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.deps import require_admin
from app.db.session import get_db
from app.services.sweep import run_expiry_sweep


router = APIRouter(prefix="/maintenance", tags=["maintenance"], dependencies=[Depends(require_admin)])


@router.post("/expire")
def expire(db: Session = Depends(get_db)) -> dict:
    """Cron hook: expire stale intents and downgrade lapsed subscriptions."""
    result = run_expiry_sweep(db)
    return {
        "expiredIntents": result.expired_intents,
        "lapsedSubscriptions": result.lapsed_subscriptions,
    }

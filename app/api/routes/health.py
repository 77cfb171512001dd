from fastapi import APIRouter, Depends, Response
import redis
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.db.session import get_db
from app.services.circuit_breaker import get_circuit_breaker


router = APIRouter()


@router.get("/health")
def health() -> dict:
    """Liveness check: always returns 200 if app is running."""
    return {"status": "ok"}


@router.get("/ready")
def readiness(response: Response, db: Session = Depends(get_db)) -> dict:
    """
    Readiness check: 503 if the database or Redis is unavailable.
    An open RPC circuit is reported but does not fail readiness: intents and
    webhooks still work while the chain node is down.
    """
    checks = {}
    try:
        db.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except SQLAlchemyError as e:
        checks["database"] = f"error: {e.__class__.__name__}"

    try:
        redis.Redis.from_url(settings.redis_url, decode_responses=True).ping()
        checks["redis"] = "ok"
        checks["solana_rpc_circuit"] = get_circuit_breaker("solana_rpc").current_state
    except redis.RedisError as e:
        checks["redis"] = f"error: {e.__class__.__name__}"

    ready = checks.get("database") == "ok" and checks.get("redis") == "ok"
    if not ready:
        response.status_code = 503
    return {"status": "ready" if ready else "not_ready", "checks": checks}

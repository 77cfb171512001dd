"""
Rate limiter for payment verification endpoints.
Each verification costs an RPC round-trip; this keeps a single client from hammering the node.
"""
import logging

import redis
from fastapi import HTTPException, Request, status

from app.core.config import settings

logger = logging.getLogger(__name__)


def get_client_ip(request: Request) -> str:
    """Client IP (supports X-Forwarded-For from proxy)."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded and settings.app_env == "production":
        trusted = settings.trusted_proxy_ips_set
        if trusted and request.client and request.client.host in trusted:
            return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "127.0.0.1"


def check_verify_rate_limit(client_key: str) -> bool:
    """
    Fixed window counter. Returns True if allowed, False if rate limited.
    Increments counter on each call.
    """
    try:
        client = redis.Redis.from_url(settings.redis_url, decode_responses=True)
        key = f"verify_attempts:{client_key}"
        current = client.incr(key)
        if current == 1:
            client.expire(key, settings.verify_rate_limit_window_seconds)
        if current > settings.verify_rate_limit_attempts:
            logger.warning("verify_rate_limited", extra={"count": current})
            return False
        return True
    except redis.RedisError as e:
        logger.warning("verify_rate_limit_redis_error", extra={"error": str(e)})
        return True  # Fail open - verification must not depend on Redis


def enforce_verify_rate_limit(request: Request) -> None:
    """FastAPI dependency for verification endpoints."""
    if not check_verify_rate_limit(get_client_ip(request)):
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={"error": "Too many verification attempts. Try again later.", "code": "rate_limited"},
        )

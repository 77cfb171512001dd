"""
Structured JSON logging.

Every record carries the request id of the HTTP request that produced it (set by
the middleware in app.main), so one verification attempt can be followed from
the route through the verifier and the ledger.
"""
import json
import logging
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler

from app.core.config import settings


request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)


def new_request_id() -> str:
    return uuid.uuid4().hex[:16]


class RequestContextFilter(logging.Filter):
    """Copies the current request id onto the record unless the caller passed one."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None:
            record.request_id = request_id_var.get()
        return True


class JsonFormatter(logging.Formatter):
    """JSON log formatter with support for extra fields."""

    # Grouped by concern; only fields present on the record are emitted
    EXTRA_FIELDS = (
        # request
        "request_id", "path", "method", "status_code", "duration_ms",
        # payment flow
        "user_id", "intent_id", "signature", "currency", "plan", "source",
        "expected", "received", "reason", "wallet", "status", "count",
        # card processor
        "event_type", "event_id", "customer_id", "subscription_id", "session_id",
        # infrastructure
        "error", "breaker_name", "old_state", "new_state",
    )

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "env": settings.app_env,
            "message": record.getMessage(),
        }
        for field in self.EXTRA_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                payload[field] = value
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_logging() -> None:
    formatter = JsonFormatter()
    context = RequestContextFilter()

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if settings.log_file:
        handlers.append(
            RotatingFileHandler(
                settings.log_file,
                maxBytes=settings.log_max_bytes,
                backupCount=settings.log_backup_count,
            )
        )
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(context)

    root = logging.getLogger()
    root.setLevel(settings.log_level.upper())
    root.handlers = handlers
    # Access lines are emitted by the request middleware instead
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

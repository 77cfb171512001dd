"""
Main FastAPI application for the Payment Engine API.
Serves health, payment intents, subscriptions, checkout/webhooks, maintenance and metrics.
"""
import logging
import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import settings
from app.core.logging import configure_logging, new_request_id, request_id_var
from app.api.routes import checkout, health, maintenance, payments, subscriptions
from app.utils.metrics import router as metrics_router


configure_logging()
logger = logging.getLogger("http")

app = FastAPI(
    title="Payment Engine API",
    description="Payment verification and subscription activation (Solana + card checkout)",
    version="1.0.0",
)

# CORS
origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
if not origins:
    origins = ["http://localhost:3000", "http://127.0.0.1:3000"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_context(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or new_request_id()
    token = request_id_var.set(request_id)
    started = time.perf_counter()
    try:
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        if request.url.path not in ("/health", "/metrics"):
            logger.info(
                "http_request",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": response.status_code,
                    "duration_ms": round((time.perf_counter() - started) * 1000, 1),
                },
            )
        return response
    finally:
        request_id_var.reset(token)


# Routers
app.include_router(health.router, tags=["health"])
app.include_router(payments.router)
app.include_router(subscriptions.router)
app.include_router(checkout.router)
app.include_router(maintenance.router)
app.include_router(metrics_router)

"""
Prometheus-based metrics for production monitoring.
Provides /metrics endpoint for scraping.
"""
from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST
from fastapi import APIRouter, Response


# Counters
payment_intents_created_total = Counter(
    "payment_intents_created_total",
    "Total number of payment intents created",
    ["plan", "currency"],
)

payment_verifications_total = Counter(
    "payment_verifications_total",
    "On-chain verification outcomes",
    ["currency", "outcome"],  # valid, invalid, retriable, error
)

payment_replays_total = Counter(
    "payment_replays_total",
    "Activation attempts rejected because the signature was already used",
    ["source"],  # intent, wallet
)

subscription_activations_total = Counter(
    "subscription_activations_total",
    "Successful subscription activations",
    ["payment_method"],  # crypto, stripe
)

stripe_webhook_events_total = Counter(
    "stripe_webhook_events_total",
    "Stripe webhook events by type and outcome",
    ["event_type", "outcome"],  # processed, ignored, rejected
)

solana_rpc_requests_total = Counter(
    "solana_rpc_requests_total",
    "Total Solana RPC requests",
    ["method", "status"],
)

circuit_breaker_state = Gauge(
    "circuit_breaker_state",
    "Circuit breaker state (0=closed, 1=open)",
    ["name"],
)

# Histograms
solana_rpc_request_duration_seconds = Histogram(
    "solana_rpc_request_duration_seconds",
    "Solana RPC request duration",
    ["method"],
    buckets=[0.1, 0.25, 0.5, 1, 2, 5, 10],
)


# Metrics endpoint router
router = APIRouter()


@router.get("/metrics")
def metrics_endpoint() -> Response:
    """Prometheus metrics endpoint for scraping."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )

"""
FastAPI dependencies wiring config, the RPC client and per-request services.
Tests override get_db / get_verifier / enforce_verify_rate_limit.
"""
import hmac
from functools import lru_cache

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from app.billing.config import BillingConfig, StripeConfig, load_billing_config, load_stripe_config
from app.core.config import settings
from app.db.session import get_db
from app.services.circuit_breaker import get_circuit_breaker
from app.services.intents.service import PaymentIntentManager
from app.services.solana.client import SolanaRpcClient
from app.services.stripe_bridge.service import StripeBridge
from app.services.verification.service import OnChainVerifier


def get_billing_config() -> BillingConfig:
    return load_billing_config()


def get_stripe_config() -> StripeConfig:
    return load_stripe_config()


@lru_cache(maxsize=1)
def get_rpc_client() -> SolanaRpcClient:
    return SolanaRpcClient(
        settings.solana_rpc_url,
        timeout=settings.solana_rpc_timeout,
        commitment=settings.solana_commitment,
        breaker=get_circuit_breaker("solana_rpc"),
    )


def get_verifier(
    rpc: SolanaRpcClient = Depends(get_rpc_client),
    config: BillingConfig = Depends(get_billing_config),
) -> OnChainVerifier:
    return OnChainVerifier(rpc, config)


def get_intent_manager(
    db: Session = Depends(get_db),
    verifier: OnChainVerifier = Depends(get_verifier),
    config: BillingConfig = Depends(get_billing_config),
) -> PaymentIntentManager:
    return PaymentIntentManager(db, verifier, config)


def get_stripe_bridge(
    db: Session = Depends(get_db),
    config: StripeConfig = Depends(get_stripe_config),
) -> StripeBridge:
    return StripeBridge(db, config)


def require_admin(x_admin_key: str | None = Header(None)) -> None:
    """Maintenance endpoints: X-Admin-Key must match ADMIN_API_KEY."""
    if not settings.admin_api_key:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Maintenance API disabled")
    if not x_admin_key or not hmac.compare_digest(x_admin_key, settings.admin_api_key):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid admin key")

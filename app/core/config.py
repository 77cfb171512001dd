"""
Application configuration.
All settings are loaded from environment variables.
Use env.example as a reference for required variables.
"""
import json
from decimal import Decimal, InvalidOperation

from pydantic import field_validator
from pydantic_settings import BaseSettings
from solders.pubkey import Pubkey


DEFAULT_PLAN_PRICES = (
    '{"pro_monthly": {"USDC": "24", "SOL": "0.11"},'
    ' "pro_yearly": {"USDC": "240", "SOL": "1.1"}}'
)


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    IMPORTANT: Credentials and the treasury address have no defaults - they MUST be set in .env file.
    """

    # ===========================================
    # APPLICATION
    # ===========================================
    app_env: str = "local"
    # Public URL of the frontend, used for checkout success/cancel redirects
    app_url: str = "http://localhost:3000"
    # CORS: comma-separated (e.g. http://localhost:3000,https://app.example.com). Empty = default list in code.
    cors_origins: str = ""
    # Trusted proxy IPs (comma-separated). Used for X-Forwarded-For in production.
    trusted_proxy_ips: str = ""

    # ===========================================
    # DATABASE (PostgreSQL)
    # ===========================================
    database_url: str  # Required, no default

    # ===========================================
    # REDIS (circuit breaker state, rate limits)
    # ===========================================
    redis_url: str  # Required, no default

    # ===========================================
    # SOLANA (direct transfer rail)
    # ===========================================
    solana_rpc_url: str = "https://api.mainnet-beta.solana.com"
    solana_rpc_timeout: float = 10.0
    solana_commitment: str = "confirmed"
    # Wallet that receives every payment
    treasury_wallet: str  # Required, no default
    usdc_mint: str = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
    # Explicit USDC token account of the treasury. Empty = associated token account of treasury_wallet.
    treasury_usdc_account: str = ""

    # ===========================================
    # PRICING & VERIFICATION POLICY
    # ===========================================
    plan_prices: str = DEFAULT_PLAN_PRICES
    payment_amount_tolerance: Decimal = Decimal("0.01")
    payment_intent_ttl_minutes: int = 30
    transaction_max_age_seconds: int = 3600

    # ===========================================
    # STRIPE (hosted checkout rail)
    # ===========================================
    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""
    stripe_price_monthly: str = ""
    stripe_price_yearly: str = ""
    stripe_webhook_tolerance_seconds: int = 300
    stripe_period_days: int = 30

    # ===========================================
    # ADMIN API
    # ===========================================
    admin_api_key: str | None = None  # Guards maintenance endpoints

    # Verification rate limit (protects the RPC node from hammering)
    verify_rate_limit_attempts: int = 10
    verify_rate_limit_window_seconds: int = 60

    # ===========================================
    # CIRCUIT BREAKER
    # ===========================================
    cb_failure_threshold: int = 5
    cb_open_seconds: int = 30

    # ===========================================
    # LOGGING
    # ===========================================
    log_level: str = "INFO"
    log_file: str | None = None
    log_max_bytes: int = 10_000_000
    log_backup_count: int = 5

    @field_validator("treasury_wallet", "usdc_mint")
    @classmethod
    def validate_pubkey(cls, v: str) -> str:
        """Reject addresses that are not base58 public keys."""
        v = v.strip()
        try:
            Pubkey.from_string(v)
        except ValueError:
            raise ValueError(f"not a valid Solana address: {v!r}")
        return v

    @field_validator("treasury_usdc_account")
    @classmethod
    def validate_optional_pubkey(cls, v: str) -> str:
        v = v.strip()
        if v:
            try:
                Pubkey.from_string(v)
            except ValueError:
                raise ValueError(f"not a valid Solana address: {v!r}")
        return v

    @field_validator("plan_prices")
    @classmethod
    def validate_plan_prices(cls, v: str) -> str:
        """Price table must cover every plan and currency with a positive amount."""
        try:
            raw = json.loads(v)
        except json.JSONDecodeError as e:
            raise ValueError(f"plan_prices is not valid JSON: {e}")
        for plan in ("pro_monthly", "pro_yearly"):
            for currency in ("USDC", "SOL"):
                try:
                    amount = Decimal(str(raw[plan][currency]))
                except (KeyError, TypeError, InvalidOperation):
                    raise ValueError(f"plan_prices is missing {plan}/{currency}")
                if amount <= 0:
                    raise ValueError(f"plan_prices {plan}/{currency} must be positive")
        return v

    @field_validator("payment_amount_tolerance")
    @classmethod
    def validate_tolerance(cls, v: Decimal) -> Decimal:
        if not (Decimal("0") <= v < Decimal("1")):
            raise ValueError("payment_amount_tolerance must be in [0, 1)")
        return v

    @property
    def trusted_proxy_ips_set(self) -> set[str]:
        """Get trusted proxy IPs as a set."""
        return {ip.strip() for ip in self.trusted_proxy_ips.split(",") if ip.strip()}

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


settings = Settings()

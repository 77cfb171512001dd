"""
Error taxonomy of the payment engine.

Services raise these; HTTP routes translate them with app.api.errors.http_error.
Verification failures and replay detection are recoverable: they never leave
partial intent/subscription state behind.
"""
from datetime import datetime
from typing import Any


class PaymentError(Exception):
    code = "payment_error"
    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message, "code": self.code}


class NotFound(PaymentError):
    code = "not_found"
    status_code = 404


class InvalidPlan(PaymentError):
    code = "invalid_plan"


class InvalidCurrency(PaymentError):
    code = "invalid_currency"


class InvalidWalletAddress(PaymentError):
    code = "invalid_wallet"


class Expired(PaymentError):
    code = "expired"
    status_code = 410


class AlreadyProcessed(PaymentError):
    """Intent already completed. Idempotent no-op for the caller, not a hard failure."""

    code = "already_processed"
    status_code = 200

    def __init__(self, message: str, plan: str | None = None, expires_at: datetime | None = None) -> None:
        super().__init__(message)
        self.plan = plan
        self.expires_at = expires_at


class AlreadyCanceled(PaymentError):
    code = "already_canceled"

    def __init__(self, message: str, expires_at: datetime | None = None) -> None:
        super().__init__(message)
        self.expires_at = expires_at

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        if self.expires_at is not None:
            data["expiresAt"] = self.expires_at.isoformat()
        return data


class VerificationFailed(PaymentError):
    code = "verification_failed"

    def __init__(self, reason: str, retriable: bool = False) -> None:
        super().__init__(reason)
        self.reason = reason
        self.retriable = retriable

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["retriable"] = self.retriable
        return data


class ReplayDetected(PaymentError):
    code = "replay_detected"
    status_code = 409


class ProcessorSignatureInvalid(PaymentError):
    code = "invalid_signature"


class ProcessorNotConfigured(PaymentError):
    code = "processor_not_configured"
    status_code = 500


class ProcessorError(PaymentError):
    code = "processor_error"
    status_code = 502


class TransientNetworkError(PaymentError):
    """RPC node or processor unreachable. Safe to retry within the intent window."""

    code = "network_unavailable"
    status_code = 503


class RpcError(Exception):
    """JSON-RPC error object returned by the node (malformed request, bad params)."""

    def __init__(self, code: int, message: str) -> None:
        super().__init__(f"{code}: {message}")
        self.code = code
        self.message = message

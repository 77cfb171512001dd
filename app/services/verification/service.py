"""
OnChainVerifier: decides whether a Solana transaction pays the treasury.

Destination + amount authorize a payment. The memo is checked best-effort and a
mismatch is only logged, since wallets frequently strip or rewrite memos.
"""
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Iterator, Protocol

from solders.pubkey import Pubkey
from solders.signature import Signature
from spl.token.instructions import get_associated_token_address

from app.billing.config import BillingConfig
from app.billing.errors import RpcError
from app.billing.models import Currency, VerificationResult
from app.billing.pricing import AmountPolicy
from app.utils.dates import utcnow
from app.utils.metrics import payment_verifications_total


logger = logging.getLogger(__name__)

LAMPORTS_PER_SOL = Decimal(1_000_000_000)
USDC_DECIMALS = 6


class TransactionSource(Protocol):
    def get_transaction(self, signature: str) -> dict | None: ...


def associated_token_address(owner: str, mint: str) -> str:
    """Associated token account of `owner` for `mint`."""
    return str(get_associated_token_address(Pubkey.from_string(owner), Pubkey.from_string(mint)))


def is_valid_signature(reference: str) -> bool:
    try:
        Signature.from_string(reference)
    except (ValueError, TypeError):
        return False
    return True


def iter_parsed_instructions(tx: dict) -> Iterator[dict]:
    """Top-level instructions followed by inner (CPI) instructions."""
    message = (tx.get("transaction") or {}).get("message") or {}
    for ix in message.get("instructions") or []:
        yield ix
    for group in (tx.get("meta") or {}).get("innerInstructions") or []:
        for ix in group.get("instructions") or []:
            yield ix


def _parsed(ix: dict) -> tuple[str | None, dict]:
    parsed = ix.get("parsed")
    if not isinstance(parsed, dict):
        return None, {}
    return parsed.get("type"), parsed.get("info") or {}


def sum_sol_transfers(tx: dict, destination: str) -> Decimal:
    total = Decimal(0)
    for ix in iter_parsed_instructions(tx):
        if ix.get("program") != "system":
            continue
        kind, info = _parsed(ix)
        if kind == "transfer" and info.get("destination") == destination:
            total += Decimal(int(info.get("lamports", 0))) / LAMPORTS_PER_SOL
    return total


def sum_token_transfers(tx: dict, destinations: set[str], mint: str) -> Decimal:
    total = Decimal(0)
    for ix in iter_parsed_instructions(tx):
        if ix.get("program") not in ("spl-token", "spl-token-2022"):
            continue
        kind, info = _parsed(ix)
        if info.get("destination") not in destinations:
            continue
        if kind == "transferChecked":
            if info.get("mint") != mint:
                continue
            token_amount = info.get("tokenAmount") or {}
            decimals = int(token_amount.get("decimals", USDC_DECIMALS))
            total += Decimal(int(token_amount.get("amount", 0))) / (Decimal(10) ** decimals)
        elif kind == "transfer":
            # Plain transfer carries no mint; the destination account pins it
            total += Decimal(int(info.get("amount", 0))) / (Decimal(10) ** USDC_DECIMALS)
    return total


def extract_memos(tx: dict) -> list[str]:
    memos = []
    for ix in iter_parsed_instructions(tx):
        if ix.get("program") == "spl-memo" and isinstance(ix.get("parsed"), str):
            memos.append(ix["parsed"])
    log_messages = (tx.get("meta") or {}).get("logMessages") or []
    memos.extend(m for m in log_messages if "Memo" in m)
    return memos


class OnChainVerifier:
    def __init__(self, rpc: TransactionSource, config: BillingConfig) -> None:
        self.rpc = rpc
        self.config = config
        self.policy = AmountPolicy(config.prices, config.amount_tolerance)

    def _receiving_accounts(self, currency: Currency) -> set[str]:
        if currency is Currency.SOL:
            return {self.config.treasury_wallet}
        accounts = {associated_token_address(self.config.treasury_wallet, self.config.usdc_mint)}
        if self.config.treasury_usdc_account:
            accounts.add(self.config.treasury_usdc_account)
        return accounts

    def _fail(self, currency: Currency, reason: str, retriable: bool = False, **fields: Any) -> VerificationResult:
        payment_verifications_total.labels(
            currency=currency.value, outcome="retriable" if retriable else "invalid"
        ).inc()
        logger.info(
            "payment_verification_failed",
            extra={"currency": currency.value, "reason": reason, **fields},
        )
        return VerificationResult(valid=False, reason=reason, retriable=retriable)

    def verify(
        self,
        reference: str,
        currency: Currency,
        expected_amount: Decimal,
        expected_memo: str | None = None,
        now: datetime | None = None,
    ) -> VerificationResult:
        """
        Check `reference` against treasury destination, amount and freshness.
        Raises TransientNetworkError when the node cannot be reached.
        """
        now = now or utcnow()

        if not is_valid_signature(reference):
            return self._fail(currency, "Malformed transaction signature", signature=reference)

        try:
            tx = self.rpc.get_transaction(reference)
        except RpcError as e:
            return self._fail(currency, f"RPC rejected transaction lookup: {e.message}", signature=reference)

        if not tx:
            return self._fail(
                currency,
                "Transaction not found or not yet confirmed",
                retriable=True,
                signature=reference,
            )

        meta = tx.get("meta") or {}
        if meta.get("err") is not None:
            return self._fail(currency, "Transaction failed on-chain", signature=reference)

        block_time_raw = tx.get("blockTime")
        if block_time_raw is None:
            return self._fail(
                currency,
                "Transaction has no block time yet",
                retriable=True,
                signature=reference,
            )
        block_time = datetime.fromtimestamp(int(block_time_raw), tz=timezone.utc)
        if now - block_time > self.config.max_transaction_age:
            return self._fail(currency, "Transaction is too old", signature=reference)

        if currency is Currency.SOL:
            received = sum_sol_transfers(tx, self.config.treasury_wallet)
        else:
            received = sum_token_transfers(tx, self._receiving_accounts(currency), self.config.usdc_mint)

        if received <= 0:
            return self._fail(currency, "No transfer to the treasury found", signature=reference)

        if not self.policy.is_sufficient(received, expected_amount):
            shortfall = self.policy.minimum_accepted(expected_amount) - received
            return self._fail(
                currency,
                f"Insufficient amount: received {received} {currency.value}, "
                f"expected {expected_amount} (short by {shortfall})",
                signature=reference,
                expected=str(expected_amount),
                received=str(received),
            )

        memo_matched = None
        if expected_memo:
            memo_matched = any(expected_memo in memo for memo in extract_memos(tx))
            if not memo_matched:
                logger.warning(
                    "payment_memo_mismatch",
                    extra={"signature": reference, "expected": expected_memo},
                )

        payment_verifications_total.labels(currency=currency.value, outcome="valid").inc()
        return VerificationResult(
            valid=True,
            received_amount=received,
            block_time=block_time,
            memo_matched=memo_matched,
        )

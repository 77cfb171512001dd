"""
Builders for jsonParsed getTransaction payloads and a fake RPC source.
"""
import hashlib
import hmac
import secrets
import time
from datetime import datetime
from decimal import Decimal

from solders.signature import Signature
from spl.token.constants import TOKEN_PROGRAM_ID as SPL_TOKEN_PROGRAM_ID

from app.services.verification.service import associated_token_address
from tests.constants import PAYER_WALLET, TREASURY_WALLET, USDC_MINT

SYSTEM_PROGRAM_ID = "11111111111111111111111111111111"
TOKEN_PROGRAM_ID = str(SPL_TOKEN_PROGRAM_ID)
MEMO_PROGRAM_ID = "MemoSq4gqABAXKb96qnH8TysNcWxMyWCqXgDLGmfcHr"

TREASURY_USDC_ATA = associated_token_address(TREASURY_WALLET, USDC_MINT)
PAYER_USDC_ATA = associated_token_address(PAYER_WALLET, USDC_MINT)


def new_signature() -> str:
    return str(Signature(secrets.token_bytes(64)))


def usdc_units(amount: Decimal | str) -> int:
    return int(Decimal(str(amount)) * 10**6)


def sol_transfer(lamports: int, destination: str = TREASURY_WALLET, source: str = PAYER_WALLET) -> dict:
    return {
        "program": "system",
        "programId": SYSTEM_PROGRAM_ID,
        "parsed": {
            "type": "transfer",
            "info": {"source": source, "destination": destination, "lamports": lamports},
        },
    }


def usdc_transfer_checked(
    raw_amount: int,
    destination: str = TREASURY_USDC_ATA,
    mint: str = USDC_MINT,
    decimals: int = 6,
) -> dict:
    return {
        "program": "spl-token",
        "programId": TOKEN_PROGRAM_ID,
        "parsed": {
            "type": "transferChecked",
            "info": {
                "source": PAYER_USDC_ATA,
                "destination": destination,
                "authority": PAYER_WALLET,
                "mint": mint,
                "tokenAmount": {
                    "amount": str(raw_amount),
                    "decimals": decimals,
                    "uiAmountString": str(Decimal(raw_amount) / (Decimal(10) ** decimals)),
                },
            },
        },
    }


def usdc_transfer(raw_amount: int, destination: str = TREASURY_USDC_ATA) -> dict:
    return {
        "program": "spl-token",
        "programId": TOKEN_PROGRAM_ID,
        "parsed": {
            "type": "transfer",
            "info": {
                "source": PAYER_USDC_ATA,
                "destination": destination,
                "authority": PAYER_WALLET,
                "amount": str(raw_amount),
            },
        },
    }


def memo(text: str) -> dict:
    return {"program": "spl-memo", "programId": MEMO_PROGRAM_ID, "parsed": text}


def make_tx(
    instructions: list[dict],
    block_time: datetime | None,
    err: dict | None = None,
    inner: list[dict] | None = None,
) -> dict:
    return {
        "slot": 250_000_000,
        "blockTime": int(block_time.timestamp()) if block_time else None,
        "meta": {
            "err": err,
            "fee": 5000,
            "innerInstructions": [{"index": 0, "instructions": inner}] if inner else [],
            "logMessages": [],
        },
        "transaction": {
            "message": {"instructions": instructions},
            "signatures": [],
        },
    }


class FakeRpc:
    """Stands in for SolanaRpcClient: signature -> parsed transaction."""

    def __init__(self, transactions: dict | None = None, error: Exception | None = None):
        self.transactions = dict(transactions or {})
        self.error = error
        self.calls: list[str] = []

    def add(self, signature: str, tx: dict) -> str:
        self.transactions[signature] = tx
        return signature

    def get_transaction(self, signature: str) -> dict | None:
        self.calls.append(signature)
        if self.error is not None:
            raise self.error
        return self.transactions.get(signature)


def stripe_signature_header(payload: bytes, secret: str, timestamp: int | None = None) -> str:
    """Stripe-Signature value as the processor sends it: t=<ts>,v1=<hmac-sha256 of "<ts>.<payload>">."""
    ts = int(time.time()) if timestamp is None else timestamp
    digest = hmac.new(secret.encode(), f"{ts}.".encode() + payload, hashlib.sha256).hexdigest()
    return f"t={ts},v1={digest}"

"""
Payment memo tokens: short, uppercase, human-typable correlation aids.

Wallets often strip or mangle memos, so a memo is advisory only; destination
and amount are what authorizes a payment.
"""
import secrets
import time

MEMO_PREFIX = "PAY"
_ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"


def _base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_ALPHABET[rem])
    return "".join(reversed(digits))


def _clean(value: str) -> str:
    return "".join(ch for ch in value.upper() if ch in _ALPHABET)


def new_memo(user_id: str, now_ms: int | None = None) -> str:
    """PAY-<user prefix>-<base36 millis>-<4 random chars>."""
    millis = now_ms if now_ms is not None else int(time.time() * 1000)
    random_part = "".join(secrets.choice(_ALPHABET) for _ in range(4))
    return f"{MEMO_PREFIX}-{_clean(user_id)[:8]}-{_base36(millis)}-{random_part}"


def wallet_memo(wallet_address: str, plan: str) -> str:
    """Deterministic memo for the walk-up flow, where no intent was registered."""
    plan_code = "Y" if plan.endswith("yearly") else "M"
    return f"{MEMO_PREFIX}-{_clean(wallet_address)[:8]}-{plan_code}"

#!/usr/bin/env python3
"""
Expire stale payment intents and downgrade lapsed subscriptions.
Run from cron at the project root: python -m scripts.expire_payments
or: PYTHONPATH=. python scripts/expire_payments.py
"""
import os
import sys

# project root on PYTHONPATH
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.core.logging import configure_logging
from app.db.session import session_scope
from app.services.sweep import run_expiry_sweep


def main():
    configure_logging()
    with session_scope() as db:
        result = run_expiry_sweep(db)
    print(
        f"Expired intents: {result.expired_intents}, "
        f"lapsed subscriptions: {result.lapsed_subscriptions}"
    )


if __name__ == "__main__":
    main()

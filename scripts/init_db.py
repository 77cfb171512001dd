#!/usr/bin/env python3
"""
Create payment engine tables (profiles, payment_intents, subscriptions, used_signatures).
Run from the project root: python -m scripts.init_db
"""
import os
import sys

# project root on PYTHONPATH
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import app.models  # noqa: F401  registers tables on Base.metadata
from app.db.base import Base
from app.db.session import engine


def main():
    Base.metadata.create_all(bind=engine)
    print("Tables: " + ", ".join(sorted(Base.metadata.tables)))


if __name__ == "__main__":
    main()

# apps/api/podcast_api/db/models/utils.py
"""
Model-level helpers shared by services:
- UTC clock and normalisation of datetimes read back from SQLite (naive)
- Transaction identifier generation for the payment ledger
"""

import secrets
import time
from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on read)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def generate_transaction_id(prefix: str = "txn") -> str:
    """
    Globally unique ledger identifier, e.g. 'txn_1718000000000_k3j9x0a1b2'.
    Uniqueness is ultimately enforced by the payments.transaction_id unique index.
    """
    millis = int(time.time() * 1000)
    return f"{prefix}_{millis}_{secrets.token_hex(5)}"

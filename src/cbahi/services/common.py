"""Identifier and clock helpers shared by the workflow services."""

import uuid
from datetime import datetime, timezone


def generate_id(prefix: str) -> str:
    """Return ``prefix`` followed by 16 random hex characters (e.g. "req_a1b2...")."""
    return f"{prefix}{uuid.uuid4().hex[:16]}"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes.

    SQLite hands ``DateTime(timezone=True)`` columns back without tzinfo.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)

# app/core/clock.py
from datetime import datetime, timezone


def utcnow() -> datetime:
    # naive UTC, zelfde als de DateTime kolommen
    return datetime.now(timezone.utc).replace(tzinfo=None)

"""
Server clock.

All deadlines and buzzer timestamps are naive UTC, matching the ORM defaults.
Tests patch ``utcnow`` to freeze time.
"""
from datetime import datetime, timedelta


def utcnow() -> datetime:
    return datetime.utcnow()


def seconds_from_now(seconds: float) -> datetime:
    return utcnow() + timedelta(seconds=seconds)


def elapsed_ms(start: datetime, end: datetime) -> int:
    """Milliseconds between two instants, never negative."""
    return max(0, int((end - start).total_seconds() * 1000))

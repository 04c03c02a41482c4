"""Naive-UTC time helpers.

Timestamps are stored as naive UTC datetimes so that PostgreSQL and
SQLite round-trip them identically.
"""

from datetime import datetime, timezone


def utcnow() -> datetime:
    """Return the current UTC time as a naive (tzinfo=None) datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)

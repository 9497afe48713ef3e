"""Datetime helpers.

Timestamps are stored as naive UTC to match the ``TIMESTAMP WITHOUT TIME ZONE`` columns.
"""

from datetime import datetime, timezone


def utc_now_naive() -> datetime:
    """Return the current UTC time without tzinfo."""
    return datetime.now(timezone.utc).replace(tzinfo=None)

"""
Time source shared by the store, the reservation engine and the worker.

Lock staleness is judged by comparing timestamps written by different
workers, so all of them must agree on one clock. Deployments are expected
to keep host clock skew well below the configured max run time.
"""

from collections.abc import Callable
from datetime import UTC, datetime

# A clock returns naive UTC datetimes
Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Get the current time as a naive UTC datetime."""
    return datetime.now(UTC).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """
    Normalise a datetime to naive UTC.

    Aware values are converted from their offset; naive values are taken
    to be UTC already and returned unchanged.
    """
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)

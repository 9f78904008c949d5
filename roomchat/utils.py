"""
Utility functions for the chat service.
"""

import threading
import time
from datetime import datetime, timezone


class IdGenerator:
    """
    Strictly increasing identifier source.

    Seeded from the wall clock in nanoseconds so ids sort by creation time,
    but never repeats: a clock that stalls or steps backwards still yields
    last + 1.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._last = 0

    def next_id(self) -> str:
        with self._lock:
            candidate = time.time_ns()
            if candidate <= self._last:
                candidate = self._last + 1
            self._last = candidate
        return str(candidate)


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def iso_timestamp(moment: datetime) -> str:
    """
    Format a datetime as ISO-8601 UTC with millisecond precision and Z suffix.

    Args:
        moment: timezone-aware datetime

    Returns:
        String such as 2025-01-15T10:00:00.000Z
    """
    utc = moment.astimezone(timezone.utc)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"

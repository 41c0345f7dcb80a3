"""
Clock sources for the engine.

Everything time-dependent reads `clock.now()`; tests use FrozenClock and
move it explicitly.
"""

import threading
from datetime import datetime, timedelta, timezone
from typing import Optional


EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_millis(dt: datetime) -> int:
    """Epoch milliseconds for an aware datetime."""
    return (dt - EPOCH) // timedelta(milliseconds=1)


def from_millis(ms: Optional[int]) -> Optional[datetime]:
    if ms is None:
        return None
    return EPOCH + timedelta(milliseconds=ms)


class SystemClock:
    """Wall-clock time in UTC."""

    def now(self) -> datetime:
        return utcnow()


class FrozenClock:
    """Manually advanced clock."""

    def __init__(self, start: Optional[datetime] = None):
        self._now = start or datetime(2025, 1, 1, tzinfo=timezone.utc)
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._now

    def advance(self, delta: timedelta = timedelta(0), **kwargs) -> datetime:
        """Move forward by `delta` plus any timedelta keyword arguments."""
        with self._lock:
            self._now = self._now + delta + timedelta(**kwargs)
            return self._now

    def set(self, when: datetime) -> None:
        with self._lock:
            self._now = when

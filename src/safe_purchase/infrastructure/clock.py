"""Clocks satisfying the domain Clock protocol."""

from __future__ import annotations

import threading
from datetime import UTC, datetime


class SystemClock:
    """Wall-clock time as whole seconds since the Unix epoch (UTC).

    Readings survive a process restart, so deadlines anchored on a persisted
    purchase timestamp keep counting across restarts.
    """

    def now(self) -> int:
        return int(datetime.now(UTC).timestamp())


class ManualClock:
    """A clock that only moves when told to.

    Used by the simulation script and the test suite to replay deadline
    scenarios deterministically.
    """

    def __init__(self, start: int = 0) -> None:
        self._now = start
        self._lock = threading.Lock()

    def now(self) -> int:
        return self._now

    def set(self, value: int) -> None:
        with self._lock:
            if value < self._now:
                raise ValueError(f"Clock cannot move backwards: {value} < {self._now}")
            self._now = value

    def advance(self, seconds: int) -> int:
        if seconds < 0:
            raise ValueError(f"Cannot advance by a negative duration: {seconds}")
        with self._lock:
            self._now += seconds
            return self._now

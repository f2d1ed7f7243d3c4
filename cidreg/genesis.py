"""Clocks and the genesis marker.

All registry time is integer Unix seconds. The ``GenesisClock`` records the
activation timestamp exactly once and serves as the origin for elapsed-time
pricing.
"""

from __future__ import annotations

import threading
import time
from typing import Optional, Protocol

from cidreg.errors import AlreadyActivated


class Clock(Protocol):
    def now(self) -> int:
        ...


class SystemClock:
    """Wall-clock time in whole seconds."""

    def now(self) -> int:
        return int(time.time())


class ManualClock:
    """Settable clock for tests and scenario replay."""

    def __init__(self, start: int = 0):
        self._now = start
        self._lock = threading.Lock()

    def now(self) -> int:
        with self._lock:
            return self._now

    def advance(self, seconds: int) -> int:
        if seconds < 0:
            raise ValueError(f"clock cannot move backwards: {seconds}")
        with self._lock:
            self._now += seconds
            return self._now

    def set(self, timestamp: int) -> None:
        with self._lock:
            if timestamp < self._now:
                raise ValueError(f"clock cannot move backwards: {self._now} -> {timestamp}")
            self._now = timestamp


class GenesisClock:
    """
    Activation timestamp, set once.

    ``initialize()`` captures the current time from the underlying clock; a
    second call raises ``AlreadyActivated``.
    """

    def __init__(self, clock: Clock):
        self._clock = clock
        self._start: Optional[int] = None
        self._lock = threading.Lock()

    def initialize(self) -> int:
        with self._lock:
            if self._start is not None:
                raise AlreadyActivated(f"genesis already recorded at {self._start}")
            self._start = self._clock.now()
            return self._start

    @property
    def is_initialized(self) -> bool:
        return self._start is not None

    def now(self) -> int:
        return self._clock.now()

    def start_time(self) -> int:
        if self._start is None:
            raise RuntimeError("genesis has not been recorded")
        return self._start

    def elapsed_since_start(self) -> int:
        return max(0, self.now() - self.start_time())

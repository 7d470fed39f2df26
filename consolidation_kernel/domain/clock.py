"""
Injectable time source for consolidation runs.

Every timestamp a run records (initiation, step start and finish, trial
balance generation, snapshot capture) is read from a Clock handed to the
orchestrator.  Engines never read the time themselves.
"""

import threading
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

_EPOCH = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class Clock(ABC):
    """Source of timezone-aware UTC timestamps."""

    @abstractmethod
    def now(self) -> datetime: ...


class SystemClock(Clock):
    """Wall-clock UTC time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Clock frozen at a known instant, moved only by the caller.

    ``step`` makes every ``now()`` call move the clock forward by a fixed
    amount, which gives step durations a predictable non-zero value.
    Safe to share between the worker threads of one run.
    """

    def __init__(
        self,
        start: datetime | None = None,
        step: timedelta = timedelta(0),
    ):
        self._current = start or _EPOCH
        self._step = step
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            value = self._current
            self._current += self._step
            return value

    def advance(self, seconds: float = 1) -> None:
        with self._lock:
            self._current += timedelta(seconds=seconds)

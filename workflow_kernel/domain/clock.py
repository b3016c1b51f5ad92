"""
Clock -- injectable time source for timestamps.

Responsibility:
    Every ``created_at`` / ``timestamp`` / ``processed_at`` on users,
    transactions and approvals, and every event's ``occurred_at``, comes
    from the clock handed to the engine.  Nothing in the kernel calls
    ``datetime.now()`` directly.

Architecture position:
    Kernel > Domain.  ``SystemClock`` is the one place that reads real time.

Invariants enforced:
    - ``now()`` is always timezone-aware UTC.  A naive start time is
      rejected rather than guessed at.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

EPOCH = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class Clock(ABC):
    @abstractmethod
    def now(self) -> datetime:
        """Current time, timezone-aware UTC."""


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Controlled clock for tests and replays.

    Args:
        start: First value returned.  Must be timezone-aware.
        step: Seconds added after each ``now()`` call.  0 (the default)
            freezes time until ``advance()`` or ``set_time()``; a positive
            step gives every command in a scenario its own timestamp.

    Safe to share between threads.
    """

    def __init__(self, start: datetime | None = None, step: int = 0):
        if step < 0:
            raise ValueError("step must be >= 0")
        self._current = _require_aware(start or EPOCH)
        self._step = timedelta(seconds=step)
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            value = self._current
            self._current += self._step
            return value

    def set_time(self, time: datetime) -> None:
        with self._lock:
            self._current = _require_aware(time)

    def advance(self, seconds: int = 1) -> None:
        with self._lock:
            self._current += timedelta(seconds=seconds)


def _require_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        raise ValueError("clock times must be timezone-aware")
    return value.astimezone(timezone.utc)

"""A tick-driven clock of seconds and milliseconds."""

from __future__ import annotations

import threading
from dataclasses import dataclass

CLICKS_PER_SECOND = 20


@dataclass(frozen=True)
class ClockTime:
    """A point or span of time in whole seconds and milliseconds."""

    seconds: int
    millis: int


def clock_diff(start: ClockTime, stop: ClockTime) -> ClockTime:
    """Return the time from ``start`` to ``stop``."""
    seconds, millis = stop.seconds, stop.millis
    if millis < start.millis:
        millis += 1000
        seconds -= 1
    return ClockTime(seconds - start.seconds, millis - start.millis)


class Clock:
    """Counts ticks at CLICKS_PER_SECOND and wakes waiters on each tick."""

    def __init__(self) -> None:
        self._clicks = 0
        self._seconds = 0
        self._cond = threading.Condition()

    def _now(self) -> ClockTime:
        return ClockTime(self._seconds, 1000 * self._clicks // CLICKS_PER_SECOND)

    def tick(self) -> None:
        with self._cond:
            self._clicks += 1
            if self._clicks >= CLICKS_PER_SECOND:
                self._clicks = 0
                self._seconds += 1
            self._cond.notify_all()

    def read(self) -> ClockTime:
        with self._cond:
            return self._now()

    def wait(self, millis: int) -> None:
        """Block for at least one tick and until ``millis`` have elapsed."""
        with self._cond:
            start = self._now()
            while True:
                self._cond.wait()
                elapsed = clock_diff(start, self._now())
                if elapsed.seconds * 1000 + elapsed.millis >= millis:
                    return
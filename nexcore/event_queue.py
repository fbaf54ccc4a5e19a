"""A bounded queue of input events with blocking and non-blocking reads."""

from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass

EVENT_BUFFER_SIZE = 32
# One ring slot always stays empty, so the queue holds one fewer event.
CAPACITY = EVENT_BUFFER_SIZE - 1


@dataclass(frozen=True)
class Event:
    type: int
    code: int
    x: int = 0
    y: int = 0


class EventQueue:
    """Events beyond CAPACITY are dropped and counted in ``overflow_count``."""

    def __init__(self) -> None:
        self._events: deque[Event] = deque()
        self._cond = threading.Condition()
        self.overflow_count = 0

    def __len__(self) -> int:
        with self._cond:
            return len(self._events)

    def post(self, event: Event) -> bool:
        """Queue an event; return False if the queue was full."""
        with self._cond:
            if len(self._events) >= CAPACITY:
                self.overflow_count += 1
                return False
            self._events.append(event)
            self._cond.notify()
            return True

    def _take(self, max_events: int) -> list[Event]:
        count = min(max_events, len(self._events))
        return [self._events.popleft() for _ in range(count)]

    @staticmethod
    def _check(max_events: int) -> None:
        if max_events < 1:
            raise ValueError("must read at least one event")

    def read(self, max_events: int) -> list[Event]:
        """Wait for at least one event, then return up to ``max_events``."""
        self._check(max_events)
        with self._cond:
            while not self._events:
                self._cond.wait()
            return self._take(max_events)

    def read_nonblock(self, max_events: int) -> list[Event]:
        """Return up to ``max_events`` waiting events, possibly none."""
        self._check(max_events)
        with self._cond:
            return self._take(max_events)
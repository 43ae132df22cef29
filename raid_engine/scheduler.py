"""
Deferred, cancellable callbacks.

The boss-turn pause and turn timeouts are scheduled through a Scheduler so the
server can use real timers while tests drive a virtual clock.
"""

from __future__ import annotations

import heapq
import itertools
import logging
import threading
from typing import Callable, List, Protocol, Tuple


logger = logging.getLogger(__name__)


class TaskHandle(Protocol):
    def cancel(self) -> None: ...

    @property
    def cancelled(self) -> bool: ...


class Scheduler(Protocol):
    def call_later(self, delay: float, fn: Callable[[], None]) -> TaskHandle: ...


class _Handle:
    def __init__(self, fn: Callable[[], None]):
        self.fn = fn
        self._cancelled = False
        self._timer: threading.Timer | None = None

    def cancel(self) -> None:
        self._cancelled = True
        if self._timer is not None:
            self._timer.cancel()

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class ThreadingScheduler:
    """Real-time scheduler backed by daemon threading.Timer threads."""

    def call_later(self, delay: float, fn: Callable[[], None]) -> _Handle:
        handle = _Handle(fn)

        def fire() -> None:
            if handle.cancelled:
                return
            try:
                fn()
            except Exception:
                logger.exception("Deferred task failed")

        timer = threading.Timer(max(0.0, delay), fire)
        timer.daemon = True
        handle._timer = timer
        timer.start()
        return handle


class ManualScheduler:
    """
    Virtual-clock scheduler. Nothing runs until advance() or run_all() is called,
    so tests can step through boss turns and timeouts deterministically.
    """

    def __init__(self) -> None:
        self.now = 0.0
        self._seq = itertools.count()
        self._queue: List[Tuple[float, int, _Handle]] = []

    def call_later(self, delay: float, fn: Callable[[], None]) -> _Handle:
        handle = _Handle(fn)
        heapq.heappush(self._queue, (self.now + max(0.0, delay), next(self._seq), handle))
        return handle

    @property
    def pending(self) -> int:
        return sum(1 for _, _, h in self._queue if not h.cancelled)

    def advance(self, seconds: float) -> int:
        """Move the clock forward, running every task due by then. Returns tasks run."""
        target = self.now + seconds
        ran = 0
        while self._queue and self._queue[0][0] <= target:
            due, _, handle = heapq.heappop(self._queue)
            self.now = max(self.now, due)
            if handle.cancelled:
                continue
            handle.fn()
            ran += 1
        self.now = target
        return ran

    def run_all(self, limit: int = 100) -> int:
        """Run queued tasks (including ones they schedule) up to `limit`."""
        ran = 0
        while self._queue and ran < limit:
            due, _, handle = heapq.heappop(self._queue)
            self.now = max(self.now, due)
            if handle.cancelled:
                continue
            handle.fn()
            ran += 1
        return ran

"""
Clocks and timers for the conversation core.

Everything time-dependent (silence detection, response timeouts, periodic
transcription) goes through a ``Scheduler`` so the same code runs on the
asyncio event loop in production and on a ``ManualScheduler`` in tests,
where time only moves when ``advance()`` is called.
"""

import asyncio
import heapq
import itertools
import logging
import time
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class Clock(ABC):
    """Source of monotonic time in seconds."""

    @abstractmethod
    def now(self) -> float:
        pass


class MonotonicClock(Clock):
    """Wall clock backed by ``time.monotonic``."""

    def now(self) -> float:
        return time.monotonic()


class TimerHandle(ABC):
    """Handle returned by a scheduler; cancelling is idempotent."""

    @abstractmethod
    def cancel(self) -> None:
        pass

    @property
    @abstractmethod
    def cancelled(self) -> bool:
        pass


class Scheduler(Clock):
    """Schedules callbacks on a single-threaded event queue."""

    @abstractmethod
    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        """Run ``callback`` once after ``delay`` seconds."""
        pass

    @abstractmethod
    def call_every(self, interval: float, callback: Callable[[], None]) -> TimerHandle:
        """Run ``callback`` every ``interval`` seconds until cancelled."""
        pass


class _AsyncioTimer(TimerHandle):
    def __init__(self):
        self._handle: Optional[asyncio.TimerHandle] = None
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class AsyncioScheduler(Scheduler):
    """Scheduler running on an asyncio event loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is not None:
            return self._loop
        return asyncio.get_running_loop()

    def now(self) -> float:
        try:
            return self.loop.time()
        except RuntimeError:
            # No loop yet; the default loop clock is time.monotonic
            return time.monotonic()

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        timer = _AsyncioTimer()

        def _fire():
            timer._handle = None
            if not timer.cancelled:
                callback()

        timer._handle = self.loop.call_later(max(0.0, delay), _fire)
        return timer

    def call_every(self, interval: float, callback: Callable[[], None]) -> TimerHandle:
        timer = _AsyncioTimer()

        def _tick():
            if timer.cancelled:
                return
            timer._handle = self.loop.call_later(interval, _tick)
            callback()

        timer._handle = self.loop.call_later(interval, _tick)
        return timer


class _ManualTimer(TimerHandle):
    def __init__(self, interval: Optional[float], callback: Callable[[], None]):
        self.interval = interval
        self.callback = callback
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class ManualScheduler(Scheduler):
    """
    Deterministic clock and scheduler for simulations and tests.

    Usage:
        scheduler = ManualScheduler()
        scheduler.call_later(1.5, fire)
        scheduler.advance(1.0)   # nothing yet
        scheduler.advance(0.5)   # fire() runs at t=1.5
    """

    def __init__(self, start: float = 0.0):
        self._now = start
        self._queue: list[tuple[float, int, _ManualTimer]] = []
        self._seq = itertools.count()

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        timer = _ManualTimer(None, callback)
        self._push(self._now + max(0.0, delay), timer)
        return timer

    def call_every(self, interval: float, callback: Callable[[], None]) -> TimerHandle:
        if interval <= 0:
            raise ValueError("interval must be > 0")
        timer = _ManualTimer(interval, callback)
        self._push(self._now + interval, timer)
        return timer

    def _push(self, when: float, timer: _ManualTimer) -> None:
        heapq.heappush(self._queue, (when, next(self._seq), timer))

    def advance(self, seconds: float) -> None:
        """Move time forward, running every callback that falls due in order."""
        if seconds < 0:
            raise ValueError("cannot move time backwards")
        deadline = self._now + seconds
        while self._queue and self._queue[0][0] <= deadline:
            when, _, timer = heapq.heappop(self._queue)
            if timer.cancelled:
                continue
            self._now = when
            if timer.interval is not None:
                self._push(when + timer.interval, timer)
            timer.callback()
        self._now = deadline

    @property
    def pending(self) -> int:
        """Number of live (non-cancelled) timers."""
        return sum(1 for _, _, t in self._queue if not t.cancelled)


_background_tasks: set = set()


def spawn(coro: Awaitable) -> "asyncio.Task":
    """Schedule ``coro`` on the running loop, keeping a reference until it ends."""
    task = asyncio.ensure_future(coro)
    _background_tasks.add(task)

    def _done(t: "asyncio.Task") -> None:
        _background_tasks.discard(t)
        if t.cancelled():
            return
        exc = t.exception()
        if exc is not None:
            logger.error("Background task failed: %r", exc, exc_info=exc)

    task.add_done_callback(_done)
    return task

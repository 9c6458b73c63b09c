"""timer port for debounce, undo expiry and transient notices.

components never call `asyncio` timers directly; they get a scheduler
injected so tests can drive virtual time.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
import time
from typing import Callable, Optional, Protocol, runtime_checkable


@runtime_checkable
class Cancellable(Protocol):
    def cancel(self) -> None:
        ...


@runtime_checkable
class Scheduler(Protocol):
    """protocol for timer sources (real or virtual)."""

    def schedule(self, delay: float, callback: Callable[[], None]) -> Cancellable:
        """run callback once after delay seconds."""
        ...

    def now(self) -> float:
        ...


class AsyncioScheduler:
    """scheduler backed by the running asyncio event loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        # unbound schedulers follow whichever loop is running
        return self._loop or asyncio.get_running_loop()

    def schedule(self, delay: float, callback: Callable[[], None]) -> Cancellable:
        return self.loop.call_later(delay, callback)

    def now(self) -> float:
        return time.time()


class _ManualHandle:
    def __init__(self, scheduler: ManualScheduler, key: int):
        self._scheduler = scheduler
        self._key = key
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True
        self._scheduler._pending.pop(self._key, None)


class ManualScheduler:
    """virtual clock for tests. nothing runs until `advance` is called."""

    def __init__(self, start: float = 0.0):
        self._now = start
        self._counter = itertools.count()
        self._queue: list[tuple[float, int]] = []
        self._pending: dict[int, Callable[[], None]] = {}

    def schedule(self, delay: float, callback: Callable[[], None]) -> Cancellable:
        key = next(self._counter)
        self._pending[key] = callback
        heapq.heappush(self._queue, (self._now + max(delay, 0.0), key))
        return _ManualHandle(self, key)

    def now(self) -> float:
        return self._now

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def advance(self, seconds: float) -> None:
        """move the clock forward, firing due callbacks in due order.

        callbacks scheduled while advancing fire too if they fall inside the window.
        """
        target = self._now + seconds
        while self._queue and self._queue[0][0] <= target:
            due, key = heapq.heappop(self._queue)
            callback = self._pending.pop(key, None)
            if callback is None:
                continue  # cancelled
            self._now = due
            callback()
        self._now = target

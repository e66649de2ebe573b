# memokit/core/scheduler.py
from __future__ import annotations

import asyncio
import heapq
import itertools
import logging
import threading
import time
from typing import Callable, List, Optional, Protocol, Tuple

from .config import get_settings

logger = logging.getLogger(__name__)

Callback = Callable[[], None]


class Cancellable(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Runs a callback once, no earlier than ``delay_ms`` milliseconds from now."""
    def call_later(self, delay_ms: float, callback: Callback) -> Cancellable: ...


def _seconds(delay_ms: float) -> float:
    return max(delay_ms, 0) / 1000.0


class LoopScheduler:
    """Schedules on an asyncio event loop (the running one unless given)."""
    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    def call_later(self, delay_ms: float, callback: Callback) -> asyncio.TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(_seconds(delay_ms), callback)


class _Handle:
    def __init__(self):
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ThreadScheduler:
    """
    Timer queue served by a single daemon worker thread, for code without an
    event loop. The worker starts on demand and exits once the queue is empty.
    """
    def __init__(self):
        self._cond = threading.Condition()
        self._seq = itertools.count()
        self._queue: List[Tuple[float, int, _Handle, Callback]] = []
        self._worker: Optional[threading.Thread] = None

    def call_later(self, delay_ms: float, callback: Callback) -> _Handle:
        handle = _Handle()
        due = time.monotonic() + _seconds(delay_ms)
        with self._cond:
            heapq.heappush(self._queue, (due, next(self._seq), handle, callback))
            if self._worker is None:
                worker = threading.Thread(target=self._run, name="memokit-expiry", daemon=True)
                worker.start()
                self._worker = worker
            self._cond.notify()
        return handle

    @property
    def pending(self) -> int:
        with self._cond:
            return sum(1 for _, _, h, _ in self._queue if not h.cancelled)

    def _next_due(self) -> Optional[Tuple[_Handle, Callback]]:
        with self._cond:
            while self._queue:
                due, _, handle, callback = self._queue[0]
                wait = due - time.monotonic()
                if wait <= 0:
                    heapq.heappop(self._queue)
                    return handle, callback
                self._cond.wait(wait)
            self._worker = None
            return None

    def _run(self) -> None:
        while True:
            item = self._next_due()
            if item is None:
                return
            handle, callback = item
            if handle.cancelled:
                continue
            try:
                callback()
            except Exception:
                logger.exception("scheduled callback failed")


# shared by every AutoScheduler so sync code runs one expiry thread at most
_threads = ThreadScheduler()


class AutoScheduler:
    """Uses the running event loop when there is one, else the shared thread queue."""
    def __init__(self, threads: Optional[ThreadScheduler] = None):
        self._threads = threads or _threads

    def call_later(self, delay_ms: float, callback: Callback) -> Cancellable:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return self._threads.call_later(delay_ms, callback)
        return loop.call_later(_seconds(delay_ms), callback)


class ManualScheduler:
    """
    Virtual clock in milliseconds. Nothing fires until advance() is called;
    a callback due at time T fires once the clock reaches T (inclusive).
    """
    def __init__(self, now: float = 0.0):
        self.now = now
        self._seq = itertools.count()
        self._queue: List[Tuple[float, int, _Handle, Callback]] = []

    def call_later(self, delay_ms: float, callback: Callback) -> _Handle:
        handle = _Handle()
        due = self.now + max(delay_ms, 0)
        heapq.heappush(self._queue, (due, next(self._seq), handle, callback))
        return handle

    @property
    def pending(self) -> int:
        return sum(1 for _, _, h, _ in self._queue if not h.cancelled)

    def advance(self, ms: float) -> int:
        """Move the clock forward and run everything that came due, in order."""
        target = self.now + ms
        fired = 0
        while self._queue and self._queue[0][0] <= target:
            due, _, handle, callback = heapq.heappop(self._queue)
            self.now = due
            if handle.cancelled:
                continue
            callback()
            fired += 1
        self.now = target
        return fired


def get_scheduler() -> Scheduler:
    """Scheduler selected by ``MEMOKIT_SCHEDULER`` (auto | asyncio | thread)."""
    name = get_settings().scheduler
    logger.debug("using %s scheduler", name)
    if name == "asyncio":
        return LoopScheduler()
    if name == "thread":
        return _threads
    return AutoScheduler()

"""
core/clock.py
─────────────
Injectable time source and timer abstraction.

Every component that waits or schedules goes through a :class:`Clock` or
a :class:`Scheduler` instead of calling ``asyncio.sleep`` /
``loop.call_later`` directly, so tests can drive virtual time.

Production implementations
--------------------------
SystemClock
    Wall-clock seconds and ``asyncio.sleep``.
AsyncioScheduler
    One-shot and repeating timers on the running event loop.  Each firing
    runs the callback as its own task, so a repeating timer keeps firing
    while an earlier callback is still awaiting (``setInterval`` semantics).
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional, Protocol, Set

logger = logging.getLogger(__name__)

AsyncCallback = Callable[[], Awaitable[None]]


class Clock(Protocol):
    """Time source used for freshness checks, timestamps and delays."""

    def now(self) -> float:
        """Return the current time in epoch seconds."""
        ...

    async def sleep(self, seconds: float) -> None:
        """Suspend the caller for ``seconds``."""
        ...


class TimerHandle(Protocol):
    """Anything that can cancel a pending timer."""

    def cancel(self) -> None:
        ...


class Scheduler(Protocol):
    """Timer factory for the debounce and progressive-loading timers."""

    def call_later(self, delay: float, callback: AsyncCallback) -> TimerHandle:
        """Run ``callback`` once after ``delay`` seconds."""
        ...

    def call_every(self, interval: float, callback: AsyncCallback) -> TimerHandle:
        """Run ``callback`` every ``interval`` seconds until cancelled."""
        ...


# ── Production implementations ────────────────────────────────────────────────


class SystemClock:
    """Real time."""

    def now(self) -> float:
        return time.time()

    async def sleep(self, seconds: float) -> None:
        if seconds > 0:
            await asyncio.sleep(seconds)


class _RepeatingTimer:
    def __init__(self, scheduler: "AsyncioScheduler", interval: float, callback: AsyncCallback) -> None:
        self._scheduler = scheduler
        self._interval = interval
        self._callback = callback
        self._handle: Optional[asyncio.TimerHandle] = None
        self._cancelled = False

    def arm(self) -> None:
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self._interval, self._fire)

    def _fire(self) -> None:
        if self._cancelled:
            return
        self._scheduler.spawn(self._callback)
        self.arm()

    def cancel(self) -> None:
        self._cancelled = True
        if self._handle is not None:
            self._handle.cancel()


class AsyncioScheduler:
    """
    Timers backed by the running asyncio loop.

    Spawned callback tasks are tracked so they are not garbage-collected
    mid-flight and so :meth:`drain` can wait for them on shutdown.
    """

    def __init__(self) -> None:
        self._tasks: Set[asyncio.Task] = set()

    def spawn(self, callback: AsyncCallback) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(callback())
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Scheduled callback failed", exc_info=task.exception())

    def call_later(self, delay: float, callback: AsyncCallback) -> TimerHandle:
        loop = asyncio.get_running_loop()
        return loop.call_later(delay, self.spawn, callback)

    def call_every(self, interval: float, callback: AsyncCallback) -> TimerHandle:
        timer = _RepeatingTimer(self, interval, callback)
        timer.arm()
        return timer

    async def drain(self) -> None:
        """Wait for every callback task that is currently running."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

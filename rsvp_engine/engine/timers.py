"""Cancellable timer and frame back-ends for the pacing engines.

WHY: Both engines suspend between steps: the step scheduler on a timer,
the animator on a per-frame callback. Cancellation has to be synchronous
and total: once a caller stops playback no stale callback may mutate
state. Expressing that as explicit handles (rather than closures that
re-schedule themselves) makes every pending piece of work visible and
cancellable by its single owner.

HOW: ``Timer`` and ``FrameSource`` are small ABCs returning a ``TaskHandle``.
Two families implement them:
  VirtualTimer / VirtualFrameSource — deterministic clocks driven by the
      caller (tests, hosts with their own render loop). The timer keeps a
      heap of due callbacks ordered by due time, then insertion order.
  AsyncioTimer / AsyncioFrameSource — backed by ``loop.call_later`` on the
      running asyncio event loop (CLI playback, HTTP server).

RULES:
- A cancelled handle's callback never runs, even if already due
- Callbacks run on the owning loop's thread; nothing here is thread-safe
- Delays below zero are treated as zero
- Timestamps passed to frame callbacks are in seconds (monotonic)
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
from abc import ABC, abstractmethod
from typing import Callable, List, Optional, Tuple

from rsvp_engine import config

TimerCallback = Callable[[], None]
FrameCallback = Callable[[float], None]


class TaskHandle:
    """Single-owner cancellation token for one scheduled callback."""

    def __init__(self) -> None:
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True


class Timer(ABC):
    """Schedules one-shot callbacks after a delay."""

    @abstractmethod
    def now(self) -> float:
        """Current time in seconds on this timer's clock."""

    @abstractmethod
    def call_later(self, delay_s: float, callback: TimerCallback) -> TaskHandle:
        """Run ``callback`` once after ``delay_s`` seconds unless cancelled."""


class FrameSource(ABC):
    """Delivers one callback per requested animation frame."""

    @abstractmethod
    def request_frame(self, callback: FrameCallback) -> TaskHandle:
        """Run ``callback(timestamp_s)`` on the next frame unless cancelled."""


# ---------------------------------------------------------------------------
# Virtual (caller-driven) clocks
# ---------------------------------------------------------------------------


class VirtualTimer(Timer):
    """Deterministic timer whose clock only moves when ``advance()`` is called."""

    def __init__(self, start_s: float = 0.0) -> None:
        self._now = start_s
        self._queue: List[Tuple[float, int, TaskHandle, TimerCallback]] = []
        self._counter = itertools.count()

    def now(self) -> float:
        return self._now

    def call_later(self, delay_s: float, callback: TimerCallback) -> TaskHandle:
        handle = TaskHandle()
        due = self._now + max(0.0, delay_s)
        heapq.heappush(self._queue, (due, next(self._counter), handle, callback))
        return handle

    @property
    def pending_count(self) -> int:
        return sum(1 for _, _, handle, _ in self._queue if not handle.cancelled)

    def next_due(self) -> Optional[float]:
        """Due time of the earliest live callback, or None when idle."""
        for due, _, handle, _ in sorted(self._queue):
            if not handle.cancelled:
                return due
        return None

    def advance(self, seconds: float) -> None:
        """Move the clock forward, running every callback that falls due.

        Callbacks scheduled by other callbacks run in the same call if they
        fall due before the target time.
        """
        target = self._now + max(0.0, seconds)
        while self._queue and self._queue[0][0] <= target:
            due, _, handle, callback = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            self._now = due
            handle.cancel()
            callback()
        self._now = target


class VirtualFrameSource(FrameSource):
    """Frame source that fires only when the caller invokes ``step(ts)``."""

    def __init__(self) -> None:
        self._pending: List[Tuple[TaskHandle, FrameCallback]] = []

    def request_frame(self, callback: FrameCallback) -> TaskHandle:
        handle = TaskHandle()
        self._pending.append((handle, callback))
        return handle

    @property
    def pending_count(self) -> int:
        return sum(1 for handle, _ in self._pending if not handle.cancelled)

    def step(self, timestamp_s: float) -> None:
        """Deliver one frame at ``timestamp_s`` to every live registration."""
        batch, self._pending = self._pending, []
        for handle, callback in batch:
            if handle.cancelled:
                continue
            handle.cancel()
            callback(timestamp_s)


# ---------------------------------------------------------------------------
# asyncio-backed clocks
# ---------------------------------------------------------------------------


class _LoopHandle(TaskHandle):
    """TaskHandle that also cancels the underlying asyncio.TimerHandle."""

    def __init__(self) -> None:
        super().__init__()
        self.timer_handle: Optional[asyncio.TimerHandle] = None

    def cancel(self) -> None:
        super().cancel()
        if self.timer_handle is not None:
            self.timer_handle.cancel()


class AsyncioTimer(Timer):
    """Timer on an asyncio event loop; build it inside a running loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop or asyncio.get_running_loop()

    def now(self) -> float:
        return self._loop.time()

    def call_later(self, delay_s: float, callback: TimerCallback) -> TaskHandle:
        handle = _LoopHandle()
        handle.timer_handle = self._loop.call_later(
            max(0.0, delay_s), self._fire, handle, callback
        )
        return handle

    @staticmethod
    def _fire(handle: TaskHandle, callback: TimerCallback) -> None:
        if handle.cancelled:
            return
        handle.cancel()
        callback()


class AsyncioFrameSource(FrameSource):
    """Fixed-interval frame clock on an asyncio event loop."""

    def __init__(
        self,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        interval_s: float = config.FRAME_INTERVAL_S,
    ) -> None:
        self._loop = loop or asyncio.get_running_loop()
        self._interval_s = max(0.001, interval_s)

    def request_frame(self, callback: FrameCallback) -> TaskHandle:
        handle = _LoopHandle()
        handle.timer_handle = self._loop.call_later(
            self._interval_s, self._fire, handle, callback
        )
        return handle

    def _fire(self, handle: TaskHandle, callback: FrameCallback) -> None:
        if handle.cancelled:
            return
        handle.cancel()
        callback(self._loop.time())

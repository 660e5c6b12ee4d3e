"""
Purpose: Explicit timer abstraction for debounce logic.
What it does:
- DebounceTimer: arm(delay_ms, callback) / cancel() on top of the asyncio loop.
- ManualScheduler + ManualTimer: the same contract driven by a virtual clock,
  so a recorded trip can be replayed deterministically (scripts, tests).

cancel() is always safe, armed or not. Arming an armed timer restarts it.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
from typing import Callable, List, Optional, Protocol, Tuple

TimerCallback = Callable[[], None]


class Timer(Protocol):
    def arm(self, delay_ms: int, callback: TimerCallback) -> None: ...

    def cancel(self) -> None: ...

    @property
    def armed(self) -> bool: ...


class DebounceTimer:
    """
    One-shot restartable timer on the running asyncio loop.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop
        self._handle: Optional[asyncio.TimerHandle] = None

    @property
    def armed(self) -> bool:
        return self._handle is not None

    def arm(self, delay_ms: int, callback: TimerCallback) -> None:
        self.cancel()
        loop = self._loop or asyncio.get_running_loop()
        self._handle = loop.call_later(delay_ms / 1000.0, self._fire, callback)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self, callback: TimerCallback) -> None:
        self._handle = None
        callback()


class _Entry:
    __slots__ = ("deadline_ms", "callback", "timer", "cancelled")

    def __init__(self, deadline_ms: int, callback: TimerCallback, timer: ManualTimer):
        self.deadline_ms = deadline_ms
        self.callback = callback
        self.timer = timer
        self.cancelled = False


class ManualScheduler:
    """
    Virtual clock in milliseconds.
    Nothing fires until advance_to() moves the clock past a deadline.
    """

    def __init__(self, start_ms: int = 0):
        self.now_ms = start_ms
        self._queue: List[Tuple[int, int, _Entry]] = []
        self._counter = itertools.count()

    def clock(self) -> int:
        return self.now_ms

    def timer(self) -> ManualTimer:
        return ManualTimer(self)

    def _schedule(self, delay_ms: int, callback: TimerCallback, timer: ManualTimer) -> _Entry:
        entry = _Entry(self.now_ms + delay_ms, callback, timer)
        heapq.heappush(self._queue, (entry.deadline_ms, next(self._counter), entry))
        return entry

    def advance_to(self, now_ms: int) -> None:
        """
        Fire every live callback due at or before now_ms, in deadline order.
        The clock reads the deadline while each callback runs.
        """
        if now_ms < self.now_ms:
            raise ValueError(f"Clock cannot go backwards ({now_ms} < {self.now_ms})")

        while self._queue and self._queue[0][0] <= now_ms:
            deadline_ms, _, entry = heapq.heappop(self._queue)
            if entry.cancelled:
                continue
            self.now_ms = deadline_ms
            entry.timer._entry = None
            entry.callback()

        self.now_ms = now_ms

    def advance_by(self, delta_ms: int) -> None:
        self.advance_to(self.now_ms + delta_ms)


class ManualTimer:
    """
    Timer bound to a ManualScheduler.
    """

    def __init__(self, scheduler: ManualScheduler):
        self._scheduler = scheduler
        self._entry: Optional[_Entry] = None

    @property
    def armed(self) -> bool:
        return self._entry is not None

    @property
    def deadline_ms(self) -> Optional[int]:
        return self._entry.deadline_ms if self._entry else None

    def arm(self, delay_ms: int, callback: TimerCallback) -> None:
        self.cancel()
        self._entry = self._scheduler._schedule(delay_ms, callback, self)

    def cancel(self) -> None:
        if self._entry is not None:
            self._entry.cancelled = True
            self._entry = None

"""Per-question countdown driven by a cooperative scheduler.

Anything with ``call_later(delay, callback, *args)`` returning a handle with
``cancel()`` can drive the countdown: an asyncio event loop in the API, or
:class:`ManualScheduler` (a virtual clock) in the CLI and tests.
"""
from __future__ import annotations

import heapq
import itertools
import logging
from typing import Any, Callable, List, Optional, Protocol, Tuple

log = logging.getLogger(__name__)


class Handle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> Handle: ...


class ManualHandle:
    def __init__(self, when: float, callback: Callable[..., Any], args: Tuple[Any, ...]):
        self.when = when
        self._callback = callback
        self._args = args
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    def cancelled(self) -> bool:
        return self._cancelled

    def _run(self) -> None:
        if not self._cancelled:
            self._callback(*self._args)


class ManualScheduler:
    """Virtual clock; callbacks run only inside :meth:`advance`."""

    def __init__(self) -> None:
        self.now = 0.0
        self._queue: List[Tuple[float, int, ManualHandle]] = []
        self._seq = itertools.count()

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> ManualHandle:
        handle = ManualHandle(self.now + max(0.0, float(delay)), callback, args)
        heapq.heappush(self._queue, (handle.when, next(self._seq), handle))
        return handle

    def advance(self, seconds: float) -> int:
        """Move the clock forward, firing due callbacks in order; returns how many ran."""
        target = self.now + float(seconds)
        fired = 0
        while self._queue and self._queue[0][0] <= target:
            when, _, handle = heapq.heappop(self._queue)
            self.now = max(self.now, when)
            if handle.cancelled():
                continue
            handle._run()
            fired += 1
        self.now = target
        return fired

    @property
    def pending(self) -> int:
        return sum(1 for _, _, h in self._queue if not h.cancelled())


class QuestionTimer:
    """One repeating tick per interval; at most one pending callback at a time.

    Every restart or cancel bumps the generation, so a callback scheduled for
    an earlier question that still fires is dropped.
    """

    def __init__(self, scheduler: Optional[Scheduler], on_tick: Callable[[], None], interval: float = 1.0):
        self._scheduler = scheduler
        self._on_tick = on_tick
        self._interval = float(interval)
        self._handle: Optional[Handle] = None
        self._generation = 0

    @property
    def active(self) -> bool:
        return self._handle is not None

    @property
    def generation(self) -> int:
        return self._generation

    def restart(self) -> None:
        self.cancel()
        if self._scheduler is None:
            return
        self._schedule(self._generation)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._generation += 1

    def _schedule(self, generation: int) -> None:
        assert self._scheduler is not None
        self._handle = self._scheduler.call_later(self._interval, self._fire, generation)

    def _fire(self, generation: int) -> None:
        if generation != self._generation:
            log.debug("dropping stale tick gen=%d current=%d", generation, self._generation)
            return
        self._handle = None
        self._on_tick()
        # on_tick may have restarted or cancelled us; only keep ticking if not
        if generation == self._generation and self._handle is None:
            self._schedule(generation)

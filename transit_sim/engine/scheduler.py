"""
Cooperative timer scheduler for the OnTime transit simulator.

Every tick source (clock tick, fleet resimulation, display refresh) is a
periodic timer registered here. Timers run on one logical thread in virtual
time: advance() moves time forward and fires whatever fell due, in due-time
order and then registration order. Timers are independent of each other;
nothing keeps their cadences aligned.
"""

import heapq
import itertools
import logging
from typing import Callable, List, Tuple

logger = logging.getLogger(__name__)


class TimerHandle:
    """A registered periodic timer. Cancel it when its owner goes away."""

    def __init__(self, scheduler: "TimerScheduler", name: str, interval_seconds: float, callback: Callable[[], None]):
        self._scheduler = scheduler
        self.name = name
        self.interval_seconds = interval_seconds
        self.callback = callback
        self.cancelled = False
        self.fire_count = 0
        self.order = 0

    def cancel(self) -> None:
        self._scheduler.cancel(self)

    def __repr__(self) -> str:
        state = "cancelled" if self.cancelled else "active"
        return f"TimerHandle({self.name!r}, every {self.interval_seconds}s, {state})"


class TimerScheduler:
    """Virtual-time scheduler for periodic timers."""

    def __init__(self) -> None:
        self.now = 0.0
        self._queue: List[Tuple[float, int, TimerHandle]] = []
        self._registrations = itertools.count()
        self._active: List[TimerHandle] = []

    @property
    def active_timers(self) -> List[TimerHandle]:
        return list(self._active)

    def every(self, interval_seconds: float, callback: Callable[[], None], name: str = "timer") -> TimerHandle:
        """
        Register `callback` to run every `interval_seconds` of virtual time.

        The first call happens one interval after registration.

        Raises:
            ValueError: If interval_seconds is not positive
        """
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got {interval_seconds}")

        handle = TimerHandle(self, name, interval_seconds, callback)
        handle.order = next(self._registrations)
        self._active.append(handle)
        self._push(self.now + interval_seconds, handle)

        logger.debug(f"Registered timer {name} every {interval_seconds}s")
        return handle

    def cancel(self, handle: TimerHandle) -> None:
        """Cancel a timer. Cancelling twice is a no-op."""
        if handle.cancelled:
            return
        handle.cancelled = True
        if handle in self._active:
            self._active.remove(handle)
        logger.debug(f"Cancelled timer {handle.name}")

    def cancel_all(self) -> None:
        for handle in list(self._active):
            self.cancel(handle)
        self._queue.clear()

    def advance(self, seconds: float) -> int:
        """
        Move virtual time forward and fire every timer that falls due.

        A timer due several times within the window fires once per period.

        Returns:
            Number of callbacks fired

        Raises:
            ValueError: If seconds is negative
        """
        if seconds < 0:
            raise ValueError(f"seconds must be non-negative, got {seconds}")

        target = self.now + seconds
        fired = 0

        while self._queue and self._queue[0][0] <= target:
            due, _, handle = heapq.heappop(self._queue)
            if handle.cancelled:
                continue

            self.now = due
            handle.fire_count += 1
            fired += 1
            # reschedule first so a callback may cancel its own timer
            self._push(due + handle.interval_seconds, handle)
            handle.callback()

        self.now = target
        return fired

    def _push(self, due: float, handle: TimerHandle) -> None:
        heapq.heappush(self._queue, (due, handle.order, handle))

"""Injectable clock and repeating-timer scheduler.

All engine cadences (detection poll, penalty tick) go through a `Scheduler`,
so tests and replays can drive time explicitly instead of waiting on the wall
clock.
"""

from __future__ import annotations

import heapq
from collections.abc import Callable
from dataclasses import dataclass, field
from functools import cached_property
from typing import TYPE_CHECKING, Protocol, Self

if TYPE_CHECKING:
    from geohunt.core.types import Millis

TimerCallback = Callable[[int], None]


class Clock(Protocol):
    def now_ms(self) -> Millis: ...


class Scheduler(Clock, Protocol):
    def call_every(
        self,
        interval_ms: int,
        callback: TimerCallback,
        *,
        name: str = "",
    ) -> TimerHandle: ...

    def call_at(
        self,
        due_ms: Millis,
        callback: TimerCallback,
        *,
        name: str = "",
    ) -> TimerHandle: ...

    def cancel(self, handle: TimerHandle | None) -> None: ...


@dataclass(eq=False)
class TimerHandle:
    name: str
    callback: TimerCallback
    interval_ms: int | None
    cancelled: bool = False

    @property
    def repeating(self) -> bool:
        return self.interval_ms is not None


@dataclass(order=False)
class ScheduledCall:
    due_ms: int
    serial: int
    handle: TimerHandle

    @cached_property
    def sort_key(self) -> tuple[int, int]:
        return (self.due_ms, self.serial)

    def __lt__(self, other: Self) -> bool:
        return self.sort_key < other.sort_key


@dataclass
class VirtualScheduler:
    """
    Deterministic single-threaded scheduler over a virtual millisecond clock.

    Calls due at the same instant run in the order they were scheduled. Each
    callback runs to completion before the next one starts.
    """

    start_ms: Millis = 0
    _now: int = field(init=False)
    _serial: int = field(default=0, init=False)
    _queue: list[ScheduledCall] = field(default_factory=list, init=False)

    def __post_init__(self) -> None:
        self._now = self.start_ms

    def now_ms(self) -> Millis:
        return self._now

    def call_every(
        self,
        interval_ms: int,
        callback: TimerCallback,
        *,
        name: str = "",
    ) -> TimerHandle:
        if interval_ms <= 0:
            msg = f"Timer interval must be positive, got {interval_ms}"
            raise ValueError(msg)
        handle = TimerHandle(name=name, callback=callback, interval_ms=interval_ms)
        self._push(self._now + interval_ms, handle)
        return handle

    def call_at(
        self,
        due_ms: Millis,
        callback: TimerCallback,
        *,
        name: str = "",
    ) -> TimerHandle:
        handle = TimerHandle(name=name, callback=callback, interval_ms=None)
        self._push(max(due_ms, self._now), handle)
        return handle

    def cancel(self, handle: TimerHandle | None) -> None:
        if handle is not None:
            handle.cancelled = True

    @property
    def pending(self) -> int:
        return sum(1 for call in self._queue if not call.handle.cancelled)

    def advance(self, delta_ms: int) -> None:
        self.advance_to(self._now + delta_ms)

    def advance_to(self, target_ms: Millis) -> None:
        """Run every call due up to and including `target_ms`, then park there."""
        if target_ms < self._now:
            msg = f"Cannot move clock backwards ({target_ms} < {self._now})"
            raise ValueError(msg)

        while self._queue and self._queue[0].due_ms <= target_ms:
            call = heapq.heappop(self._queue)
            if call.handle.cancelled:
                continue
            self._now = call.due_ms
            handle = call.handle
            if handle.interval_ms is not None:
                # Re-arm before running so the callback may cancel itself.
                self._push(call.due_ms + handle.interval_ms, handle)
            handle.callback(self._now)

        self._now = target_ms

    def _push(self, due_ms: int, handle: TimerHandle) -> None:
        self._serial += 1
        heapq.heappush(self._queue, ScheduledCall(due_ms, self._serial, handle))

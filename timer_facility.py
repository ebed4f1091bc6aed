# -*- coding: utf-8 -*-
########################
# timer_facility.py
########################
# Purpose:
# - Injectable clock and deferred-callback abstraction used by PlaybackScheduler and Throttle.
# - ManualTimerFacility: deterministic simulated clock for tests and offline runs.
#
# Design notes:
# - No Qt usage. The Qt event loop implementation lives in qt_timer_facility.py.
# - All times are wall-clock milliseconds as seen by the host; virtual time is PlaybackClock's job.
# - Callbacks due at the same time fire in the order they were scheduled.
# - ManualTimerFacility(honor_cancel=False) simulates a host whose cancel cannot invalidate a
#   queued callback, so stale-callback handling can be tested.
#
########################
# Interfaces:
# Public dataclasses:
# - TimerHandle(handle_id: int, due_ms: float, cancelled: bool = False, fired: bool = False)
#
# Public classes:
# - class TimerFacility(Protocol)
#   - now_ms() -> float
#   - call_later(delay_ms: float, callback: Callable[[], None]) -> TimerHandle
#   - cancel(handle: Optional[TimerHandle]) -> None
# - class ManualTimerFacility
#   - advance(delta_ms: float) -> int
#   - advance_to(target_ms: float) -> int
#   - run_until_idle(max_callbacks: int = 100000) -> int
#   - pending_count() -> int
#
########################

from __future__ import annotations

from dataclasses import dataclass, field
import heapq
from typing import Callable, List, Optional, Protocol, Tuple


@dataclass(eq=False)
class TimerHandle:
    handle_id: int
    due_ms: float
    cancelled: bool = False
    fired: bool = False
    backend_token: object = field(default=None, repr=False)

    def is_live(self) -> bool:
        return not self.cancelled and not self.fired


class TimerFacility(Protocol):
    def now_ms(self) -> float:
        ...

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TimerHandle:
        ...

    def cancel(self, handle: Optional[TimerHandle]) -> None:
        ...


class ManualTimerFacility:
    def __init__(self, *, start_ms: float = 0.0, honor_cancel: bool = True) -> None:
        self._now_ms = float(start_ms)
        self._honor_cancel = bool(honor_cancel)
        self._next_handle_id = 1
        self._queue: List[Tuple[float, int, TimerHandle, Callable[[], None]]] = []

    def now_ms(self) -> float:
        return float(self._now_ms)

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TimerHandle:
        due_ms = self._now_ms + max(0.0, float(delay_ms))
        handle = TimerHandle(handle_id=self._next_handle_id, due_ms=due_ms)
        heapq.heappush(self._queue, (due_ms, self._next_handle_id, handle, callback))
        self._next_handle_id += 1
        return handle

    def cancel(self, handle: Optional[TimerHandle]) -> None:
        if handle is None or not handle.is_live():
            return
        handle.cancelled = True

    def pending_count(self) -> int:
        return sum(1 for _due, _order, handle, _callback in self._queue if self._will_fire(handle))

    def advance(self, delta_ms: float) -> int:
        return self.advance_to(self._now_ms + max(0.0, float(delta_ms)))

    def advance_to(self, target_ms: float) -> int:
        fired_count = 0
        target = max(self._now_ms, float(target_ms))
        while self._queue and self._queue[0][0] <= target:
            due_ms, _order, handle, callback = heapq.heappop(self._queue)
            self._now_ms = max(self._now_ms, due_ms)
            if not self._will_fire(handle):
                continue
            handle.fired = True
            fired_count += 1
            callback()
        self._now_ms = target
        return fired_count

    def run_until_idle(self, max_callbacks: int = 100000) -> int:
        fired_count = 0
        while self._queue and fired_count < max_callbacks:
            fired_count += self.advance_to(self._queue[0][0])
        return fired_count

    def _will_fire(self, handle: TimerHandle) -> bool:
        if handle.fired:
            return False
        if handle.cancelled and self._honor_cancel:
            return False
        return True


def _run_unit_tests() -> None:
    facility = ManualTimerFacility()
    fired: List[str] = []
    facility.call_later(20, lambda: fired.append("b"))
    facility.call_later(10, lambda: fired.append("a"))
    dropped = facility.call_later(15, lambda: fired.append("x"))
    facility.cancel(dropped)
    facility.cancel(dropped)
    assert facility.advance(20) == 2
    assert fired == ["a", "b"]
    assert facility.now_ms() == 20.0


if __name__ == "__main__":
    _run_unit_tests()
    print("timer_facility.py: ok")

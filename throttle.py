# -*- coding: utf-8 -*-
########################
# throttle.py
########################
# Purpose:
# - Rate limit buffer mutations for one stream: at most one invocation per interval.
#
# Design notes:
# - No Qt usage. Timing comes from an injected TimerFacility.
# - Leading edge: the first call after a quiet interval invokes immediately.
# - Trailing edge: calls inside the interval are coalesced; the last arguments always invoke
#   once the interval has elapsed. A burst is never dropped completely.
# - State is explicit (last_invoke_time, pending_args, pending_handle) so flush() and cancel()
#   are deterministic. cancel() also resets last_invoke_time, the next call is a leading edge.
# - interval_ms == 0 disables throttling; every call invokes immediately.
#
########################
# Interfaces:
# Public classes:
# - class Throttle
#   - __init__(callback: Callable[..., None], interval_ms: float, timer_facility: TimerFacility)
#   - call(*args) -> None
#   - flush() -> bool
#   - cancel() -> None
#   - is_pending() -> bool
#   - last_invoke_time() -> Optional[float]
#
########################

from __future__ import annotations

import logging
from typing import Any, Callable, Optional, Tuple

from timer_facility import TimerFacility, TimerHandle

LOGGER = logging.getLogger(__name__)


class Throttle:
    def __init__(self, callback: Callable[..., None], interval_ms: float, timer_facility: TimerFacility) -> None:
        self._callback = callback
        self._interval_ms = max(0.0, float(interval_ms))
        self._timer_facility = timer_facility

        self._last_invoke_time: Optional[float] = None
        self._pending_args: Optional[Tuple[Any, ...]] = None
        self._pending_handle: Optional[TimerHandle] = None
        self._generation = 0

    def last_invoke_time(self) -> Optional[float]:
        return self._last_invoke_time

    def is_pending(self) -> bool:
        return self._pending_args is not None

    def call(self, *args: Any) -> None:
        now = self._timer_facility.now_ms()
        self._pending_args = tuple(args)

        if self._last_invoke_time is None or now - self._last_invoke_time >= self._interval_ms:
            self._drop_pending_handle()
            self._invoke(now)
            return

        if self._pending_handle is None:
            delay = self._last_invoke_time + self._interval_ms - now
            generation = self._generation
            self._pending_handle = self._timer_facility.call_later(
                delay, lambda: self._on_trailing_edge(generation)
            )

    def flush(self) -> bool:
        """Invoke the pending call now. Returns False when nothing was pending."""
        self._drop_pending_handle()
        if self._pending_args is None:
            return False
        self._invoke(self._timer_facility.now_ms())
        return True

    def cancel(self) -> None:
        self._drop_pending_handle()
        self._pending_args = None
        self._last_invoke_time = None

    def _drop_pending_handle(self) -> None:
        self._generation += 1
        if self._pending_handle is not None:
            self._timer_facility.cancel(self._pending_handle)
            self._pending_handle = None

    def _on_trailing_edge(self, generation: int) -> None:
        if generation != self._generation:
            LOGGER.debug("Dropping stale trailing edge (generation %d, current %d)", generation, self._generation)
            return
        self._pending_handle = None
        if self._pending_args is None:
            return
        self._invoke(self._timer_facility.now_ms())

    def _invoke(self, now: float) -> None:
        args = self._pending_args or ()
        self._pending_args = None
        self._last_invoke_time = float(now)
        self._callback(*args)


def _run_unit_tests() -> None:
    from timer_facility import ManualTimerFacility

    facility = ManualTimerFacility()
    received = []
    throttle = Throttle(received.append, 50, facility)

    throttle.call("a")
    facility.advance(10)
    throttle.call("b")
    facility.advance(10)
    throttle.call("c")
    assert received == ["a"]
    facility.advance(30)
    assert received == ["a", "c"]

    throttle.call("d")
    assert throttle.flush() is True
    assert received == ["a", "c", "d"]
    assert throttle.flush() is False


if __name__ == "__main__":
    _run_unit_tests()
    print("throttle.py: ok")

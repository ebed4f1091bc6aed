# -*- coding: utf-8 -*-
########################
# qt_timer_facility.py
########################
# Purpose:
# - TimerFacility implementation on the Qt event loop.
# - Each deferred callback is a single-shot QTimer owned by one QObject parent.
#
# Design notes:
# - Callbacks run on the Qt thread that owns the facility; nothing here is thread safe.
# - now_ms() is monotonic (QElapsedTimer), independent of system clock changes.
# - A stopped QTimer can still have a queued timeout in rare cases; callers guard with generations.
#
########################
# Interfaces:
# Public classes:
# - class QtTimerFacility(PyQt6.QtCore.QObject)
#   - now_ms() -> float
#   - call_later(delay_ms: float, callback: Callable[[], None]) -> TimerHandle
#   - cancel(handle: Optional[TimerHandle]) -> None
#   - cancel_all() -> None
#
########################

from __future__ import annotations

from typing import Callable, Dict, Optional

from PyQt6.QtCore import QElapsedTimer, QObject, QTimer

from timer_facility import TimerHandle


class QtTimerFacility(QObject):
    def __init__(self, parent: Optional[QObject] = None) -> None:
        super().__init__(parent)
        self._elapsed = QElapsedTimer()
        self._elapsed.start()
        self._next_handle_id = 1
        self._live_timers: Dict[int, QTimer] = {}

    def now_ms(self) -> float:
        return float(self._elapsed.nsecsElapsed()) / 1_000_000.0

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TimerHandle:
        delay_value = max(0, int(round(float(delay_ms))))
        handle = TimerHandle(handle_id=self._next_handle_id, due_ms=self.now_ms() + delay_value)
        self._next_handle_id += 1

        timer = QTimer(self)
        timer.setSingleShot(True)
        timer.setInterval(delay_value)

        def on_timeout() -> None:
            self._release(handle)
            if handle.cancelled or handle.fired:
                return
            handle.fired = True
            callback()

        timer.timeout.connect(on_timeout)
        handle.backend_token = timer
        self._live_timers[handle.handle_id] = timer
        timer.start()
        return handle

    def cancel(self, handle: Optional[TimerHandle]) -> None:
        if handle is None or not handle.is_live():
            return
        handle.cancelled = True
        self._release(handle)

    def cancel_all(self) -> None:
        for timer in list(self._live_timers.values()):
            timer.stop()
            timer.deleteLater()
        self._live_timers.clear()

    def live_count(self) -> int:
        return len(self._live_timers)

    def _release(self, handle: TimerHandle) -> None:
        timer = self._live_timers.pop(handle.handle_id, None)
        if timer is None:
            return
        timer.stop()
        timer.deleteLater()

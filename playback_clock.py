# -*- coding: utf-8 -*-
########################
# playback_clock.py
########################
# Purpose:
# - Single source of truth for virtual (recording) time during replay.
# - Converts host wall-clock time into virtual time using the playback speed and state.
#
# Design notes:
# - No Qt usage. Keep this module pure and deterministic.
# - Virtual time only advances while PLAYING: anchor_virtual + (now - anchor_wall) * speed.
# - Every state or speed change re-anchors first, so already elapsed time is never rescaled.
# - Virtual time is clamped to [0, duration].
# - PlaybackScheduler owns the clock and passes it explicitly to anything that reads it.
#
########################
# Interfaces:
# Public classes:
# - class PlaybackClock
#   - __init__(now_ms: Callable[[], float], *, duration_ms: float, speed: float = 1.0)
#   - state() -> PlayerState
#   - speed() -> float
#   - duration_ms() -> int
#   - virtual_time_ms() -> float
#   - set_state(state: PlayerState) -> None
#   - set_speed(speed: float) -> None
#   - set_virtual_time_ms(time_ms: float) -> None
#   - snapshot(active_stream: Optional[str] = None) -> PlaybackSnapshot
#
# Inputs:
# - now_ms callable from the TimerFacility.
#
# Outputs:
# - Virtual time and PlaybackSnapshot for the scheduler and transport notifications.
#
########################

from __future__ import annotations

from typing import Callable, Optional

from replay_models import PlaybackSnapshot, PlayerState


class PlaybackClock:
    def __init__(self, now_ms: Callable[[], float], *, duration_ms: float, speed: float = 1.0) -> None:
        if float(speed) <= 0.0:
            raise ValueError(f"Playback speed must be positive, got {speed}")
        self._now_ms = now_ms
        self._duration_ms = max(0, int(duration_ms))
        self._speed = float(speed)
        self._state = PlayerState.UNSTARTED
        self._anchor_virtual_ms = 0.0
        self._anchor_wall_ms = float(now_ms())

    def state(self) -> PlayerState:
        return self._state

    def speed(self) -> float:
        return float(self._speed)

    def duration_ms(self) -> int:
        return int(self._duration_ms)

    def virtual_time_ms(self) -> float:
        if self._state != PlayerState.PLAYING:
            return float(self._anchor_virtual_ms)
        elapsed_wall_ms = max(0.0, float(self._now_ms()) - self._anchor_wall_ms)
        return self._clamp(self._anchor_virtual_ms + elapsed_wall_ms * self._speed)

    def set_state(self, state: PlayerState) -> None:
        self._reanchor()
        self._state = state

    def set_speed(self, speed: float) -> None:
        speed_value = float(speed)
        if speed_value <= 0.0:
            raise ValueError(f"Playback speed must be positive, got {speed}")
        self._reanchor()
        self._speed = speed_value

    def set_virtual_time_ms(self, time_ms: float) -> None:
        self._anchor_virtual_ms = self._clamp(float(time_ms))
        self._anchor_wall_ms = float(self._now_ms())

    def snapshot(self, active_stream: Optional[str] = None) -> PlaybackSnapshot:
        return PlaybackSnapshot(
            state=self._state,
            virtual_time_ms=self.virtual_time_ms(),
            speed=self.speed(),
            duration_ms=self.duration_ms(),
            active_stream=active_stream,
        )

    def _reanchor(self) -> None:
        self.set_virtual_time_ms(self.virtual_time_ms())

    def _clamp(self, time_ms: float) -> float:
        return min(max(0.0, float(time_ms)), float(self._duration_ms))

# -*- coding: utf-8 -*-
########################
# player_bridge.py
########################
# Purpose:
# - Qt bridge between PlaybackScheduler and transport controls (play/pause, seek bar, speed menu).
# - Re-emits scheduler notifications as Qt signals and publishes periodic time updates while playing.
#
########################
# Key Logic:
# - The scheduler stays Qt free; this QObject subscribes as a listener and forwards snapshots.
# - timeUpdated is driven by a repeating QTimer that only runs while the clock is PLAYING.
# - Transport helpers mirror the recorded player's controls: skip by a fixed interval,
#   cycle through a fixed speed list, m:ss time labels.
#
########################
# Interfaces:
# Public functions:
# - format_playback_time(time_ms: float) -> str
#
# Public classes:
# - class ReplayPlayerBridge(PyQt6.QtCore.QObject)
#   - Signals:
#     - stateChanged(PlaybackSnapshot)
#     - timeUpdated(float)
#     - playbackEnded(PlaybackSnapshot)
#   - Methods:
#     - scheduler() -> PlaybackScheduler
#     - play() -> None
#     - pause() -> None
#     - toggle_play_pause() -> None
#     - seek(time_ms: float) -> None
#     - set_speed(speed: float) -> None
#     - cycle_speed() -> float
#     - skip_forward() -> None
#     - skip_backward() -> None
#     - time_label() -> str
#     - shutdown() -> None
#
# Inputs:
# - Transport commands from UI widgets or the command line entrypoint.
#
# Outputs:
# - Qt signals for UI subscribers.
#
########################

from __future__ import annotations

from typing import List, Optional, Sequence

from PyQt6.QtCore import QObject, QTimer, pyqtSignal

from playback_scheduler import PlaybackScheduler
from replay_models import PlaybackSnapshot, PlayerState


def format_playback_time(time_ms: float) -> str:
    total_seconds = max(0, int(float(time_ms) // 1000))
    minutes = total_seconds // 60
    seconds = total_seconds % 60
    return f"{minutes}:{seconds:02d}"


class ReplayPlayerBridge(QObject):
    stateChanged = pyqtSignal(object)
    timeUpdated = pyqtSignal(float)
    playbackEnded = pyqtSignal(object)

    def __init__(
        self,
        scheduler: PlaybackScheduler,
        *,
        available_speeds: Sequence[float] = (0.25, 0.5, 1.0, 1.25, 1.5, 2.0),
        tick_interval_ms: int = 100,
        parent: Optional[QObject] = None,
    ) -> None:
        super().__init__(parent)
        self._scheduler = scheduler
        self._available_speeds: List[float] = sorted(float(speed) for speed in available_speeds)
        self._last_state: Optional[PlayerState] = None

        self._tick_timer = QTimer(self)
        self._tick_timer.setInterval(int(max(10, tick_interval_ms)))
        self._tick_timer.timeout.connect(self._emit_time)

        self._scheduler.add_listener(self._on_snapshot)

    def scheduler(self) -> PlaybackScheduler:
        return self._scheduler

    def play(self) -> None:
        self._scheduler.play()

    def pause(self) -> None:
        self._scheduler.pause()

    def toggle_play_pause(self) -> None:
        self._scheduler.toggle_play_pause()

    def seek(self, time_ms: float) -> None:
        self._scheduler.seek(float(time_ms))

    def set_speed(self, speed: float) -> None:
        self._scheduler.set_speed(float(speed))

    def cycle_speed(self) -> float:
        current = self._scheduler.clock().speed()
        next_speed = self._available_speeds[0]
        for speed in self._available_speeds:
            if speed > current:
                next_speed = speed
                break
        self._scheduler.set_speed(next_speed)
        return next_speed

    def skip_forward(self) -> None:
        self._scheduler.skip_forward()

    def skip_backward(self) -> None:
        self._scheduler.skip_backward()

    def time_label(self) -> str:
        clock = self._scheduler.clock()
        return f"{format_playback_time(clock.virtual_time_ms())} / {format_playback_time(clock.duration_ms())}"

    def shutdown(self) -> None:
        self._tick_timer.stop()
        self._scheduler.remove_listener(self._on_snapshot)
        self._scheduler.teardown()

    def _on_snapshot(self, snapshot: PlaybackSnapshot) -> None:
        if snapshot.state == PlayerState.PLAYING:
            if not self._tick_timer.isActive():
                self._tick_timer.start()
        elif self._tick_timer.isActive():
            self._tick_timer.stop()

        self.stateChanged.emit(snapshot)
        self.timeUpdated.emit(float(snapshot.virtual_time_ms))

        if snapshot.state == PlayerState.ENDED and self._last_state != PlayerState.ENDED:
            self.playbackEnded.emit(snapshot)
        self._last_state = snapshot.state

    def _emit_time(self) -> None:
        self.timeUpdated.emit(float(self._scheduler.clock().virtual_time_ms()))

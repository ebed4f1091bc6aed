# -*- coding: utf-8 -*-
########################
# playback_scheduler.py
########################
# Purpose:
# - Replay recorded snapshot steps against live editor buffers in real time.
# - Owns the PlaybackClock, the per-stream FileState and every pending deferred action.
#
# Key Logic:
# - Priming creates each stream's buffer from its first snapshot, bypassing throttling.
# - While PLAYING at virtual time T and speed S, every step after a stream's cursor fires after
#   wall delay max(0, time_start - T) / S. A fired step goes through the stream's Throttle, which
#   diffs against the stream's current content and applies one range edit.
# - Every transition cancels all pending actions before rescheduling. Each reschedule bumps a
#   per-stream generation; a callback from an older generation is a no-op.
# - Pause, speed change and buffering flush the throttles so the buffer converges to the last
#   requested text. Seek and teardown drop them and resync from the timeline instead.
# - An edit that does not fit the buffer, or leaves the buffer different from the target text,
#   is repaired with a full replace. Playback continues.
#
# Design notes:
# - No Qt usage. Timing comes from an injected TimerFacility, the editor from a BufferPort.
# - Single threaded. Timer callbacks are the only re-entry points.
#
########################
# Interfaces:
# Public dataclasses:
# - FileState(current_content: str, language: str, buffer_handle: object, cursor: Optional[ChangeStep])
#
# Public classes:
# - class PlaybackScheduler
#   - __init__(timeline: TimelineModel, buffer_port: BufferPort, timer_facility: TimerFacility, *,
#              throttle_interval_ms: float = 50.0, initial_speed: float = 1.0, follow_edits: bool = True,
#              skip_interval_ms: float = 5000.0)
#   - prime() -> None
#   - play() -> None
#   - pause() -> None
#   - toggle_play_pause() -> None
#   - seek(time_ms: float) -> None
#   - skip(delta_ms: float) -> None
#   - skip_forward() -> None
#   - skip_backward() -> None
#   - set_speed(speed: float) -> None
#   - set_buffering(is_buffering: bool) -> None
#   - set_active_stream(stream: str) -> None
#   - teardown() -> None
#   - add_listener(listener: Callable[[PlaybackSnapshot], None]) -> None
#   - remove_listener(listener: Callable[[PlaybackSnapshot], None]) -> None
#   - snapshot() -> PlaybackSnapshot
#   - clock() -> PlaybackClock
#   - current_content(stream: str) -> str
#   - cursor_for(stream: str) -> Optional[ChangeStep]
#   - pending_action_count() -> int
#
# Inputs:
# - TimelineModel loaded by timeline_model.py.
# - Transport commands (seek, set_speed, toggle_play_pause).
#
# Outputs:
# - BufferPort.create_buffer / apply_edit / set_active_stream calls.
# - PlaybackSnapshot notifications to listeners on every transition.
#
########################

from __future__ import annotations

from dataclasses import dataclass
from functools import partial
import logging
from typing import Callable, Dict, List, Optional

import coordinate_translator
import diff_synth
from buffer_port import BufferPort
from playback_clock import PlaybackClock
from replay_models import ChangeStep, PlaybackSnapshot, PlayerState
from throttle import Throttle
from timeline_model import TimelineModel
from timer_facility import TimerFacility, TimerHandle

LOGGER = logging.getLogger(__name__)

_RUNNING_STATES = (PlayerState.PLAYING, PlayerState.BUFFERING)


@dataclass
class FileState:
    current_content: str
    language: str
    buffer_handle: object = None
    cursor: Optional[ChangeStep] = None


class PlaybackScheduler:
    def __init__(
        self,
        timeline: TimelineModel,
        buffer_port: BufferPort,
        timer_facility: TimerFacility,
        *,
        throttle_interval_ms: float = 50.0,
        initial_speed: float = 1.0,
        follow_edits: bool = True,
        skip_interval_ms: float = 5000.0,
    ) -> None:
        self._timeline = timeline
        self._buffer = buffer_port
        self._timers = timer_facility
        self._follow_edits = bool(follow_edits)
        self._skip_interval_ms = max(0.0, float(skip_interval_ms))

        self._clock = PlaybackClock(
            timer_facility.now_ms,
            duration_ms=timeline.total_duration_ms(),
            speed=float(initial_speed),
        )

        self._files: Dict[str, FileState] = {}
        self._throttles: Dict[str, Throttle] = {}
        self._pending: Dict[str, Dict[int, TimerHandle]] = {}
        self._generations: Dict[str, int] = {}
        for stream in timeline.streams():
            self._throttles[stream] = Throttle(
                partial(self._apply_target, stream),
                throttle_interval_ms,
                timer_facility,
            )
            self._pending[stream] = {}
            self._generations[stream] = 0

        self._end_handle: Optional[TimerHandle] = None
        self._end_generation = 0

        self._active_stream: Optional[str] = None
        self._listeners: List[Callable[[PlaybackSnapshot], None]] = []
        self._is_primed = False
        self._is_torn_down = False

    # Queries

    def clock(self) -> PlaybackClock:
        return self._clock

    def state(self) -> PlayerState:
        return self._clock.state()

    def active_stream(self) -> Optional[str]:
        return self._active_stream

    def current_content(self, stream: str) -> str:
        return self._file_state(stream).current_content

    def cursor_for(self, stream: str) -> Optional[ChangeStep]:
        return self._file_state(stream).cursor

    def pending_action_count(self) -> int:
        count = sum(len(handles) for handles in self._pending.values())
        if self._end_handle is not None:
            count += 1
        return count

    def snapshot(self) -> PlaybackSnapshot:
        return self._clock.snapshot(active_stream=self._active_stream)

    def add_listener(self, listener: Callable[[PlaybackSnapshot], None]) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: Callable[[PlaybackSnapshot], None]) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    # Commands

    def prime(self) -> None:
        self._ensure_live()
        if self._is_primed:
            return

        for stream in self._timeline.streams():
            first = self._timeline.first_step(stream)
            if first is None:
                continue
            buffer_handle = self._buffer.create_buffer(stream, first.text, first.language)
            self._files[stream] = FileState(
                current_content=first.text,
                language=first.language,
                buffer_handle=buffer_handle,
                cursor=first,
            )

        streams = self._timeline.streams()
        if streams:
            self._active_stream = streams[0]
            self._buffer.set_active_stream(streams[0])

        self._is_primed = True
        LOGGER.debug("Primed %d stream(s)", len(self._files))

    def play(self) -> None:
        self._ensure_live()
        self.prime()

        state = self._clock.state()
        if state == PlayerState.PLAYING:
            return

        if state == PlayerState.ENDED:
            self._cancel_actions()
            self._cancel_throttles()
            self._clock.set_virtual_time_ms(0.0)
            self._resync_to(0.0)

        self._cancel_actions()
        self._clock.set_state(PlayerState.PLAYING)
        self._schedule_from(self._clock.virtual_time_ms())
        self._notify()

    def pause(self) -> None:
        self._ensure_live()
        if self._clock.state() not in _RUNNING_STATES:
            return
        self._flush_throttles()
        self._cancel_actions()
        self._clock.set_state(PlayerState.PAUSED)
        self._notify()

    def toggle_play_pause(self) -> None:
        if self._clock.state() in _RUNNING_STATES:
            self.pause()
        else:
            self.play()

    def seek(self, time_ms: float) -> None:
        self._ensure_live()
        self.prime()

        prior_state = self._clock.state()
        resume_state = PlayerState.PLAYING if prior_state in _RUNNING_STATES else PlayerState.PAUSED

        self._cancel_actions()
        self._cancel_throttles()
        self._clock.set_state(PlayerState.SEEKING)
        self._clock.set_virtual_time_ms(float(time_ms))
        self._notify()

        target_time_ms = self._clock.virtual_time_ms()
        self._resync_to(target_time_ms)

        self._clock.set_state(resume_state)
        if resume_state == PlayerState.PLAYING:
            self._schedule_from(target_time_ms)
        self._notify()

    def skip(self, delta_ms: float) -> None:
        self.seek(self._clock.virtual_time_ms() + float(delta_ms))

    def skip_forward(self) -> None:
        self.skip(self._skip_interval_ms)

    def skip_backward(self) -> None:
        self.skip(-self._skip_interval_ms)

    def set_speed(self, speed: float) -> None:
        self._ensure_live()
        speed_value = float(speed)
        if speed_value <= 0.0:
            raise ValueError(f"Playback speed must be positive, got {speed}")
        if speed_value == self._clock.speed():
            return

        if self._clock.state() == PlayerState.PLAYING:
            self._flush_throttles()
            self._cancel_actions()
            self._clock.set_speed(speed_value)
            self._schedule_from(self._clock.virtual_time_ms())
        else:
            self._clock.set_speed(speed_value)
        self._notify()

    def set_buffering(self, is_buffering: bool) -> None:
        self._ensure_live()
        state = self._clock.state()
        if is_buffering and state == PlayerState.PLAYING:
            self._flush_throttles()
            self._cancel_actions()
            self._clock.set_state(PlayerState.BUFFERING)
            self._notify()
        elif not is_buffering and state == PlayerState.BUFFERING:
            self._cancel_actions()
            self._clock.set_state(PlayerState.PLAYING)
            self._schedule_from(self._clock.virtual_time_ms())
            self._notify()

    def set_active_stream(self, stream: str) -> None:
        self._ensure_live()
        self.prime()
        self._file_state(stream)
        if self._switch_active_stream(str(stream)):
            self._notify()

    def teardown(self) -> None:
        if self._is_torn_down:
            return
        self._cancel_actions()
        self._cancel_throttles()
        self._listeners.clear()
        self._is_torn_down = True

    # Scheduling

    def _schedule_from(self, time_ms: float) -> None:
        speed = self._clock.speed()
        for stream in self._timeline.streams():
            file_state = self._files.get(stream)
            if file_state is None:
                continue
            cursor = file_state.cursor
            search_from = cursor.time_start if cursor is not None else 0
            generation = self._generations[stream]
            pending = self._pending[stream]

            for step in self._timeline.upcoming_from(search_from, stream):
                if cursor is not None and step.sequence <= cursor.sequence:
                    continue
                delay_ms = max(0.0, float(step.time_start) - float(time_ms)) / speed
                pending[step.sequence] = self._timers.call_later(
                    delay_ms, partial(self._on_step_due, stream, step, generation)
                )

        end_delay_ms = max(0.0, float(self._clock.duration_ms()) - float(time_ms)) / speed
        self._end_handle = self._timers.call_later(end_delay_ms, partial(self._on_end_due, self._end_generation))

    def _cancel_actions(self) -> None:
        for stream, pending in self._pending.items():
            self._generations[stream] += 1
            for handle in pending.values():
                self._timers.cancel(handle)
            pending.clear()
        self._end_generation += 1
        self._timers.cancel(self._end_handle)
        self._end_handle = None

    def _flush_throttles(self) -> None:
        for throttle in self._throttles.values():
            throttle.flush()

    def _cancel_throttles(self) -> None:
        for throttle in self._throttles.values():
            throttle.cancel()

    def _on_step_due(self, stream: str, step: ChangeStep, generation: int) -> None:
        if self._is_torn_down or generation != self._generations.get(stream):
            LOGGER.debug("Dropping stale step %d for %s (generation %d)", step.sequence, stream, generation)
            return
        self._pending[stream].pop(step.sequence, None)

        file_state = self._files[stream]
        if file_state.cursor is not None and step.sequence <= file_state.cursor.sequence:
            return
        file_state.cursor = step
        self._throttles[stream].call(step.text, True)

    def _on_end_due(self, generation: int) -> None:
        if self._is_torn_down or generation != self._end_generation:
            LOGGER.debug("Dropping stale end-of-timeline action (generation %d)", generation)
            return
        self._end_handle = None

        for stream, file_state in self._files.items():
            stream_steps = self._timeline.steps_for(stream)
            last_step = stream_steps[-1] if stream_steps else None
            if last_step is None:
                continue
            if file_state.cursor is None or file_state.cursor.sequence != last_step.sequence:
                file_state.cursor = last_step
                self._throttles[stream].call(last_step.text, False)

        self._flush_throttles()
        self._cancel_actions()
        self._clock.set_state(PlayerState.ENDED)
        self._clock.set_virtual_time_ms(self._clock.duration_ms())
        self._notify()

    def _resync_to(self, time_ms: float) -> None:
        for stream in self._timeline.streams():
            file_state = self._files.get(stream)
            if file_state is None:
                continue
            step = (
                self._timeline.active_step_at(time_ms, stream)
                or self._timeline.latest_step_at(time_ms, stream)
                or self._timeline.first_step(stream)
            )
            if step is None:
                continue
            file_state.cursor = step
            self._throttles[stream].call(step.text, False)

    # Buffer mutation

    def _apply_target(self, stream: str, target_text: str, follow: bool) -> None:
        file_state = self._files[stream]
        descriptor = diff_synth.diff_texts(file_state.current_content, target_text)
        if descriptor is None:
            return

        if follow and self._follow_edits and stream != self._active_stream:
            self._switch_active_stream(stream)

        descriptor = coordinate_translator.widen_to_line_terminators(descriptor)
        try:
            text_range = coordinate_translator.to_range(
                descriptor.range_offset,
                descriptor.range_length,
                descriptor.original_text,
            )
            coordinate_translator.range_to_offsets(text_range, self._buffer.get_value(stream))
        except coordinate_translator.CoordinateOutOfRangeError as exception:
            LOGGER.warning("Edit for %s does not fit the buffer (%s), replacing the whole buffer", stream, exception)
            self._replace_wholesale(stream, target_text)
            return

        self._buffer.apply_edit(stream, text_range, descriptor.range_text, False)
        if self._buffer.get_value(stream) != target_text:
            LOGGER.warning("Buffer for %s diverged from the recorded text, replacing the whole buffer", stream)
            self._replace_wholesale(stream, target_text)
            return

        file_state.current_content = target_text

    def _replace_wholesale(self, stream: str, text: str) -> None:
        buffer_value = self._buffer.get_value(stream)
        self._buffer.apply_edit(stream, coordinate_translator.full_range(buffer_value), text, True)
        self._files[stream].current_content = text

    def _switch_active_stream(self, stream: str) -> bool:
        is_changed = stream != self._active_stream
        if is_changed:
            self._active_stream = stream
            self._buffer.set_active_stream(stream)

        # The visible buffer shows the latest replayed content, never a replay of the history.
        file_state = self._files[stream]
        if self._buffer.get_value(stream) != file_state.current_content:
            LOGGER.info("Resynchronizing %s to its latest replayed content", stream)
            self._replace_wholesale(stream, file_state.current_content)
        return is_changed

    # Helpers

    def _file_state(self, stream: str) -> FileState:
        file_state = self._files.get(str(stream))
        if file_state is None:
            raise KeyError(f"Unknown stream {stream!r}")
        return file_state

    def _ensure_live(self) -> None:
        if self._is_torn_down:
            raise RuntimeError("PlaybackScheduler has been torn down")

    def _notify(self) -> None:
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            listener(snapshot)

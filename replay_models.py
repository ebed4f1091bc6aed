# -*- coding: utf-8 -*-
########################
# replay_models.py
########################
# Purpose:
# - Core data models for the replay pipeline.
# - Defines recorded snapshot steps, edit descriptors, editor ranges and playback state.
#
# Design notes:
# - Keep these models stable. Prefer extending with new optional fields rather than breaking changes.
# - No Qt usage. These are plain dataclasses.
# - Times are milliseconds on the recording's virtual timeline.
#
########################
# Interfaces:
# Public enums:
# - class PlayerState(enum.Enum): UNSTARTED | ENDED | PLAYING | PAUSED | BUFFERING | SEEKING
#
# Public dataclasses:
# - ChangeStep(sequence: int, time_start: int, time_end: int, file: str, text: str, language: str)
# - EditDescriptor(range_offset: int, range_length: int, range_text: str, original_text: str, target_text: str)
# - AddressableRange(start_line: int, start_column: int, end_line: int, end_column: int)
# - PlaybackSnapshot(state: PlayerState, virtual_time_ms: float, speed: float, duration_ms: int,
#                    active_stream: Optional[str])
#
# Inputs/Outputs:
# - These types are exchanged between TimelineModel, diff_synth, coordinate_translator,
#   PlaybackScheduler and the buffer and transport collaborators.
#
########################

from __future__ import annotations

from dataclasses import dataclass
import enum
from typing import Optional


class PlayerState(enum.Enum):
    # Codes follow the recorded player's transport states.
    UNSTARTED = -1
    ENDED = 0
    PLAYING = 1
    PAUSED = 2
    BUFFERING = 3
    SEEKING = 5


@dataclass(frozen=True)
class ChangeStep:
    sequence: int
    time_start: int
    time_end: int
    file: str
    text: str
    language: str


@dataclass(frozen=True)
class EditDescriptor:
    range_offset: int
    range_length: int
    range_text: str
    original_text: str
    target_text: str

    def range_end(self) -> int:
        return int(self.range_offset) + int(self.range_length)


@dataclass(frozen=True)
class AddressableRange:
    start_line: int
    start_column: int
    end_line: int
    end_column: int

    def is_empty(self) -> bool:
        return self.start_line == self.end_line and self.start_column == self.end_column


@dataclass(frozen=True)
class PlaybackSnapshot:
    state: PlayerState
    virtual_time_ms: float
    speed: float
    duration_ms: int
    active_stream: Optional[str] = None

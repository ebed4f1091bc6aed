# -*- coding: utf-8 -*-
########################
# timeline_model.py
########################
# Purpose:
# - Load recorded snapshot steps and organize them into per-file streams.
# - Answer point-in-time and range queries used by the PlaybackScheduler.
#
# Design notes:
# - No Qt usage. Pure data logic.
# - Loading is strict: every record is validated with pydantic and the stream ordering is checked.
#   Any violation raises TimelineParseError and playback must not start.
# - Steps are never mutated after load. Query results are frozen ChangeStep objects.
# - Stream order is the order in which each file first appears in the input.
#
########################
# Interfaces:
# Public exceptions:
# - class TimelineParseError(ValueError)
#
# Public functions:
# - language_for_path(file_path: str) -> str
# - load_timeline_json(json_text: Union[str, bytes]) -> TimelineModel
# - load_timeline_file(timeline_path: pathlib.Path) -> TimelineModel
#
# Public classes:
# - class TimelineModel
#   - from_records(records: Sequence[dict]) -> TimelineModel
#   - streams() -> list[str]
#   - steps_for(stream: str) -> tuple[ChangeStep, ...]
#   - first_step(stream: str) -> Optional[ChangeStep]
#   - language_for(stream: str) -> str
#   - total_duration_ms() -> int
#   - active_step_at(time_ms: float, stream: Optional[str] = None) -> Optional[ChangeStep]
#   - latest_step_at(time_ms: float, stream: str) -> Optional[ChangeStep]
#   - upcoming_from(time_ms: float, stream: Optional[str] = None) -> Iterable[ChangeStep]
#
# Inputs:
# - JSON array of {"sequence", "timeStart", "timeEnd", "file", "text", "language"} records.
#
# Outputs:
# - ChangeStep views for scheduling and seeking.
#
########################

from __future__ import annotations

import bisect
import json
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from replay_models import ChangeStep


class TimelineParseError(ValueError):
    """Raised when recorded timeline data is malformed or structurally invalid."""


_LANGUAGE_BY_EXTENSION = {
    "js": "javascript",
    "jsx": "javascript",
    "ts": "typescript",
    "tsx": "typescript",
    "html": "html",
    "css": "css",
    "json": "json",
    "md": "markdown",
    "py": "python",
}


def language_for_path(file_path: str) -> str:
    """Guess the editor language from a file extension, "auto" when unknown."""
    name = str(file_path or "").rsplit("/", 1)[-1]
    if "." not in name:
        return "auto"
    extension = name.rsplit(".", 1)[-1].strip().lower()
    return _LANGUAGE_BY_EXTENSION.get(extension, "auto")


class ChangeRecord(BaseModel):
    model_config = ConfigDict(strict=True, populate_by_name=True, extra="ignore", frozen=True)

    sequence: int
    time_start: int = Field(alias="timeStart", ge=0)
    time_end: int = Field(alias="timeEnd", ge=0)
    file: str = Field(min_length=1)
    text: str
    language: str

    def to_step(self) -> ChangeStep:
        language_text = self.language.strip()
        if not language_text or language_text.lower() == "auto":
            language_text = language_for_path(self.file)
        return ChangeStep(
            sequence=int(self.sequence),
            time_start=int(self.time_start),
            time_end=int(self.time_end),
            file=str(self.file),
            text=str(self.text),
            language=language_text,
        )


class _UpcomingSteps:
    """Restartable view over a sorted step list starting at a fixed index."""

    def __init__(self, steps: Sequence[ChangeStep], start_index: int) -> None:
        self._steps = steps
        self._start_index = int(start_index)

    def __iter__(self) -> Iterator[ChangeStep]:
        for index in range(self._start_index, len(self._steps)):
            yield self._steps[index]


class TimelineModel:
    def __init__(self, steps: Sequence[ChangeStep]) -> None:
        self._streams: Dict[str, Tuple[ChangeStep, ...]] = {}
        grouped: Dict[str, List[ChangeStep]] = {}
        for step in steps:
            grouped.setdefault(step.file, []).append(step)

        for stream, stream_steps in grouped.items():
            _validate_stream_order(stream, stream_steps)
            self._streams[stream] = tuple(stream_steps)

        self._stream_starts: Dict[str, List[int]] = {
            stream: [step.time_start for step in stream_steps] for stream, stream_steps in self._streams.items()
        }

        stream_rank = {stream: rank for rank, stream in enumerate(self._streams.keys())}
        self._all_steps: Tuple[ChangeStep, ...] = tuple(
            sorted(steps, key=lambda item: (item.time_start, item.sequence, stream_rank[item.file]))
        )
        self._all_starts: List[int] = [step.time_start for step in self._all_steps]
        self._timeline_order: Tuple[ChangeStep, ...] = tuple(steps)

        self._duration_ms = max((step.time_end for step in self._all_steps), default=0)

    @classmethod
    def from_records(cls, records: Sequence[Any]) -> "TimelineModel":
        steps: List[ChangeStep] = []
        for index, record in enumerate(records):
            if not isinstance(record, dict):
                raise TimelineParseError(f"Record {index} must be a JSON object")
            try:
                parsed = ChangeRecord.model_validate(record)
            except ValidationError as exception:
                raise TimelineParseError(f"Record {index} is invalid:\n{exception}") from exception
            if parsed.time_start > parsed.time_end:
                raise TimelineParseError(
                    f"Record {index} has timeStart {parsed.time_start} after timeEnd {parsed.time_end}"
                )
            steps.append(parsed.to_step())
        return cls(steps)

    def streams(self) -> List[str]:
        return list(self._streams.keys())

    def steps_for(self, stream: str) -> Tuple[ChangeStep, ...]:
        return self._streams.get(str(stream), ())

    def first_step(self, stream: str) -> Optional[ChangeStep]:
        stream_steps = self.steps_for(stream)
        return stream_steps[0] if stream_steps else None

    def language_for(self, stream: str) -> str:
        first = self.first_step(stream)
        if first is None:
            return language_for_path(stream)
        return first.language

    def total_duration_ms(self) -> int:
        return int(self._duration_ms)

    def active_step_at(self, time_ms: float, stream: Optional[str] = None) -> Optional[ChangeStep]:
        if stream is None:
            candidates: Sequence[ChangeStep] = self._timeline_order
        else:
            candidates = self.steps_for(stream)

        time_value = float(time_ms)
        for step in candidates:
            if step.time_start <= time_value < step.time_end:
                return step
        return None

    def latest_step_at(self, time_ms: float, stream: str) -> Optional[ChangeStep]:
        stream_steps = self.steps_for(stream)
        starts = self._stream_starts.get(str(stream), [])
        index = bisect.bisect_right(starts, float(time_ms)) - 1
        if index < 0:
            return None
        return stream_steps[index]

    def upcoming_from(self, time_ms: float, stream: Optional[str] = None) -> _UpcomingSteps:
        if stream is None:
            steps: Sequence[ChangeStep] = self._all_steps
            starts = self._all_starts
        else:
            steps = self.steps_for(stream)
            starts = self._stream_starts.get(str(stream), [])
        start_index = bisect.bisect_left(starts, float(time_ms))
        return _UpcomingSteps(steps, start_index)


def _validate_stream_order(stream: str, stream_steps: Sequence[ChangeStep]) -> None:
    previous: Optional[ChangeStep] = None
    for step in stream_steps:
        if previous is not None:
            if step.time_start < previous.time_start:
                raise TimelineParseError(
                    f"Stream {stream!r}: step {step.sequence} starts at {step.time_start} "
                    f"before step {previous.sequence} at {previous.time_start}"
                )
            if step.sequence <= previous.sequence:
                raise TimelineParseError(
                    f"Stream {stream!r}: sequence {step.sequence} does not increase after {previous.sequence}"
                )
        previous = step


def load_timeline_json(json_text: Union[str, bytes]) -> TimelineModel:
    try:
        parsed = json.loads(json_text)
    except (json.JSONDecodeError, UnicodeDecodeError, TypeError) as exception:
        raise TimelineParseError(f"Timeline is not valid JSON: {exception}") from exception

    if not isinstance(parsed, list):
        raise TimelineParseError("Timeline root must be a JSON array")

    return TimelineModel.from_records(parsed)


def load_timeline_file(timeline_path: Path) -> TimelineModel:
    resolved_path = Path(timeline_path)
    try:
        raw_text = resolved_path.read_text(encoding="utf-8")
    except UnicodeDecodeError as exception:
        raise TimelineParseError(f"Timeline file is not valid UTF-8: {resolved_path}. Error: {exception}") from exception
    except OSError as exception:
        raise TimelineParseError(f"Failed to read timeline file: {resolved_path}. Error: {exception}") from exception
    return load_timeline_json(raw_text)


def _run_unit_tests() -> None:
    records = [
        {"sequence": 1, "timeStart": 0, "timeEnd": 500, "file": "a.ts", "text": "a", "language": ""},
        {"sequence": 2, "timeStart": 100, "timeEnd": 900, "file": "b.css", "text": "b", "language": "css"},
        {"sequence": 3, "timeStart": 500, "timeEnd": 1000, "file": "a.ts", "text": "ab", "language": "typescript"},
    ]
    model = TimelineModel.from_records(records)
    assert model.streams() == ["a.ts", "b.css"]
    assert model.total_duration_ms() == 1000
    assert model.language_for("a.ts") == "typescript"

    active = model.active_step_at(700, "a.ts")
    assert active is not None and active.text == "ab"
    assert [step.sequence for step in model.upcoming_from(100)] == [2, 3]

    try:
        TimelineModel.from_records([{"sequence": 1, "timeStart": 0, "file": "x", "text": "", "language": ""}])
    except TimelineParseError:
        pass
    else:
        raise AssertionError("missing timeEnd must fail")


if __name__ == "__main__":
    _run_unit_tests()
    print("timeline_model.py: ok")

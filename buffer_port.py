# -*- coding: utf-8 -*-
########################
# buffer_port.py
########################
# Purpose:
# - Edit-apply contract between PlaybackScheduler and the editor buffer collaborator.
# - InMemoryBufferPort: reference implementation for headless replay and tests.
#
# Design notes:
# - No Qt usage. Editor widgets adapt themselves to BufferPort; the scheduler never sees them.
# - Ranges are 1-indexed line/column AddressableRange values (coordinate_translator.py).
# - force_full_replace=True means "replace the whole buffer with replacement_text"; the range
#   is informational in that case.
# - InMemoryBufferPort keeps an append-only log of applied edits so callers can check ordering.
#
########################
# Interfaces:
# Public dataclasses:
# - AppliedEdit(stream_id: str, text_range: AddressableRange, replacement_text: str, force_full_replace: bool)
#
# Public classes:
# - class BufferPort(Protocol)
#   - create_buffer(stream_id: str, initial_text: str, language: str) -> object
#   - apply_edit(stream_id: str, text_range: AddressableRange, replacement_text: str, force_full_replace: bool) -> None
#   - get_value(stream_id: str) -> str
#   - set_active_stream(stream_id: str) -> None
# - class InMemoryBufferPort
#   - BufferPort methods plus applied_edits(), active_stream(), language_for(), set_value()
#
########################

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol

import coordinate_translator
from replay_models import AddressableRange


@dataclass(frozen=True)
class AppliedEdit:
    stream_id: str
    text_range: AddressableRange
    replacement_text: str
    force_full_replace: bool


class BufferPort(Protocol):
    def create_buffer(self, stream_id: str, initial_text: str, language: str) -> object:
        ...

    def apply_edit(
        self,
        stream_id: str,
        text_range: AddressableRange,
        replacement_text: str,
        force_full_replace: bool,
    ) -> None:
        ...

    def get_value(self, stream_id: str) -> str:
        ...

    def set_active_stream(self, stream_id: str) -> None:
        ...


@dataclass
class _BufferRecord:
    text: str
    language: str
    version: int = 0


class InMemoryBufferPort:
    def __init__(self) -> None:
        self._buffers: Dict[str, _BufferRecord] = {}
        self._applied_edits: List[AppliedEdit] = []
        self._active_stream: Optional[str] = None

    def create_buffer(self, stream_id: str, initial_text: str, language: str) -> object:
        record = _BufferRecord(text=str(initial_text), language=str(language))
        self._buffers[str(stream_id)] = record
        return record

    def apply_edit(
        self,
        stream_id: str,
        text_range: AddressableRange,
        replacement_text: str,
        force_full_replace: bool,
    ) -> None:
        record = self._record(stream_id)
        if force_full_replace:
            record.text = str(replacement_text)
        else:
            record.text = coordinate_translator.apply_range(record.text, text_range, replacement_text)
        record.version += 1
        self._applied_edits.append(
            AppliedEdit(
                stream_id=str(stream_id),
                text_range=text_range,
                replacement_text=str(replacement_text),
                force_full_replace=bool(force_full_replace),
            )
        )

    def get_value(self, stream_id: str) -> str:
        return self._record(stream_id).text

    def set_value(self, stream_id: str, text: str) -> None:
        """Overwrite a buffer outside the replay, as a user typing in the editor would."""
        record = self._record(stream_id)
        record.text = str(text)
        record.version += 1

    def set_active_stream(self, stream_id: str) -> None:
        self._record(stream_id)
        self._active_stream = str(stream_id)

    def active_stream(self) -> Optional[str]:
        return self._active_stream

    def language_for(self, stream_id: str) -> str:
        return self._record(stream_id).language

    def applied_edits(self) -> List[AppliedEdit]:
        return list(self._applied_edits)

    def values(self) -> Dict[str, str]:
        return {stream_id: record.text for stream_id, record in self._buffers.items()}

    def _record(self, stream_id: str) -> _BufferRecord:
        record = self._buffers.get(str(stream_id))
        if record is None:
            raise KeyError(f"No buffer for stream {stream_id!r}")
        return record

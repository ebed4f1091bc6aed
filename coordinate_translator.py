# -*- coding: utf-8 -*-
########################
# coordinate_translator.py
########################
# Purpose:
# - Convert linear offset/length edits into 1-indexed line/column ranges for the editor buffer.
# - Provide the inverse mapping used by the in-memory buffer and by bounds checks.
#
# Design notes:
# - No Qt usage. Pure functions.
# - Every line owns its terminator ("\n" or "\r\n"); line starts are the offsets right after a terminator.
# - Boundary policy: an offset equal to a line start is column 1 of that line, never the end of
#   the previous line. An offset equal to len(text) is valid.
# - An offset between "\r" and "\n" cannot be addressed by line/column and is out of range.
# - Columns count Python str code points, not UTF-16 code units. "\U0001F600x" puts "x" at
#   column 2. A BufferPort backed by a UTF-16 editor model must convert columns itself.
# - Mixed terminators are fine: each line is measured with its own terminator. detect_line_ending()
#   only reports a file's convention (the first terminator found) for display; to_range never uses it.
#
########################
# Interfaces:
# Public exceptions:
# - class CoordinateOutOfRangeError(ValueError)
#
# Public functions:
# - detect_line_ending(text: str) -> str
# - to_range(offset: int, length: int, original: str) -> AddressableRange
# - range_to_offsets(text_range: AddressableRange, text: str) -> tuple[int, int]
# - apply_range(text: str, text_range: AddressableRange, replacement: str) -> str
# - full_range(text: str) -> AddressableRange
# - widen_to_line_terminators(descriptor: EditDescriptor) -> EditDescriptor
#
########################

from __future__ import annotations

import bisect
import re
from typing import List, Tuple

from replay_models import AddressableRange, EditDescriptor


class CoordinateOutOfRangeError(ValueError):
    """Raised when an offset or range does not fit the text it is applied to."""


_LINE_TERMINATOR_REGEX = re.compile(r"\r\n|\n")


def detect_line_ending(text: str) -> str:
    match = _LINE_TERMINATOR_REGEX.search(str(text))
    if match is None:
        return "\n"
    return match.group(0)


class _LineIndex:
    def __init__(self, text: str) -> None:
        self.text = str(text)
        self.starts: List[int] = [0]
        # Offset where each line's content ends (its terminator begins).
        self.content_ends: List[int] = []
        for match in _LINE_TERMINATOR_REGEX.finditer(self.text):
            self.content_ends.append(match.start())
            self.starts.append(match.end())
        self.content_ends.append(len(self.text))

    def position(self, offset: int) -> Tuple[int, int]:
        if offset < 0 or offset > len(self.text):
            raise CoordinateOutOfRangeError(f"Offset {offset} is outside text of length {len(self.text)}")
        line_index = bisect.bisect_right(self.starts, offset) - 1
        if offset > self.content_ends[line_index]:
            # Offset lands inside a two character terminator.
            raise CoordinateOutOfRangeError(f"Offset {offset} splits a line terminator")
        return line_index + 1, offset - self.starts[line_index] + 1

    def offset(self, line: int, column: int) -> int:
        if line < 1 or line > len(self.starts):
            raise CoordinateOutOfRangeError(f"Line {line} is outside text with {len(self.starts)} lines")
        line_index = line - 1
        line_length = self.content_ends[line_index] - self.starts[line_index]
        if column < 1 or column > line_length + 1:
            raise CoordinateOutOfRangeError(f"Column {column} is outside line {line} of length {line_length}")
        return self.starts[line_index] + column - 1


def to_range(offset: int, length: int, original: str) -> AddressableRange:
    start_offset = int(offset)
    end_offset = start_offset + int(length)
    if int(length) < 0:
        raise CoordinateOutOfRangeError(f"Negative range length {length}")

    index = _LineIndex(original)
    start_line, start_column = index.position(start_offset)
    if end_offset == start_offset:
        return AddressableRange(start_line, start_column, start_line, start_column)
    end_line, end_column = index.position(end_offset)
    return AddressableRange(start_line, start_column, end_line, end_column)


def range_to_offsets(text_range: AddressableRange, text: str) -> Tuple[int, int]:
    index = _LineIndex(text)
    start = index.offset(int(text_range.start_line), int(text_range.start_column))
    end = index.offset(int(text_range.end_line), int(text_range.end_column))
    if end < start:
        raise CoordinateOutOfRangeError(f"Range end {end} is before range start {start}")
    return start, end


def apply_range(text: str, text_range: AddressableRange, replacement: str) -> str:
    start, end = range_to_offsets(text_range, text)
    return text[:start] + str(replacement) + text[end:]


def full_range(text: str) -> AddressableRange:
    return to_range(0, len(text), text)


def widen_to_line_terminators(descriptor: EditDescriptor) -> EditDescriptor:
    original = descriptor.original_text
    start = int(descriptor.range_offset)
    end = descriptor.range_end()
    range_text = descriptor.range_text

    if 0 < start < len(original) and original[start - 1] == "\r" and original[start] == "\n":
        start -= 1
        range_text = "\r" + range_text
    if 0 < end < len(original) and original[end - 1] == "\r" and original[end] == "\n":
        end += 1
        range_text = range_text + "\n"

    if start == descriptor.range_offset and end == descriptor.range_end():
        return descriptor

    return EditDescriptor(
        range_offset=start,
        range_length=end - start,
        range_text=range_text,
        original_text=original,
        target_text=descriptor.target_text,
    )


def _run_unit_tests() -> None:
    text = "ab\ncd\n"
    assert to_range(0, 0, text) == AddressableRange(1, 1, 1, 1)
    # Offset 3 is the start of line 2, not the end of line 1.
    assert to_range(3, 0, text) == AddressableRange(2, 1, 2, 1)
    assert to_range(1, 3, text) == AddressableRange(1, 2, 2, 2)
    assert to_range(6, 0, text) == AddressableRange(3, 1, 3, 1)

    crlf = "ab\r\ncd"
    assert detect_line_ending(crlf) == "\r\n"
    assert to_range(4, 2, crlf) == AddressableRange(2, 1, 2, 3)
    assert apply_range(crlf, to_range(2, 2, crlf), " ") == "ab cd"

    try:
        to_range(3, 0, crlf)
    except CoordinateOutOfRangeError:
        pass
    else:
        raise AssertionError("offset inside CRLF must be rejected")


if __name__ == "__main__":
    _run_unit_tests()
    print("coordinate_translator.py: ok")

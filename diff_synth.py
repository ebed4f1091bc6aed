# -*- coding: utf-8 -*-
########################
# diff_synth.py
########################
# Purpose:
# - Compute the single contiguous edit that turns one full-text snapshot into the next.
#
# Design notes:
# - No Qt usage. Pure functions, no state kept between calls.
# - The window is the minimal contiguous span: the maximal common prefix and the maximal
#   common suffix are left untouched, everything in between is replaced as one range.
#   Unchanged text between disjoint change runs is part of the window, the consumer
#   applies one range replacement and not a list of hunks.
# - diff_texts never raises. A window that fails the round-trip self check is replaced by a
#   full-text replace.
#
########################
# Interfaces:
# Public functions:
# - diff_texts(original: str, target: str) -> Optional[EditDescriptor]
# - full_replace(original: str, target: str) -> EditDescriptor
# - apply_edit(text: str, descriptor: EditDescriptor) -> str
#
# Inputs:
# - Current buffer content and the next recorded snapshot.
#
# Outputs:
# - EditDescriptor consumed by coordinate_translator and PlaybackScheduler.
#
########################

from __future__ import annotations

import logging
from typing import Optional

from replay_models import EditDescriptor

LOGGER = logging.getLogger(__name__)

_CHUNK_SIZE = 4096


def _common_prefix_length(first: str, second: str) -> int:
    limit = min(len(first), len(second))
    index = 0
    # Skip equal chunks with slice comparison, then walk the last chunk per character.
    while index + _CHUNK_SIZE <= limit and first[index:index + _CHUNK_SIZE] == second[index:index + _CHUNK_SIZE]:
        index += _CHUNK_SIZE
    while index < limit and first[index] == second[index]:
        index += 1
    return index


def _common_suffix_length(first: str, second: str, limit: int) -> int:
    first_length = len(first)
    second_length = len(second)
    count = 0
    while (
        count + _CHUNK_SIZE <= limit
        and first[first_length - count - _CHUNK_SIZE:first_length - count]
        == second[second_length - count - _CHUNK_SIZE:second_length - count]
    ):
        count += _CHUNK_SIZE
    while count < limit and first[first_length - count - 1] == second[second_length - count - 1]:
        count += 1
    return count


def full_replace(original: str, target: str) -> EditDescriptor:
    return EditDescriptor(
        range_offset=0,
        range_length=len(original),
        range_text=str(target),
        original_text=str(original),
        target_text=str(target),
    )


def apply_edit(text: str, descriptor: EditDescriptor) -> str:
    start = int(descriptor.range_offset)
    end = start + int(descriptor.range_length)
    if start < 0 or end > len(text) or start > end:
        raise ValueError(f"Edit window [{start}, {end}) is outside text of length {len(text)}")
    return text[:start] + descriptor.range_text + text[end:]


def diff_texts(original: str, target: str) -> Optional[EditDescriptor]:
    original_text = str(original)
    target_text = str(target)
    if original_text == target_text:
        return None

    prefix_length = _common_prefix_length(original_text, target_text)
    suffix_limit = min(len(original_text), len(target_text)) - prefix_length
    suffix_length = _common_suffix_length(original_text, target_text, suffix_limit)

    descriptor = EditDescriptor(
        range_offset=prefix_length,
        range_length=len(original_text) - prefix_length - suffix_length,
        range_text=target_text[prefix_length:len(target_text) - suffix_length],
        original_text=original_text,
        target_text=target_text,
    )

    try:
        round_trip_ok = apply_edit(original_text, descriptor) == target_text
    except ValueError:
        round_trip_ok = False

    if not round_trip_ok:
        LOGGER.debug(
            "Edit window [%d, +%d) failed the round-trip check, using a full replace",
            descriptor.range_offset,
            descriptor.range_length,
        )
        return full_replace(original_text, target_text)

    return descriptor


def _run_unit_tests() -> None:
    assert diff_texts("same", "same") is None

    insertion = diff_texts("hello world", "hello brave world")
    assert insertion is not None
    assert (insertion.range_offset, insertion.range_length, insertion.range_text) == (6, 0, "brave ")

    deletion = diff_texts("abcdef", "abef")
    assert deletion is not None
    assert (deletion.range_offset, deletion.range_length, deletion.range_text) == (2, 2, "")

    disjoint = diff_texts("abc", "xyz")
    assert disjoint is not None
    assert (disjoint.range_offset, disjoint.range_length, disjoint.range_text) == (0, 3, "xyz")

    for first, second in [("aaa", "aa"), ("", "x"), ("x\n", "x\ny\n"), ("a1b2c", "a9b8c")]:
        descriptor = diff_texts(first, second)
        assert descriptor is not None
        assert apply_edit(first, descriptor) == second


if __name__ == "__main__":
    _run_unit_tests()
    print("diff_synth.py: ok")

from __future__ import annotations

import random

import pytest

import coordinate_translator
from coordinate_translator import (
    CoordinateOutOfRangeError,
    apply_range,
    detect_line_ending,
    full_range,
    range_to_offsets,
    to_range,
    widen_to_line_terminators,
)
from diff_synth import apply_edit, diff_texts
from replay_models import AddressableRange


def test_detects_line_ending_from_first_terminator():
    assert detect_line_ending("a\r\nb\n") == "\r\n"
    assert detect_line_ending("a\nb\r\n") == "\n"
    assert detect_line_ending("no terminator") == "\n"


def test_offset_at_line_boundary_belongs_to_next_line():
    text = "first\nsecond\n"
    assert to_range(6, 0, text) == AddressableRange(2, 1, 2, 1)
    # The terminator itself is still addressable as the end of line 1.
    assert to_range(5, 1, text) == AddressableRange(1, 6, 2, 1)


def test_zero_length_range_is_collapsed():
    text_range = to_range(3, 0, "abcdef")
    assert text_range.is_empty()
    assert text_range == AddressableRange(1, 4, 1, 4)


def test_end_of_text_offsets():
    assert to_range(0, 3, "abc") == AddressableRange(1, 1, 1, 4)
    assert to_range(4, 0, "abc\n") == AddressableRange(2, 1, 2, 1)
    assert to_range(0, 0, "") == AddressableRange(1, 1, 1, 1)


def test_multi_line_range_over_uneven_lines():
    text = "a\nlonger line\nxy\n"
    start = text.index("ger")
    end = text.index("y")
    assert to_range(start, end - start, text) == AddressableRange(2, 4, 3, 2)


def test_crlf_lines_count_both_terminator_characters():
    text = "ab\r\ncd\r\nef"
    assert to_range(4, 0, text) == AddressableRange(2, 1, 2, 1)
    assert to_range(8, 2, text) == AddressableRange(3, 1, 3, 3)


def test_columns_count_code_points():
    text = "\U0001F600x\n\U0001F600"
    assert to_range(1, 0, text) == AddressableRange(1, 2, 1, 2)
    assert to_range(3, 1, text) == AddressableRange(2, 1, 2, 2)
    assert range_to_offsets(AddressableRange(1, 2, 1, 3), text) == (1, 2)


def test_out_of_range_offsets_raise():
    with pytest.raises(CoordinateOutOfRangeError):
        to_range(5, 0, "abc")
    with pytest.raises(CoordinateOutOfRangeError):
        to_range(1, 5, "abc")
    with pytest.raises(CoordinateOutOfRangeError):
        to_range(3, 0, "ab\r\ncd")


def test_range_to_offsets_rejects_ranges_outside_text():
    with pytest.raises(CoordinateOutOfRangeError):
        range_to_offsets(AddressableRange(3, 1, 3, 1), "one line\n")
    with pytest.raises(CoordinateOutOfRangeError):
        range_to_offsets(AddressableRange(1, 1, 1, 20), "short")
    with pytest.raises(CoordinateOutOfRangeError):
        range_to_offsets(AddressableRange(1, 3, 1, 2), "short")


def test_full_range_covers_whole_text():
    text = "line one\r\nline two"
    assert range_to_offsets(full_range(text), text) == (0, len(text))
    assert apply_range(text, full_range(text), "new") == "new"


def test_widen_keeps_crlf_pairs_together():
    descriptor = diff_texts("a\r\nb", "a\nb")
    with pytest.raises(CoordinateOutOfRangeError):
        to_range(descriptor.range_offset, descriptor.range_length, descriptor.original_text)

    widened = widen_to_line_terminators(descriptor)
    assert (widened.range_offset, widened.range_length, widened.range_text) == (1, 2, "\n")
    assert apply_edit("a\r\nb", widened) == "a\nb"


def test_widen_leaves_safe_windows_unchanged():
    descriptor = diff_texts("a\r\nb", "a\r\nbc")
    assert widen_to_line_terminators(descriptor) is descriptor


def _apply_through_range(original: str, target: str) -> str:
    descriptor = widen_to_line_terminators(diff_texts(original, target))
    text_range = to_range(descriptor.range_offset, descriptor.range_length, original)
    by_range = apply_range(original, text_range, descriptor.range_text)
    by_offset = apply_edit(original, descriptor)
    assert by_range == by_offset
    return by_range


def test_offset_and_range_application_agree():
    pairs = [
        ("function a() {\n  return 1;\n}\n", "function a() {\n  return 2;\n}\n"),
        ("x\n", "x\ny\n"),
        ("x\ny\n", "x\n"),
        ("one\r\ntwo\r\n", "one\r\nthree\r\ntwo\r\n"),
        ("a\r\nb", "a\r\r\nb"),
        ("", "\n\n"),
    ]
    for original, target in pairs:
        assert _apply_through_range(original, target) == target


def test_random_texts_agree_between_offsets_and_ranges():
    generator = random.Random(99)
    alphabet = ["a", "b", "\n", "\r\n", " "]
    for _ in range(300):
        original = "".join(generator.choice(alphabet) for _ in range(generator.randint(0, 12)))
        target = "".join(generator.choice(alphabet) for _ in range(generator.randint(0, 12)))
        if original == target:
            continue
        assert _apply_through_range(original, target) == target


def test_inline_self_checks():
    coordinate_translator._run_unit_tests()

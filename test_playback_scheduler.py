from __future__ import annotations

import logging

import pytest

from buffer_port import InMemoryBufferPort
from playback_scheduler import PlaybackScheduler
from replay_models import PlayerState
from timeline_model import TimelineModel
from timer_facility import ManualTimerFacility


def _step(sequence, time_start, text, *, time_end=None, file="main.ts"):
    return {
        "sequence": sequence,
        "timeStart": time_start,
        "timeEnd": time_start + 100 if time_end is None else time_end,
        "file": file,
        "text": text,
        "language": "",
    }


def _make(records, *, honor_cancel=True, **scheduler_options):
    timeline = TimelineModel.from_records(records)
    facility = ManualTimerFacility(honor_cancel=honor_cancel)
    buffer_port = InMemoryBufferPort()
    scheduler = PlaybackScheduler(timeline, buffer_port, facility, **scheduler_options)
    snapshots = []
    scheduler.add_listener(snapshots.append)
    return scheduler, facility, buffer_port, snapshots


def _edit_texts(buffer_port, stream=None):
    return [
        edit.replacement_text
        for edit in buffer_port.applied_edits()
        if stream is None or edit.stream_id == stream
    ]


def test_priming_creates_every_buffer_from_first_snapshot():
    records = [
        _step(1, 0, "const a = 1;\n"),
        _step(2, 0, "body {}\n", file="style.css"),
        _step(3, 500, "const a = 2;\n"),
    ]
    scheduler, _facility, buffer_port, _snapshots = _make(records)
    scheduler.prime()
    scheduler.prime()

    assert buffer_port.values() == {"main.ts": "const a = 1;\n", "style.css": "body {}\n"}
    assert buffer_port.language_for("main.ts") == "typescript"
    assert buffer_port.language_for("style.css") == "css"
    assert buffer_port.active_stream() == "main.ts"
    assert buffer_port.applied_edits() == []
    assert scheduler.state() == PlayerState.UNSTARTED


def test_steps_apply_in_timeline_order_until_ended():
    records = [
        _step(1, 0, "a"),
        _step(2, 100, "ab"),
        _step(3, 200, "abc"),
        _step(4, 300, "abcd"),
    ]
    scheduler, facility, buffer_port, snapshots = _make(records)
    scheduler.play()
    facility.run_until_idle()

    assert _edit_texts(buffer_port) == ["b", "c", "d"]
    assert all(not edit.force_full_replace for edit in buffer_port.applied_edits())
    assert buffer_port.get_value("main.ts") == "abcd"
    assert scheduler.state() == PlayerState.ENDED
    assert scheduler.clock().virtual_time_ms() == 400.0
    assert snapshots[-1].state == PlayerState.ENDED
    assert scheduler.pending_action_count() == 0


def test_streams_share_one_clock_and_keep_their_own_order():
    records = [
        _step(1, 0, "a", file="a.ts"),
        _step(2, 0, "x", file="b.ts"),
        _step(3, 100, "ab", file="a.ts"),
        _step(4, 150, "xy", file="b.ts"),
        _step(5, 300, "abc", file="a.ts"),
    ]
    scheduler, facility, buffer_port, _snapshots = _make(records)
    scheduler.play()
    facility.run_until_idle()

    applied = [(edit.stream_id, edit.replacement_text) for edit in buffer_port.applied_edits()]
    assert applied == [("a.ts", "b"), ("b.ts", "y"), ("a.ts", "c")]


def test_seek_then_play_shows_active_snapshot_immediately():
    records = [
        _step(1, 0, "a", time_end=500),
        _step(2, 500, "ab", time_end=1000),
    ]
    scheduler, _facility, buffer_port, snapshots = _make(records)
    scheduler.seek(700)

    assert buffer_port.get_value("main.ts") == "ab"
    assert scheduler.state() == PlayerState.PAUSED
    assert [snapshot.state for snapshot in snapshots] == [PlayerState.SEEKING, PlayerState.PAUSED]

    scheduler.play()
    assert buffer_port.get_value("main.ts") == "ab"
    assert scheduler.state() == PlayerState.PLAYING
    assert scheduler.clock().virtual_time_ms() == 700.0


def test_speed_change_halves_remaining_delays():
    records = [
        _step(1, 0, ""),
        _step(2, 1000, "x"),
        _step(3, 2000, "xy", time_end=3000),
    ]
    scheduler, facility, buffer_port, _snapshots = _make(records)
    scheduler.play()
    facility.advance(400)
    scheduler.set_speed(2.0)

    facility.advance(299)
    assert buffer_port.get_value("main.ts") == ""
    facility.advance(1)
    assert buffer_port.get_value("main.ts") == "x"
    assert scheduler.clock().virtual_time_ms() == 1000.0

    facility.advance(499)
    assert buffer_port.get_value("main.ts") == "x"
    facility.advance(1)
    assert buffer_port.get_value("main.ts") == "xy"
    assert _edit_texts(buffer_port) == ["x", "y"]


def test_speed_change_while_paused_only_updates_the_clock():
    records = [_step(1, 0, ""), _step(2, 1000, "x")]
    scheduler, facility, _buffer_port, _snapshots = _make(records)
    scheduler.play()
    facility.advance(100)
    scheduler.pause()
    scheduler.set_speed(4.0)
    assert scheduler.pending_action_count() == 0
    assert scheduler.clock().speed() == 4.0

    scheduler.play()
    facility.advance(224)
    assert scheduler.current_content("main.ts") == ""
    facility.advance(1)
    assert scheduler.current_content("main.ts") == "x"


def test_speed_must_be_positive():
    scheduler, _facility, _buffer_port, _snapshots = _make([_step(1, 0, "")])
    with pytest.raises(ValueError):
        scheduler.set_speed(0)
    with pytest.raises(ValueError):
        scheduler.set_speed(-1.5)


def test_pause_and_resume_apply_each_step_exactly_once():
    records = [
        _step(1, 0, ""),
        _step(2, 1000, "a"),
        _step(3, 2000, "ab"),
        _step(4, 3000, "abc", time_end=4000),
    ]
    scheduler, facility, buffer_port, _snapshots = _make(records)
    scheduler.play()
    facility.advance(1500)
    assert buffer_port.get_value("main.ts") == "a"

    scheduler.pause()
    assert scheduler.pending_action_count() == 0
    facility.advance(3000)
    assert _edit_texts(buffer_port) == ["a"]
    assert scheduler.clock().virtual_time_ms() == 1500.0
    assert scheduler.cursor_for("main.ts").sequence == 2

    scheduler.play()
    facility.advance(499)
    assert buffer_port.get_value("main.ts") == "a"
    facility.advance(1)
    assert buffer_port.get_value("main.ts") == "ab"

    facility.run_until_idle()
    assert _edit_texts(buffer_port) == ["a", "b", "c"]
    assert scheduler.state() == PlayerState.ENDED


def test_rapid_updates_apply_leading_edge_then_last_text():
    records = [
        _step(1, 0, ""),
        _step(2, 1000, "a"),
        _step(3, 1010, "ab"),
        _step(4, 1020, "abc"),
        _step(5, 1030, "abcd", time_end=2000),
    ]
    scheduler, facility, buffer_port, _snapshots = _make(records)
    scheduler.play()

    facility.advance(1000)
    assert buffer_port.get_value("main.ts") == "a"
    facility.advance(30)
    assert buffer_port.get_value("main.ts") == "a"
    facility.advance(20)
    assert buffer_port.get_value("main.ts") == "abcd"
    assert _edit_texts(buffer_port) == ["a", "bcd"]


def test_pause_flushes_a_pending_throttled_edit():
    records = [
        _step(1, 0, ""),
        _step(2, 1000, "a"),
        _step(3, 1010, "ab", time_end=2000),
    ]
    scheduler, facility, buffer_port, _snapshots = _make(records)
    scheduler.play()
    facility.advance(1015)
    assert buffer_port.get_value("main.ts") == "a"

    scheduler.pause()
    assert buffer_port.get_value("main.ts") == "ab"
    facility.advance(1000)
    assert _edit_texts(buffer_port) == ["a", "b"]


def test_stale_callbacks_are_ignored_when_cancel_leaks():
    records = [
        _step(1, 0, "x"),
        _step(2, 100, "xy"),
        _step(3, 200, "xyz"),
    ]
    scheduler, facility, buffer_port, _snapshots = _make(records, honor_cancel=False)
    scheduler.play()
    facility.advance(50)
    scheduler.pause()

    facility.advance(1000)
    assert buffer_port.get_value("main.ts") == "x"
    assert buffer_port.applied_edits() == []
    assert scheduler.state() == PlayerState.PAUSED

    scheduler.play()
    facility.run_until_idle()
    assert _edit_texts(buffer_port) == ["y", "z"]
    assert scheduler.state() == PlayerState.ENDED


def test_seek_backwards_while_playing_resumes_playing():
    records = [
        _step(1, 0, "a"),
        _step(2, 100, "ab"),
        _step(3, 200, "abc"),
    ]
    scheduler, facility, buffer_port, snapshots = _make(records)
    scheduler.play()
    facility.advance(250)
    assert buffer_port.get_value("main.ts") == "abc"

    scheduler.seek(50)
    assert buffer_port.get_value("main.ts") == "a"
    assert scheduler.state() == PlayerState.PLAYING
    assert [snapshot.state for snapshot in snapshots[-2:]] == [PlayerState.SEEKING, PlayerState.PLAYING]

    facility.run_until_idle()
    assert buffer_port.get_value("main.ts") == "abc"
    assert scheduler.state() == PlayerState.ENDED


def test_seek_is_clamped_to_timeline():
    records = [_step(1, 0, "a"), _step(2, 100, "ab", time_end=300)]
    scheduler, _facility, buffer_port, _snapshots = _make(records)
    scheduler.seek(10_000)
    assert scheduler.clock().virtual_time_ms() == 300.0
    assert buffer_port.get_value("main.ts") == "ab"
    scheduler.seek(-50)
    assert scheduler.clock().virtual_time_ms() == 0.0
    assert buffer_port.get_value("main.ts") == "a"


def test_skip_moves_by_configured_interval():
    records = [_step(1, 0, "a", time_end=1000)]
    scheduler, _facility, _buffer_port, _snapshots = _make(records, skip_interval_ms=300)
    scheduler.skip_forward()
    assert scheduler.clock().virtual_time_ms() == 300.0
    scheduler.skip_backward()
    scheduler.skip_backward()
    assert scheduler.clock().virtual_time_ms() == 0.0


def test_play_after_end_restarts_from_zero():
    records = [_step(1, 0, "a"), _step(2, 100, "ab")]
    scheduler, facility, buffer_port, _snapshots = _make(records)
    scheduler.play()
    facility.run_until_idle()
    assert scheduler.state() == PlayerState.ENDED

    scheduler.play()
    assert scheduler.state() == PlayerState.PLAYING
    assert scheduler.clock().virtual_time_ms() == 0.0
    assert buffer_port.get_value("main.ts") == "a"
    facility.run_until_idle()
    assert buffer_port.get_value("main.ts") == "ab"


def test_toggle_play_pause_and_buffering():
    records = [_step(1, 0, ""), _step(2, 500, "x", time_end=1000)]
    scheduler, facility, buffer_port, _snapshots = _make(records)

    scheduler.toggle_play_pause()
    assert scheduler.state() == PlayerState.PLAYING
    facility.advance(100)

    scheduler.set_buffering(True)
    assert scheduler.state() == PlayerState.BUFFERING
    assert scheduler.pending_action_count() == 0
    facility.advance(2000)
    assert scheduler.clock().virtual_time_ms() == 100.0
    assert buffer_port.get_value("main.ts") == ""

    scheduler.set_buffering(False)
    assert scheduler.state() == PlayerState.PLAYING
    facility.advance(400)
    assert buffer_port.get_value("main.ts") == "x"

    scheduler.toggle_play_pause()
    assert scheduler.state() == PlayerState.PAUSED


def test_active_stream_follows_edits_and_switches_without_replay():
    records = [
        _step(1, 0, "a1", file="a.ts"),
        _step(2, 0, "b1", file="b.ts"),
        _step(3, 50, "b2", file="b.ts"),
        _step(4, 100, "a2", file="a.ts"),
    ]
    scheduler, facility, buffer_port, _snapshots = _make(records)
    scheduler.play()
    facility.advance(60)
    assert buffer_port.active_stream() == "b.ts"
    facility.advance(50)
    assert buffer_port.active_stream() == "a.ts"

    edit_count = len(buffer_port.applied_edits())
    scheduler.set_active_stream("b.ts")
    assert buffer_port.active_stream() == "b.ts"
    assert scheduler.active_stream() == "b.ts"
    assert len(buffer_port.applied_edits()) == edit_count

    buffer_port.set_value("b.ts", "typed by someone")
    scheduler.set_active_stream("a.ts")
    scheduler.set_active_stream("b.ts")
    assert buffer_port.get_value("b.ts") == "b2"
    assert buffer_port.applied_edits()[-1].force_full_replace is True

    with pytest.raises(KeyError):
        scheduler.set_active_stream("missing.ts")


def test_follow_edits_can_be_disabled():
    records = [
        _step(1, 0, "a1", file="a.ts"),
        _step(2, 0, "b1", file="b.ts"),
        _step(3, 50, "b2", file="b.ts"),
    ]
    scheduler, facility, buffer_port, _snapshots = _make(records, follow_edits=False)
    scheduler.play()
    facility.run_until_idle()
    assert buffer_port.active_stream() == "a.ts"
    assert buffer_port.get_value("b.ts") == "b2"


def test_out_of_range_edit_falls_back_to_full_replace(caplog):
    caplog.set_level(logging.WARNING, logger="playback_scheduler")
    records = [
        _step(1, 0, "abc\ndef\n"),
        _step(2, 100, "abc\ndefg\n"),
        _step(3, 200, "abc\ndefgh\n"),
    ]
    scheduler, facility, buffer_port, _snapshots = _make(records)
    scheduler.prime()
    buffer_port.set_value("main.ts", "x")
    scheduler.play()

    facility.advance(100)
    assert buffer_port.get_value("main.ts") == "abc\ndefg\n"
    assert buffer_port.applied_edits()[-1].force_full_replace is True
    assert any("does not fit" in record.getMessage() for record in caplog.records)

    facility.run_until_idle()
    assert buffer_port.get_value("main.ts") == "abc\ndefgh\n"
    assert buffer_port.applied_edits()[-1].force_full_replace is False


def test_diverged_buffer_is_repaired_after_edit(caplog):
    caplog.set_level(logging.WARNING, logger="playback_scheduler")
    records = [_step(1, 0, "abc"), _step(2, 100, "abcd")]
    scheduler, facility, buffer_port, _snapshots = _make(records)
    scheduler.prime()
    buffer_port.set_value("main.ts", "abd")
    scheduler.play()
    facility.advance(100)

    assert buffer_port.get_value("main.ts") == "abcd"
    assert scheduler.current_content("main.ts") == "abcd"
    assert any("diverged" in record.getMessage() for record in caplog.records)


def test_crlf_edits_stay_incremental():
    records = [_step(1, 0, "one\r\ntwo"), _step(2, 100, "one\ntwo")]
    scheduler, facility, buffer_port, _snapshots = _make(records)
    scheduler.play()
    facility.run_until_idle()
    assert buffer_port.get_value("main.ts") == "one\ntwo"
    assert [edit.force_full_replace for edit in buffer_port.applied_edits()] == [False]


def test_teardown_cancels_everything_and_blocks_commands():
    records = [_step(1, 0, "a"), _step(2, 100, "ab")]
    scheduler, facility, buffer_port, _snapshots = _make(records)
    scheduler.play()
    assert scheduler.pending_action_count() > 0

    scheduler.teardown()
    scheduler.teardown()
    assert scheduler.pending_action_count() == 0
    assert facility.pending_count() == 0
    facility.run_until_idle()
    assert buffer_port.get_value("main.ts") == "a"
    with pytest.raises(RuntimeError):
        scheduler.play()


def test_empty_timeline_ends_immediately():
    scheduler, facility, buffer_port, _snapshots = _make([])
    scheduler.play()
    facility.run_until_idle()
    assert scheduler.state() == PlayerState.ENDED
    assert buffer_port.values() == {}

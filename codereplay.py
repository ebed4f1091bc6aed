"""
codereplay.py

Command line entrypoint that replays a recorded timeline headlessly.

Integration
- Loads config and the timeline JSON file
- Creates QCoreApplication and a QtTimerFacility
- Replays into an InMemoryBufferPort through ReplayPlayerBridge
- Quits the event loop when playback ends and prints the final buffers as JSON
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from PyQt6.QtCore import QCoreApplication

from buffer_port import InMemoryBufferPort
from config import AppConfig, get_config, load_config
from coordinate_translator import detect_line_ending
from player_bridge import ReplayPlayerBridge, format_playback_time
from playback_scheduler import PlaybackScheduler
from qt_timer_facility import QtTimerFacility
from replay_models import PlaybackSnapshot, PlayerState
from timeline_model import TimelineParseError, load_timeline_file

LOGGER = logging.getLogger(__name__)


def _build_argument_parser() -> argparse.ArgumentParser:
    argument_parser = argparse.ArgumentParser(description="Replay a recorded code editing timeline")
    argument_parser.add_argument("timeline", type=Path, help="JSON file with the recorded snapshot steps.")
    argument_parser.add_argument("--config", type=Path, default=None, help="Path to a codereplay_config.json file.")
    argument_parser.add_argument("--speed", type=float, default=None, help="Playback speed, overrides the config.")
    argument_parser.add_argument("--seek-ms", type=float, default=0.0, help="Start playback at this virtual time.")
    argument_parser.add_argument("--stream", default=None, help="File to show first.")
    argument_parser.add_argument("--log-edits", action="store_true", help="Include every applied edit in the output.")
    return argument_parser


def _result_payload(
    *,
    buffer_port: InMemoryBufferPort,
    snapshot: PlaybackSnapshot,
    include_edits: bool,
) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "ok": True,
        "state": snapshot.state.name,
        "virtual_time_ms": float(snapshot.virtual_time_ms),
        "active_stream": snapshot.active_stream,
        "buffers": buffer_port.values(),
        "line_endings": {
            stream: "CRLF" if detect_line_ending(text) == "\r\n" else "LF"
            for stream, text in buffer_port.values().items()
        },
        "edits_applied": len(buffer_port.applied_edits()),
    }
    if include_edits:
        payload["edits"] = [
            {
                "stream": edit.stream_id,
                "range": [
                    edit.text_range.start_line,
                    edit.text_range.start_column,
                    edit.text_range.end_line,
                    edit.text_range.end_column,
                ],
                "text": edit.replacement_text,
                "full_replace": edit.force_full_replace,
            }
            for edit in buffer_port.applied_edits()
        ]
    return payload


def run_replay(
    app_config: AppConfig,
    timeline_path: Path,
    *,
    speed: Optional[float] = None,
    seek_ms: float = 0.0,
    stream: Optional[str] = None,
    include_edits: bool = False,
) -> Dict[str, Any]:
    timeline = load_timeline_file(timeline_path)

    qt_application = QCoreApplication.instance() or QCoreApplication(sys.argv[:1])

    timer_facility = QtTimerFacility()
    buffer_port = InMemoryBufferPort()
    playback_config = app_config.playback
    scheduler = PlaybackScheduler(
        timeline,
        buffer_port,
        timer_facility,
        throttle_interval_ms=playback_config.throttle_interval_ms,
        initial_speed=speed if speed is not None else playback_config.initial_speed,
        follow_edits=playback_config.follow_edits,
        skip_interval_ms=playback_config.skip_interval_ms,
    )
    bridge = ReplayPlayerBridge(
        scheduler,
        available_speeds=playback_config.available_speeds,
        tick_interval_ms=playback_config.tick_interval_ms,
    )

    def on_state_changed(snapshot: PlaybackSnapshot) -> None:
        LOGGER.info("%s at %s", snapshot.state.name, format_playback_time(snapshot.virtual_time_ms))

    bridge.stateChanged.connect(on_state_changed)
    bridge.playbackEnded.connect(lambda _snapshot: qt_application.quit())

    scheduler.prime()
    if stream:
        scheduler.set_active_stream(stream)
    if seek_ms > 0.0:
        bridge.seek(seek_ms)
    bridge.play()

    final_snapshot = scheduler.snapshot()
    if final_snapshot.state != PlayerState.ENDED:
        qt_application.exec()
        final_snapshot = scheduler.snapshot()

    payload = _result_payload(buffer_port=buffer_port, snapshot=final_snapshot, include_edits=include_edits)
    bridge.shutdown()
    timer_facility.cancel_all()
    return payload


def main(argv: Optional[List[str]] = None) -> int:
    parsed_args = _build_argument_parser().parse_args(argv)

    try:
        if parsed_args.config is not None:
            app_config, _config_path = load_config(parsed_args.config)
        else:
            app_config, _config_path = get_config()
    except Exception as exception:
        print(json.dumps({"ok": False, "error": str(exception)}, ensure_ascii=False, indent=2))
        return 2

    logging.basicConfig(
        level=app_config.logging.level_number(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        payload = run_replay(
            app_config,
            parsed_args.timeline,
            speed=parsed_args.speed,
            seek_ms=float(parsed_args.seek_ms),
            stream=parsed_args.stream,
            include_edits=bool(parsed_args.log_edits),
        )
    except (TimelineParseError, KeyError, ValueError) as exception:
        print(json.dumps({"ok": False, "error": str(exception)}, ensure_ascii=False, indent=2))
        return 2

    print(json.dumps(payload, ensure_ascii=False, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

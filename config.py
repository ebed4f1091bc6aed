"""
config.py

Typed configuration loading and validation for CodeReplay.

Design goals
- Load at most one UTF-8 JSON config file
- Validate with pydantic (defaults included)
- Support environment variable overrides
- No other I/O beyond reading the config file (no directory creation)

Config file location
- If CODEREPLAY_CONFIG_PATH is set, that file is used and must exist.
- Otherwise CodeReplay searches these paths in order and uses the first one that exists:
  1) ./codereplay_config.json (current working directory)
  2) <user config dir>/CodeReplay/CodeReplay/codereplay_config.json
  3) <user config dir>/CodeReplay/CodeReplay/config.json
- When none exists the defaults are used.

Example config file (codereplay_config.json)
{
  "playback": {
    "throttle_interval_ms": 50,
    "initial_speed": 1.0,
    "available_speeds": [0.25, 0.5, 1, 1.25, 1.5, 2],
    "skip_interval_ms": 5000,
    "tick_interval_ms": 100,
    "follow_edits": true
  },
  "logging": {
    "level": "WARNING"
  }
}
"""

from __future__ import annotations

import json
import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from platformdirs import user_config_dir
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator


class PlaybackConfig(BaseModel):
    throttle_interval_ms: int = Field(default=50, ge=0, description="Minimum interval between visible edits per file.")
    initial_speed: float = Field(default=1.0, gt=0.0, description="Playback speed when a session starts.")
    available_speeds: List[float] = Field(
        default_factory=lambda: [0.25, 0.5, 1.0, 1.25, 1.5, 2.0],
        description="Speeds offered by transport controls, ascending.",
    )
    skip_interval_ms: int = Field(default=5000, ge=0, description="Step used by skip forward and skip backward.")
    tick_interval_ms: int = Field(default=100, ge=10, description="Interval of time updates sent to transport controls.")
    follow_edits: bool = Field(default=True, description="Switch the visible file to the file being edited.")

    @field_validator("available_speeds")
    @classmethod
    def validate_available_speeds(cls, value: List[float]) -> List[float]:
        if not value:
            raise ValueError("available_speeds must not be empty")
        if any(float(speed) <= 0.0 for speed in value):
            raise ValueError("available_speeds must all be positive")
        return sorted(set(float(speed) for speed in value))

    @model_validator(mode="after")
    def include_initial_speed(self) -> "PlaybackConfig":
        if self.initial_speed not in self.available_speeds:
            self.available_speeds = sorted(self.available_speeds + [float(self.initial_speed)])
        return self


class LoggingConfig(BaseModel):
    level: str = Field(default="WARNING", description="DEBUG, INFO, WARNING, ERROR or CRITICAL")

    @field_validator("level")
    @classmethod
    def validate_level(cls, value: str) -> str:
        normalized = (value or "").strip().upper()
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if normalized not in allowed:
            raise ValueError("level must be one of: DEBUG, INFO, WARNING, ERROR, CRITICAL")
        return normalized

    def level_number(self) -> int:
        return int(logging.getLevelName(self.level))


class AppConfig(BaseModel):
    playback: PlaybackConfig = Field(default_factory=PlaybackConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def _default_config_candidates() -> List[Path]:
    config_directory = Path(user_config_dir("CodeReplay", "CodeReplay"))
    return [
        Path.cwd() / "codereplay_config.json",
        config_directory / "codereplay_config.json",
        config_directory / "config.json",
    ]


def _resolve_config_path() -> Optional[Path]:
    explicit_path_text = os.environ.get("CODEREPLAY_CONFIG_PATH", "").strip()
    if explicit_path_text:
        return Path(explicit_path_text)

    for candidate_path in _default_config_candidates():
        if candidate_path.exists():
            return candidate_path

    return None


def _read_json_file_utf8(config_path: Path) -> Dict[str, Any]:
    try:
        raw_text = config_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise
    except OSError as exception:
        raise OSError(f"Failed to read config file: {config_path}. Error: {exception}") from exception

    try:
        parsed = json.loads(raw_text)
    except json.JSONDecodeError as exception:
        raise ValueError(f"Config file is not valid JSON: {config_path}. Error: {exception}") from exception

    if not isinstance(parsed, dict):
        raise ValueError(f"Config file root must be a JSON object: {config_path}")

    return parsed


def _apply_environment_overrides(config_dict: Dict[str, Any]) -> Dict[str, Any]:
    """
    Environment overrides are optional. The config file is the primary source of truth.

    Override variables:
    - CODEREPLAY_THROTTLE_INTERVAL_MS
    - CODEREPLAY_INITIAL_SPEED
    - CODEREPLAY_SKIP_INTERVAL_MS
    - CODEREPLAY_FOLLOW_EDITS
    - CODEREPLAY_LOG_LEVEL
    """
    def ensure_nested(config_root: Dict[str, Any], section_name: str) -> Dict[str, Any]:
        section = config_root.get(section_name)
        if isinstance(section, dict):
            return section
        section = {}
        config_root[section_name] = section
        return section

    updated_config = dict(config_dict)

    playback_section = ensure_nested(updated_config, "playback")
    logging_section = ensure_nested(updated_config, "logging")

    def override_string(env_name: str, target_dict: Dict[str, Any], key_name: str) -> None:
        value_text = os.environ.get(env_name, "")
        if value_text.strip():
            target_dict[key_name] = value_text.strip()

    def override_int(env_name: str, target_dict: Dict[str, Any], key_name: str) -> None:
        value_text = os.environ.get(env_name, "").strip()
        if not value_text:
            return
        try:
            target_dict[key_name] = int(value_text)
        except ValueError:
            return

    def override_float(env_name: str, target_dict: Dict[str, Any], key_name: str) -> None:
        value_text = os.environ.get(env_name, "").strip()
        if not value_text:
            return
        try:
            target_dict[key_name] = float(value_text)
        except ValueError:
            return

    def override_bool(env_name: str, target_dict: Dict[str, Any], key_name: str) -> None:
        value_text = os.environ.get(env_name, "").strip().lower()
        if not value_text:
            return
        truthy = {"1", "true", "yes", "on"}
        falsy = {"0", "false", "no", "off"}
        if value_text in truthy:
            target_dict[key_name] = True
        elif value_text in falsy:
            target_dict[key_name] = False

    override_int("CODEREPLAY_THROTTLE_INTERVAL_MS", playback_section, "throttle_interval_ms")
    override_float("CODEREPLAY_INITIAL_SPEED", playback_section, "initial_speed")
    override_int("CODEREPLAY_SKIP_INTERVAL_MS", playback_section, "skip_interval_ms")
    override_bool("CODEREPLAY_FOLLOW_EDITS", playback_section, "follow_edits")

    override_string("CODEREPLAY_LOG_LEVEL", logging_section, "level")

    return updated_config


def load_config(config_path: Optional[Path] = None) -> Tuple[AppConfig, Optional[Path]]:
    resolved_path = config_path if config_path is not None else _resolve_config_path()
    json_dict: Dict[str, Any] = {}
    if resolved_path is not None:
        json_dict = _read_json_file_utf8(resolved_path)
    json_dict = _apply_environment_overrides(json_dict)

    try:
        config = AppConfig.model_validate(json_dict)
    except ValidationError as exception:
        source_text = str(resolved_path) if resolved_path is not None else "defaults"
        raise ValueError(f"Config validation failed for {source_text}:\n{exception}") from exception

    return config, resolved_path


@lru_cache(maxsize=1)
def get_config() -> Tuple[AppConfig, Optional[Path]]:
    return load_config()


def to_json(config: AppConfig) -> str:
    return json.dumps(config.model_dump(), ensure_ascii=False, indent=2)


def main() -> int:
    try:
        config, resolved_path = load_config()
    except Exception as exception:
        error_payload = {"ok": False, "error": str(exception)}
        print(json.dumps(error_payload, ensure_ascii=False, indent=2))
        return 2

    output_payload = {
        "ok": True,
        "config_path": str(resolved_path) if resolved_path is not None else None,
        "config": json.loads(to_json(config)),
    }
    print(json.dumps(output_payload, ensure_ascii=False, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

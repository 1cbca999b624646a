# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Configuration management for the teleprompter.
Handles loading and saving settings from a YAML config file, clamping
numeric settings to their supported ranges, and the in-memory settings
store each session reads from.
"""

import copy
import logging
import math
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any, TypedDict

import yaml

from .layout import ValidationError
from .stage_directions import DelimiterKind, DisplayMode

logger = logging.getLogger(__name__)

CONFIG_FILENAME: str = ".teleprompt.yaml"

DEFAULT_LINE_WIDTH: int = 38
MIN_LINE_WIDTH: int = 10
MAX_LINE_WIDTH: int = 200

DEFAULT_SCROLL_SPEED_WPM: int = 120
MIN_SCROLL_SPEED_WPM: int = 1
MAX_SCROLL_SPEED_WPM: int = 500

DEFAULT_NUMBER_OF_LINES: int = 4
MIN_NUMBER_OF_LINES: int = 1
MAX_NUMBER_OF_LINES: int = 20

DEFAULT_SCROLL_INTERVAL_MS: int = 500
MIN_SCROLL_INTERVAL_MS: int = 100
MAX_SCROLL_INTERVAL_MS: int = 2000

# Named line widths offered by the settings UI, in characters
LINE_WIDTH_NAMES: dict[str, int] = {
    "very narrow": 21,
    "narrow": 30,
    "medium": 38,
    "wide": 44,
    "very wide": 52,
}


class TeleprompterSettings(TypedDict):
    """Type definition for per-session teleprompter settings."""
    custom_text: str
    line_width: str | int
    scroll_speed: int
    number_of_lines: int
    scroll_interval_ms: int
    auto_replay: bool
    speech_scroll_enabled: bool
    show_estimated_total: bool
    stage_direction_delimiter: str
    stage_direction_display: str
    min_words_for_match: int
    speech_lookahead_lines: int
    speech_lead_lines: int
    debug_logging: bool


class RemoteControlSettings(TypedDict):
    """Type definition for the remote control API settings."""
    api_key: str | None
    rate_limit_window_ms: int
    rate_limit_max_requests: int


class Config(TypedDict):
    """Type definition for the complete configuration."""
    host: str
    port: int
    remote_control: RemoteControlSettings
    teleprompter: TeleprompterSettings


# Default configuration values
DEFAULT_CONFIG: Config = {
    # Server settings
    "host": "127.0.0.1",
    "port": 3000,

    # Remote control API (disabled until an API key is set)
    "remote_control": {
        "api_key": None,
        "rate_limit_window_ms": 60_000,
        "rate_limit_max_requests": 120,
    },

    # Defaults for every new session
    "teleprompter": {
        "custom_text": "",
        "line_width": "Medium",
        "scroll_speed": DEFAULT_SCROLL_SPEED_WPM,
        "number_of_lines": DEFAULT_NUMBER_OF_LINES,
        "scroll_interval_ms": DEFAULT_SCROLL_INTERVAL_MS,
        "auto_replay": False,
        "speech_scroll_enabled": True,
        "show_estimated_total": True,
        "stage_direction_delimiter": DelimiterKind.NONE.value,
        "stage_direction_display": DisplayMode.DIMMED.value,
        "min_words_for_match": 3,
        # Extra lines searched past the visible window
        "speech_lookahead_lines": 0,
        # Lines to hold back when jumping to a speech match
        "speech_lead_lines": 0,
        "debug_logging": False,
    },
}


def get_config_path() -> Path:
    """Get the path to the config file in the current working directory."""
    return Path.cwd() / CONFIG_FILENAME


def _deep_merge(base, override):
    """
    Deep merge two dictionaries, with override taking precedence.
    Returns a new dictionary without modifying the originals.

    Args:
        base: Base dictionary to merge from.
        override: Dictionary with values that take precedence over base.

    Returns:
        New dictionary with merged values.
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_config(config_path: Path | None = None) -> Config:
    """
    Load configuration from file, merged with defaults.

    Args:
        config_path: Optional path to config file. If None, uses default location.

    Returns:
        Configuration dictionary with all values (defaults + overrides from file).
    """
    if config_path is None:
        config_path = get_config_path()

    config: dict[str, Any] = copy.deepcopy(DEFAULT_CONFIG)  # type: ignore[arg-type]

    if config_path.exists():
        try:
            with open(config_path, encoding='utf-8') as f:
                file_config: dict[str, Any] | None = yaml.safe_load(f)
                if file_config:
                    config = _deep_merge(config, file_config)
        except (OSError, yaml.YAMLError) as e:
            logger.warning("Could not load config from %s: %s", config_path, e)

    return config  # type: ignore[return-value]


def save_config(config: Config, config_path: Path | None = None) -> bool:
    """
    Save configuration to file.

    Args:
        config: Configuration dictionary to save.
        config_path: Optional path to config file. If None, uses default location.

    Returns:
        True if save was successful, False otherwise.
    """
    if config_path is None:
        config_path = get_config_path()

    try:
        with open(config_path, 'w', encoding='utf-8') as f:
            yaml.safe_dump(dict(config), f, default_flow_style=False, sort_keys=False)
        return True
    except (OSError, yaml.YAMLError) as e:
        logger.error("Error saving config to %s: %s", config_path, e)
        return False


def get_teleprompter_settings(config: Config) -> TeleprompterSettings:
    """
    Extract session defaults from config, filling any missing keys.

    Args:
        config: Configuration dictionary.

    Returns:
        Teleprompter settings dictionary.
    """
    return _deep_merge(DEFAULT_CONFIG["teleprompter"],
                       config.get("teleprompter") or {})  # type: ignore[return-value]


def get_remote_control_settings(config: Config) -> RemoteControlSettings:
    """Extract remote control settings from config."""
    return _deep_merge(DEFAULT_CONFIG["remote_control"],
                       config.get("remote_control") or {})  # type: ignore[return-value]


def _clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(upper, value))


def _as_number(value: object, default: float) -> float:
    """Read a numeric setting, falling back to default when unusable."""
    if isinstance(value, bool):
        return default
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default
    return number if math.isfinite(number) else default


def convert_line_width(value: object) -> int:
    """
    Convert a line width setting to a number of characters.

    Accepts the named widths ("Narrow", "Medium", ...) as well as numbers and
    numeric strings. The result is clamped to [MIN_LINE_WIDTH, MAX_LINE_WIDTH].

    Raises:
        ValidationError: If the value is neither a known name nor a finite number.
    """
    if isinstance(value, str):
        named: int | None = LINE_WIDTH_NAMES.get(value.strip().lower())
        if named is not None:
            return named
    if isinstance(value, bool):
        raise ValidationError(f"Invalid line width: {value!r}")
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Invalid line width: {value!r}") from e
    if not math.isfinite(number):
        raise ValidationError(f"Line width must be finite, got {value!r}")
    return int(_clamp(int(number), MIN_LINE_WIDTH, MAX_LINE_WIDTH))


def clamp_scroll_speed(value: object) -> int:
    """Clamp words per minute to [MIN_SCROLL_SPEED_WPM, MAX_SCROLL_SPEED_WPM]."""
    number = _as_number(value, DEFAULT_SCROLL_SPEED_WPM)
    return int(_clamp(round(number), MIN_SCROLL_SPEED_WPM, MAX_SCROLL_SPEED_WPM))


def clamp_scroll_interval(value: object) -> int:
    """Clamp the scroll tick interval to [MIN_SCROLL_INTERVAL_MS, MAX_SCROLL_INTERVAL_MS]."""
    number = _as_number(value, DEFAULT_SCROLL_INTERVAL_MS)
    return int(_clamp(round(number), MIN_SCROLL_INTERVAL_MS, MAX_SCROLL_INTERVAL_MS))


def clamp_number_of_lines(value: object) -> int:
    """Clamp the visible line count to [MIN_NUMBER_OF_LINES, MAX_NUMBER_OF_LINES]."""
    number = _as_number(value, DEFAULT_NUMBER_OF_LINES)
    return int(_clamp(int(number), MIN_NUMBER_OF_LINES, MAX_NUMBER_OF_LINES))


def clamp_non_negative(value: object, default: int) -> int:
    """Read a non-negative integer setting."""
    return max(0, int(_as_number(value, default)))


def parse_delimiter(value: object) -> DelimiterKind:
    """Read a delimiter setting; unknown values disable stage directions."""
    try:
        return DelimiterKind(str(value).lower())
    except ValueError:
        logger.warning("Unknown stage direction delimiter %r, using 'none'", value)
        return DelimiterKind.NONE


def parse_display_mode(value: object) -> DisplayMode:
    """Read a display mode setting; unknown values show stage directions unchanged."""
    try:
        return DisplayMode(str(value).lower())
    except ValueError:
        logger.warning("Unknown stage direction display mode %r, using 'normal'", value)
        return DisplayMode.NORMAL


ChangeHandler = Callable[[Any, Any], None]


class SettingsStore:
    """
    In-memory settings source with per-key change notification.

    Handlers registered with on_value_change() are called with
    (new_value, old_value) whenever a key's value actually changes.
    """

    def __init__(self, initial: Mapping[str, Any] | None = None) -> None:
        self._values: dict[str, Any] = dict(initial or {})
        self._handlers: dict[str, list[ChangeHandler]] = {}

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value for key, or default if it is unset."""
        return self._values.get(key, default)

    def as_dict(self) -> dict[str, Any]:
        """Return a copy of all current values."""
        return dict(self._values)

    def set(self, key: str, value: Any) -> bool:
        """
        Set a value and notify handlers if it changed.

        Returns:
            True if the value changed
        """
        old_value: Any = self._values.get(key)
        if key in self._values and old_value == value:
            return False
        self._values[key] = value
        for handler in list(self._handlers.get(key, [])):
            handler(value, old_value)
        return True

    def update(self, values: Mapping[str, Any]) -> list[str]:
        """Set several values; returns the keys that changed."""
        return [key for key, value in values.items() if self.set(key, value)]

    def on_value_change(self, key: str, handler: ChangeHandler) -> Callable[[], None]:
        """
        Register a change handler for key.

        Returns:
            A function that unregisters the handler
        """
        self._handlers.setdefault(key, []).append(handler)

        def unsubscribe() -> None:
            handlers = self._handlers.get(key, [])
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

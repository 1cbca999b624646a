# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Tests for configuration management and the settings store.
"""

import tempfile
from pathlib import Path

import pytest
import yaml

from teleprompt.config import (
    DEFAULT_CONFIG,
    MAX_LINE_WIDTH,
    MIN_LINE_WIDTH,
    SettingsStore,
    clamp_non_negative,
    clamp_number_of_lines,
    clamp_scroll_interval,
    clamp_scroll_speed,
    convert_line_width,
    get_remote_control_settings,
    get_teleprompter_settings,
    load_config,
    parse_delimiter,
    parse_display_mode,
    save_config,
)
from teleprompt.layout import ValidationError
from teleprompt.stage_directions import DelimiterKind, DisplayMode


def test_default_config_disables_remote_control():
    """Remote control is off until an API key is configured."""
    assert DEFAULT_CONFIG["remote_control"]["api_key"] is None


def test_load_config_merges_with_defaults():
    """Values from the file override defaults; everything else is filled in."""
    with tempfile.TemporaryDirectory() as tmpdir:
        config_path = Path(tmpdir) / ".teleprompt.yaml"

        config_data = {
            "port": 8000,
            "teleprompter": {"scroll_speed": 150},
            "remote_control": {"api_key": "secret"},
        }
        with open(config_path, "w", encoding="utf-8") as f:
            yaml.dump(config_data, f)

        config = load_config(config_path)
        assert config["port"] == 8000
        assert config["host"] == "127.0.0.1"
        assert config["teleprompter"]["scroll_speed"] == 150
        assert config["teleprompter"]["number_of_lines"] == 4
        assert config["remote_control"]["api_key"] == "secret"
        assert config["remote_control"]["rate_limit_max_requests"] == 120


def test_load_config_missing_file():
    """A missing config file gives the defaults."""
    with tempfile.TemporaryDirectory() as tmpdir:
        config = load_config(Path(tmpdir) / "missing.yaml")
        assert config == DEFAULT_CONFIG


def test_load_config_invalid_yaml():
    """An unreadable config file is ignored."""
    with tempfile.TemporaryDirectory() as tmpdir:
        config_path = Path(tmpdir) / ".teleprompt.yaml"
        config_path.write_text("port: [unclosed", encoding="utf-8")
        assert load_config(config_path) == DEFAULT_CONFIG


def test_save_and_reload_config():
    with tempfile.TemporaryDirectory() as tmpdir:
        config_path = Path(tmpdir) / ".teleprompt.yaml"
        config = load_config(config_path)
        config["port"] = 9000
        config["teleprompter"]["line_width"] = "Wide"

        assert save_config(config, config_path)
        reloaded = load_config(config_path)
        assert reloaded["port"] == 9000
        assert reloaded["teleprompter"]["line_width"] == "Wide"


def test_section_helpers_fill_missing_keys():
    config = {"teleprompter": {"auto_replay": True}}
    teleprompter = get_teleprompter_settings(config)  # type: ignore[arg-type]
    assert teleprompter["auto_replay"] is True
    assert teleprompter["scroll_speed"] == 120
    assert get_remote_control_settings({})["rate_limit_window_ms"] == 60_000  # type: ignore[typeddict-item]


class TestLineWidth:
    """Tests for converting line width settings."""

    @pytest.mark.parametrize("value, expected", [
        ("Very Narrow", 21),
        ("narrow", 30),
        ("Medium", 38),
        ("WIDE", 44),
        ("very wide", 52),
        (40, 40),
        ("45", 45),
        (33.9, 33),
        (1, MIN_LINE_WIDTH),
        (10_000, MAX_LINE_WIDTH),
    ])
    def test_convert(self, value: object, expected: int) -> None:
        assert convert_line_width(value) == expected

    @pytest.mark.parametrize("value", ["enormous", None, True, float("inf"), float("nan")])
    def test_invalid(self, value: object) -> None:
        with pytest.raises(ValidationError):
            convert_line_width(value)


class TestClamps:
    """Tests for clamping numeric settings."""

    def test_scroll_speed(self) -> None:
        assert clamp_scroll_speed(0) == 1
        assert clamp_scroll_speed(150.4) == 150
        assert clamp_scroll_speed(9999) == 500
        assert clamp_scroll_speed("fast") == 120

    def test_scroll_interval(self) -> None:
        assert clamp_scroll_interval(10) == 100
        assert clamp_scroll_interval(250) == 250
        assert clamp_scroll_interval(10_000) == 2000

    def test_number_of_lines(self) -> None:
        assert clamp_number_of_lines(0) == 1
        assert clamp_number_of_lines(6) == 6
        assert clamp_number_of_lines(99) == 20
        assert clamp_number_of_lines(None) == 4

    def test_non_negative(self) -> None:
        assert clamp_non_negative(-3, 0) == 0
        assert clamp_non_negative(2, 0) == 2
        assert clamp_non_negative("x", 3) == 3


class TestStageDirectionSettings:
    """Tests for reading stage direction settings."""

    def test_delimiter(self) -> None:
        assert parse_delimiter("Square") is DelimiterKind.SQUARE
        assert parse_delimiter("angle") is DelimiterKind.NONE

    def test_display_mode(self) -> None:
        assert parse_display_mode("hidden") is DisplayMode.HIDDEN
        assert parse_display_mode("blink") is DisplayMode.NORMAL


class TestSettingsStore:
    """Tests for change notification."""

    def test_get_with_default(self) -> None:
        store = SettingsStore({"a": 1})
        assert store.get("a") == 1
        assert store.get("b", 2) == 2

    def test_notifies_on_change_only(self) -> None:
        store = SettingsStore({"scroll_speed": 120})
        changes: list[tuple[object, object]] = []
        store.on_value_change("scroll_speed", lambda new, old: changes.append((new, old)))

        assert not store.set("scroll_speed", 120)
        assert store.set("scroll_speed", 150)
        assert changes == [(150, 120)]

    def test_new_key_notifies(self) -> None:
        store = SettingsStore()
        changes: list[object] = []
        store.on_value_change("auto_replay", lambda new, old: changes.append(new))
        store.set("auto_replay", None)
        assert changes == [None]

    def test_unsubscribe(self) -> None:
        store = SettingsStore()
        changes: list[object] = []
        unsubscribe = store.on_value_change("x", lambda new, old: changes.append(new))
        unsubscribe()
        unsubscribe()
        store.set("x", 1)
        assert changes == []

    def test_update_returns_changed_keys(self) -> None:
        store = SettingsStore({"a": 1, "b": 2})
        assert store.update({"a": 1, "b": 3, "c": 4}) == ["b", "c"]
        assert store.as_dict() == {"a": 1, "b": 3, "c": 4}

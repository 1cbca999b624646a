# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Tests for the command line entry point and offline rendering.
"""

import sys
from pathlib import Path

import pytest
import yaml

from teleprompt.config import DEFAULT_CONFIG, get_teleprompter_settings
from teleprompt.controller import END_OF_TEXT_MESSAGE
from teleprompt.main import TerminalDisplay, main, render_script
from teleprompt.scheduler import VirtualScheduler

SCRIPT = "\n".join([
    "alpha bravo charlie",
    "delta echo foxtrot",
    "golf hotel india",
    "juliet kilo lima",
    "mike november oscar",
    "papa quebec romeo",
])


def test_terminal_display_skips_repeated_frames(capsys: pytest.CaptureFixture[str]) -> None:
    scheduler = VirtualScheduler()
    display = TerminalDisplay(scheduler)
    display.show_text("frame one", 1000)
    display.show_text("frame one", 1000)
    scheduler.advance(2.5)
    display.show_text("frame two", 1000)

    out = capsys.readouterr().out
    assert display.frames == 2
    assert out.count("frame one") == 1
    assert "--- t=    2.5s ---" in out


def test_render_script_plays_to_the_end(tmp_path: Path,
                                        capsys: pytest.CaptureFixture[str]) -> None:
    script_path = tmp_path / "script.txt"
    script_path.write_text(SCRIPT, encoding="utf-8")
    settings = get_teleprompter_settings(DEFAULT_CONFIG)
    settings["scroll_speed"] = 360

    frames = render_script(script_path, settings)

    out = capsys.readouterr().out
    assert frames > 2
    assert out.index("alpha bravo charlie") < out.index(END_OF_TEXT_MESSAGE)
    assert out.rstrip().endswith(END_OF_TEXT_MESSAGE)


def test_main_render(tmp_path: Path, monkeypatch: pytest.MonkeyPatch,
                     capsys: pytest.CaptureFixture[str]) -> None:
    script_path = tmp_path / "script.txt"
    script_path.write_text(SCRIPT, encoding="utf-8")
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(sys, "argv", [
        "teleprompt", "--render", str(script_path), "--lines", "2", "--scroll-speed", "480"])

    main()

    out = capsys.readouterr().out
    assert END_OF_TEXT_MESSAGE in out
    assert out.rstrip().endswith("frames ---")


def test_main_save_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch,
                          capsys: pytest.CaptureFixture[str]) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(sys, "argv", [
        "teleprompt", "--port", "4000", "--api-key", "secret",
        "--line-width", "Wide", "--save-config"])

    main()

    saved = yaml.safe_load((tmp_path / ".teleprompt.yaml").read_text(encoding="utf-8"))
    assert saved["port"] == 4000
    assert saved["remote_control"]["api_key"] == "secret"
    assert saved["teleprompter"]["line_width"] == "Wide"
    assert saved["teleprompter"]["scroll_speed"] == 120
    assert "Configuration saved" in capsys.readouterr().out

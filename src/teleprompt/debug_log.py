# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Debug logging for tuning speech-driven scrolling.

Appends to logs/speech.log:
- the speech buffer after each recognition result
- each speech match and the line it mapped to
- every position change and its reason

Logging is disabled by default. Call enable() to turn it on.
"""

from datetime import datetime
from pathlib import Path
from typing import List

# Log files location (in project root)
LOG_DIR: Path = Path(__file__).parent.parent.parent / "logs"
SPEECH_LOG: Path = LOG_DIR / "speech.log"

# Global flag to control whether debug logging is enabled
_ENABLED: bool = False  # pylint: disable=invalid-name


def enable() -> None:
    """Enable debug logging."""
    global _ENABLED  # pylint: disable=global-statement
    _ENABLED = True


def disable() -> None:
    """Disable debug logging."""
    global _ENABLED  # pylint: disable=global-statement
    _ENABLED = False


def is_enabled() -> bool:
    """Check if debug logging is enabled."""
    return _ENABLED


def _ensure_log_dir() -> None:
    """Create log directory if it doesn't exist."""
    LOG_DIR.mkdir(exist_ok=True)


def _timestamp() -> str:
    """Get current timestamp."""
    return datetime.now().strftime("%H:%M:%S.%f")[:-3]


def _append(line: str) -> None:
    _ensure_log_dir()
    with open(SPEECH_LOG, 'a', encoding='utf-8') as f:
        f.write(f"[{_timestamp()}] {line}\n")


def clear_logs() -> None:
    """Clear the log file for a fresh session."""
    if not _ENABLED:
        return
    _ensure_log_dir()
    with open(SPEECH_LOG, 'w', encoding='utf-8') as f:
        f.write(
            f"=== New session started at {datetime.now().isoformat()} ===\n\n")


def log_speech_buffer(session: str, buffer: List[str], current_line: int) -> None:
    """
    Log the speech buffer after a recognition result.

    Args:
        session: Session or user the buffer belongs to
        buffer: The normalized words currently buffered
        current_line: Scroll position when the result arrived
    """
    if not _ENABLED:
        return
    _append(f"{session} buffer line={current_line:4d} words={' '.join(buffer)!r}")


def log_speech_match(session: str, match_line: int | None, current_line: int) -> None:
    """Log the outcome of a match attempt (None when nothing matched)."""
    if not _ENABLED:
        return
    if match_line is None:
        _append(f"{session} no match  line={current_line:4d}")
    else:
        _append(f"{session} match     line={current_line:4d} -> {match_line:4d}")


def log_position_change(session: str, old_pos: int, new_pos: int, reason: str) -> None:
    """
    Log a position change.

    Args:
        session: Session or user whose position changed
        old_pos: Previous position
        new_pos: New position
        reason: Why the position changed (time, speech, stage_directions, remote)
    """
    if not _ENABLED:
        return
    _append(f"{session} POSITION CHANGE: {old_pos} -> {new_pos} ({reason})")

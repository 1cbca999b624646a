"""Tests for the debug_log module enable/disable functionality."""

import tempfile
from pathlib import Path
from unittest import mock

from teleprompt import debug_log
from teleprompt.controller import TeleprompterController


class TestDebugLogEnableDisable:
    """Test the enable/disable functionality of debug logging."""

    def setup_method(self):
        """Reset debug log state before each test."""
        debug_log.disable()

    def teardown_method(self):
        debug_log.disable()

    def test_disabled_by_default(self):
        """Debug logging should be disabled by default."""
        assert not debug_log.is_enabled()

    def test_enable(self):
        """enable() should turn on debug logging."""
        debug_log.enable()
        assert debug_log.is_enabled()

    def test_disable(self):
        """disable() should turn off debug logging."""
        debug_log.enable()
        debug_log.disable()
        assert not debug_log.is_enabled()

    def test_clear_logs_no_op_when_disabled(self):
        """clear_logs() should do nothing when logging is disabled."""
        with mock.patch.object(debug_log, '_ensure_log_dir') as mock_ensure:
            debug_log.clear_logs()
            mock_ensure.assert_not_called()

    def test_log_speech_buffer_no_op_when_disabled(self):
        """log_speech_buffer() should do nothing when logging is disabled."""
        with mock.patch.object(debug_log, '_ensure_log_dir') as mock_ensure:
            debug_log.log_speech_buffer("alice", ["hello"], 0)
            mock_ensure.assert_not_called()

    def test_log_speech_match_no_op_when_disabled(self):
        """log_speech_match() should do nothing when logging is disabled."""
        with mock.patch.object(debug_log, '_ensure_log_dir') as mock_ensure:
            debug_log.log_speech_match("alice", 3, 0)
            mock_ensure.assert_not_called()

    def test_log_position_change_no_op_when_disabled(self):
        """log_position_change() should do nothing when logging is disabled."""
        with mock.patch.object(debug_log, '_ensure_log_dir') as mock_ensure:
            debug_log.log_position_change("alice", 0, 1, "time")
            mock_ensure.assert_not_called()


class TestDebugLogWriting:
    """Test what gets written when debug logging is on."""

    def setup_method(self):
        debug_log.enable()

    def teardown_method(self):
        debug_log.disable()

    def test_clear_logs_writes_when_enabled(self):
        """clear_logs() should start a fresh log file."""
        with tempfile.TemporaryDirectory() as tmpdir:
            with mock.patch.object(debug_log, "LOG_DIR", Path(tmpdir)), \
                    mock.patch.object(debug_log, "SPEECH_LOG", Path(tmpdir) / "speech.log"):
                debug_log.log_position_change("alice", 0, 1, "time")
                debug_log.clear_logs()

                content = debug_log.SPEECH_LOG.read_text()
                assert "New session started" in content
                assert "POSITION CHANGE" not in content

    def test_entries_are_appended(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            with mock.patch.object(debug_log, "LOG_DIR", Path(tmpdir) / "logs"), \
                    mock.patch.object(debug_log, "SPEECH_LOG",
                                      Path(tmpdir) / "logs" / "speech.log"):
                debug_log.log_speech_buffer("alice", ["golf", "hotel"], 2)
                debug_log.log_speech_match("alice", None, 2)
                debug_log.log_speech_match("alice", 5, 2)
                debug_log.log_position_change("alice", 2, 5, "speech")

                lines = debug_log.SPEECH_LOG.read_text().splitlines()
                assert len(lines) == 4
                assert "alice buffer line=   2 words='golf hotel'" in lines[0]
                assert "no match" in lines[1]
                assert "line=   2 ->    5" in lines[2]
                assert lines[3].endswith("alice POSITION CHANGE: 2 -> 5 (speech)")

    def test_controller_logs_speech(self):
        """Speech input flows through to the log file."""
        with tempfile.TemporaryDirectory() as tmpdir:
            with mock.patch.object(debug_log, "LOG_DIR", Path(tmpdir)), \
                    mock.patch.object(debug_log, "SPEECH_LOG", Path(tmpdir) / "speech.log"):
                controller = TeleprompterController(
                    "one two three\nfour five six\nseven eight nine", name="bob")
                controller.process_speech_input("four five six", True)

                content = debug_log.SPEECH_LOG.read_text()
                assert "bob buffer" in content
                assert "bob match" in content

"""
Teleprompt - speech-synchronised teleprompter engine.

Wraps a script into display lines, follows the speaker through live
transcription (or scrolls at a fixed reading pace) and renders the visible
window with a progress header for a small head-mounted display.
"""

__version__ = "0.1.0"

from .controller import TeleprompterController
from .layout import ValidationError, wrap_text
from .matcher import SpeechPositionMatcher
from .registry import SessionRegistry
from .scroller import EndState, ScrollStateMachine
from .server import WebServer
from .session import DisplaySink, ScrollSession, TranscriptStream

__all__ = [
    "DisplaySink",
    "EndState",
    "ScrollSession",
    "ScrollStateMachine",
    "SessionRegistry",
    "SpeechPositionMatcher",
    "TeleprompterController",
    "TranscriptStream",
    "ValidationError",
    "WebServer",
    "wrap_text",
]

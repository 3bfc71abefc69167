"""Error taxonomy for the capture and transcription pipeline.

Only ``DeviceError`` halts a session. The other kinds are reported and the
pipeline moves on to the next chunk or segment.
"""

from typing import Optional


class SessionScribeError(Exception):
    """Base class for all pipeline errors."""


class ConfigurationError(SessionScribeError):
    """Configuration file missing, unreadable or invalid."""


class DeviceError(SessionScribeError):
    """Microphone unavailable, denied, or failed while recording."""


class FormatError(SessionScribeError):
    """Malformed WAV container or chunk formats that cannot be concatenated."""


class TranscriptionError(SessionScribeError):
    """Transcription engine call failed, timed out or returned non-2xx."""

    def __init__(self, message: str, segment_sequence: Optional[int] = None,
                 status: Optional[int] = None):
        super().__init__(message)
        self.segment_sequence = segment_sequence
        self.status = status


class HallucinationSuspect(SessionScribeError):
    """Engine output looks like a degenerate repetition loop."""

    def __init__(self, message: str, hint: str, pattern: str = "",
                 repetitions: int = 0, segment_sequence: Optional[int] = None):
        super().__init__(message)
        self.hint = hint
        self.pattern = pattern
        self.repetitions = repetitions
        self.segment_sequence = segment_sequence

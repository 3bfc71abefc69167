"""Data models for the SessionScribe pipeline."""

from .audio import AudioFormat, AudioChunk, Segment, LevelReading, AudioStats
from .session import SessionInfo
from .transcription import TranscriptSegment, TranscriptionRequest, TranscriptionResult
from .vad import VADState, VADDecision, FLUSH_HANGOVER, FLUSH_CAP, FLUSH_FINAL

__all__ = [
    "AudioFormat",
    "AudioChunk",
    "Segment",
    "LevelReading",
    "AudioStats",
    "SessionInfo",
    "TranscriptSegment",
    "TranscriptionRequest",
    "TranscriptionResult",
    "VADState",
    "VADDecision",
    "FLUSH_HANGOVER",
    "FLUSH_CAP",
    "FLUSH_FINAL",
]

"""Transcription-related data models."""

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class TranscriptSegment:
    """Timed piece of a transcription result (seconds from segment start)."""
    start: float
    end: float
    text: str


@dataclass
class TranscriptionRequest:
    """Payload handed to a transcription backend."""
    audio: bytes
    model: str
    language: str = "auto"
    mode: str = "auto"
    segment_sequence: Optional[int] = None


@dataclass
class TranscriptionResult:
    """Result of a transcription operation."""
    text: str
    segments: List[TranscriptSegment] = field(default_factory=list)
    model: str = ""
    language: str = "auto"
    processing_time: float = 0.0
    segment_sequence: Optional[int] = None

    @property
    def is_empty(self) -> bool:
        return not self.text.strip()

    def to_dict(self) -> dict:
        return {
            "text": self.text,
            "segments": [
                {"start": s.start, "end": s.end, "text": s.text}
                for s in self.segments
            ],
            "model": self.model,
            "language": self.language,
            "processing_time": self.processing_time,
            "segment_sequence": self.segment_sequence,
        }

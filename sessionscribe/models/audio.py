"""Audio-related data models."""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class AudioFormat:
    """PCM layout shared by every chunk of a segment."""
    sample_rate: int
    channels: int
    bits_per_sample: int

    @property
    def sample_width(self) -> int:
        return self.bits_per_sample // 8

    @property
    def bytes_per_frame(self) -> int:
        return self.channels * self.sample_width

    @property
    def bytes_per_second(self) -> int:
        return self.sample_rate * self.bytes_per_frame


@dataclass(frozen=True)
class AudioChunk:
    """Fixed-duration WAV chunk emitted by the capture session."""
    data: bytes  # complete RIFF/WAVE container
    format: AudioFormat
    sequence_number: int
    timestamp: float  # monotonic seconds when the chunk was closed
    duration_seconds: float = 0.0

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class Segment:
    """One WAV container submitted to the transcription engine."""
    data: bytes
    format: AudioFormat
    duration_seconds: float
    chunk_count: int
    sequence: int = 0
    started_at: Optional[float] = None  # timestamp of the first source chunk


@dataclass
class LevelReading:
    """Meter reading after the signal chain (0.0 - 1.0 RMS)."""
    rms: float
    left: Optional[float] = None
    right: Optional[float] = None

    @property
    def is_stereo(self) -> bool:
        return self.left is not None and self.right is not None


@dataclass
class AudioStats:
    """Audio recording statistics."""
    is_recording: bool
    is_paused: bool
    duration_seconds: float
    sample_rate: int
    channels: int
    total_chunks: int
    total_frames: int

"""Session-related data models."""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass
class SessionInfo:
    """Information about a recording session."""
    session_id: str
    start_time: datetime
    duration_seconds: float
    audio_file: str
    file_size_bytes: int
    sample_rate: int
    total_chunks: int
    client_id: Optional[str] = None
    segments_transcribed: int = 0
    segments_failed: int = 0

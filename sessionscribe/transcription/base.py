"""Abstract base classes for transcription backends."""

from abc import ABC, abstractmethod
from typing import Callable, Optional
import logging

from ..models.transcription import TranscriptionRequest, TranscriptionResult

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]


class AbstractTranscriptionBackend(ABC):
    """Abstract base class for transcription backends."""

    @abstractmethod
    async def transcribe(self, request: TranscriptionRequest,
                         progress: Optional[ProgressCallback] = None) -> TranscriptionResult:
        """Transcribe one segment and return the result.

        Args:
            request: Segment audio (WAV container) plus model/language/mode
            progress: Optional callback receiving 0-100 for this segment

        Returns:
            TranscriptionResult with text and timed sub-segments

        Raises:
            TranscriptionError: if the engine fails, times out or rejects the request
        """
        pass

    @abstractmethod
    async def initialize(self) -> bool:
        """Initialize backend resources and verify the engine is reachable.

        Returns:
            True if initialization successful, False otherwise
        """
        pass

    @abstractmethod
    async def cleanup(self) -> None:
        """Clean up backend resources."""
        pass

"""Accumulates accepted transcription blocks into one session transcript."""

import threading
import logging
from typing import Callable, List, Optional, Sequence

from ..config.settings import TranscriptSettings
from ..models.transcription import TranscriptSegment

logger = logging.getLogger(__name__)

BLOCK_SEPARATOR = "\n\n"


class TranscriptAssembler:
    """Append-only transcript with a summarization cursor.

    Blocks are joined with a blank line. Every append hands the full
    transcript to ``update_callback``.
    """

    def __init__(self,
                 update_callback: Optional[Callable[[str], None]] = None,
                 settings: Optional[TranscriptSettings] = None):
        self.update_callback = update_callback
        self.settings = settings or TranscriptSettings()
        self._blocks: List[str] = []
        self._text = ""
        self._cursor = 0
        self._lock = threading.RLock()

    @property
    def text(self) -> str:
        with self._lock:
            return self._text

    @property
    def blocks(self) -> List[str]:
        with self._lock:
            return list(self._blocks)

    def append(self, text: str) -> str:
        """Add a block and return the full transcript."""
        block = text.strip()
        with self._lock:
            if not block:
                return self._text
            self._blocks.append(block)
            self._text = block if not self._text else self._text + BLOCK_SEPARATOR + block
            full = self._text
        logger.debug(f"Transcript block #{len(self._blocks)} appended ({len(block)} chars)")
        if self.update_callback:
            self.update_callback(full)
        return full

    def cursor(self) -> int:
        with self._lock:
            return self._cursor

    def text_since(self, cursor: Optional[int] = None) -> str:
        """Transcript text after ``cursor`` (defaults to the stored cursor)."""
        with self._lock:
            position = self._cursor if cursor is None else cursor
            return self._text[position:].strip()

    def advance_cursor(self, position: Optional[int] = None) -> int:
        """Move the cursor, by default to the end of the transcript."""
        with self._lock:
            target = len(self._text) if position is None else position
            self._cursor = max(0, min(target, len(self._text)))
            return self._cursor

    def clear(self) -> None:
        with self._lock:
            self._blocks = []
            self._text = ""
            self._cursor = 0
        logger.info("Transcript cleared")
        if self.update_callback:
            self.update_callback("")

    def format_dialogue(self, segments: Sequence[TranscriptSegment]) -> str:
        """Label sub-segments with alternating speakers.

        The speaker changes every ``speaker_turn_seconds`` of segment start
        time; consecutive lines of one speaker are merged.
        """
        turn = self.settings.speaker_turn_seconds
        labels = self.settings.speaker_labels
        lines: List[List[str]] = []
        for segment in segments:
            text = segment.text.strip()
            if not text:
                continue
            label = labels[int(segment.start // turn) % 2]
            if lines and lines[-1][0] == label:
                lines[-1][1] = f"{lines[-1][1]} {text}"
            else:
                lines.append([label, text])
        return "\n".join(f"{label}: {text}" for label, text in lines)

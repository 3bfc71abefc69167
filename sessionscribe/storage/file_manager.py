"""File management for session audio, segment archives and transcripts."""

import json
import logging
import random
import string
from pathlib import Path
from datetime import datetime
from typing import Any, Dict, List, Optional
from dataclasses import asdict

from ..models.session import SessionInfo
from ..models.transcription import TranscriptionResult

logger = logging.getLogger(__name__)


class FileManager:
    """Stores everything a session produces under ``<data_dir>/sessions/<id>``."""

    def __init__(self, data_dir: str = "./data"):
        """Initialize file manager with data directory.

        Args:
            data_dir: Base directory for storing all data
        """
        self.data_dir = Path(data_dir)
        self.sessions_dir = self.data_dir / "sessions"
        self.logs_dir = self.data_dir / "logs"

        self._ensure_directories()

        logger.info(f"FileManager initialized with data_dir: {self.data_dir}")

    def _ensure_directories(self) -> None:
        for directory in [self.data_dir, self.sessions_dir, self.logs_dir]:
            directory.mkdir(parents=True, exist_ok=True)
            logger.debug(f"Ensured directory exists: {directory}")

    def create_session_directory(self, session_id: Optional[str] = None) -> str:
        """Create a session directory.

        Args:
            session_id: Explicit identifier; a timestamp with a random suffix
                        is generated when omitted

        Returns:
            Session ID
        """
        if session_id is None:
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            random_suffix = ''.join(random.choices(string.ascii_lowercase + string.digits, k=4))
            session_id = f"{timestamp}_{random_suffix}"
        session_path = self.sessions_dir / session_id
        (session_path / "segments").mkdir(parents=True, exist_ok=True)

        logger.info(f"Created session directory: {session_path}")
        return session_id

    def get_session_path(self, session_id: str) -> Path:
        return self.sessions_dir / session_id

    def save_segment_audio(self, audio_data: bytes, session_id: str, sequence: int) -> str:
        """Archive the WAV sent to the engine for segment ``sequence``."""
        path = self._segments_path(session_id) / f"segment_{sequence:04d}.wav"
        self._write_bytes(path, audio_data)
        logger.debug(f"Segment audio saved: {path} ({len(audio_data)} bytes)")
        return str(path)

    def save_segment_result(self, result: TranscriptionResult, session_id: str,
                            accepted_text: Optional[str] = None,
                            suspect: Optional[str] = None) -> str:
        """Store the engine result for one segment next to its audio."""
        sequence = result.segment_sequence or 0
        path = self._segments_path(session_id) / f"segment_{sequence:04d}.json"
        record = result.to_dict()
        record["accepted_text"] = accepted_text
        record["hallucination"] = suspect
        self._write_json(path, record)
        logger.debug(f"Segment result saved: {path}")
        return str(path)

    def save_audio_file(self, audio_data: bytes, session_id: str, filename: str = "session.wav") -> str:
        """Save the full-session WAV and return its path."""
        if not filename.endswith('.wav'):
            filename += '.wav'
        path = self.get_session_path(session_id) / filename
        self._write_bytes(path, audio_data)
        logger.info(f"Audio file saved: {path} ({len(audio_data)} bytes)")
        return str(path)

    def save_transcript(self, transcript: str, session_id: str) -> str:
        path = self.get_session_path(session_id) / "transcript.txt"
        path.parent.mkdir(parents=True, exist_ok=True)
        try:
            path.write_text(transcript, encoding="utf-8")
        except OSError as e:
            logger.error(f"Error saving transcript: {e}")
            raise
        logger.info(f"Transcript saved: {path} ({len(transcript)} chars)")
        return str(path)

    def save_session_info(self, session_info: SessionInfo) -> str:
        """Save session information to JSON file.

        Returns:
            Path to saved session info file
        """
        info_file = self.get_session_path(session_info.session_id) / "session_info.json"
        info_dict = asdict(session_info)
        info_dict['start_time'] = session_info.start_time.isoformat()
        self._write_json(info_file, info_dict)
        logger.info(f"Session info saved: {info_file}")
        return str(info_file)

    def load_session_info(self, session_id: str) -> Optional[SessionInfo]:
        """Load session information, or None if missing or unreadable."""
        info_file = self.get_session_path(session_id) / "session_info.json"

        if not info_file.exists():
            logger.warning(f"Session info file not found: {info_file}")
            return None

        try:
            with open(info_file, 'r', encoding='utf-8') as f:
                data = json.load(f)
            data['start_time'] = datetime.fromisoformat(data['start_time'])
            return SessionInfo(**data)
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.error(f"Error loading session info: {e}")
            return None

    def list_sessions(self, client_id: Optional[str] = None) -> List[str]:
        """List session IDs, optionally only those recorded for ``client_id``."""
        sessions = []
        for path in self.sessions_dir.iterdir():
            if not (path.is_dir() and (path / "session_info.json").exists()):
                continue
            if client_id is not None:
                info = self.load_session_info(path.name)
                if info is None or info.client_id != client_id:
                    continue
            sessions.append(path.name)

        sessions.sort()
        logger.debug(f"Found {len(sessions)} sessions")
        return sessions

    def _segments_path(self, session_id: str) -> Path:
        path = self.get_session_path(session_id) / "segments"
        path.mkdir(parents=True, exist_ok=True)
        return path

    def _write_bytes(self, path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        try:
            with open(path, 'wb') as f:
                f.write(data)
        except OSError as e:
            logger.error(f"Error saving {path}: {e}")
            raise

    def _write_json(self, path: Path, data: Dict[str, Any]) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        try:
            with open(path, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
        except OSError as e:
            logger.error(f"Error saving {path}: {e}")
            raise

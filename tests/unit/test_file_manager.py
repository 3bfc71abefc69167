"""Unit tests for FileManager class."""

import json
from datetime import datetime
from pathlib import Path

import pytest

from sessionscribe.models.session import SessionInfo
from sessionscribe.models.transcription import TranscriptionResult, TranscriptSegment
from sessionscribe.storage.file_manager import FileManager


def session_info(session_id, client_id=None):
    return SessionInfo(
        session_id=session_id,
        start_time=datetime(2024, 1, 15, 14, 30, 0),
        duration_seconds=65.5,
        audio_file=f"/tmp/{session_id}.wav",
        file_size_bytes=1024000,
        sample_rate=16000,
        total_chunks=22,
        client_id=client_id,
        segments_transcribed=4,
        segments_failed=1,
    )


@pytest.mark.unit
class TestFileManager:
    """Test cases for FileManager class."""

    def test_initialization(self, temp_data_dir):
        fm = FileManager(temp_data_dir)

        assert fm.data_dir == Path(temp_data_dir)
        assert fm.sessions_dir == Path(temp_data_dir) / "sessions"
        assert fm.sessions_dir.exists()
        assert fm.logs_dir.exists()

    def test_create_session_directory(self, temp_data_dir):
        fm = FileManager(temp_data_dir)

        session_id = fm.create_session_directory()

        # YYYYMMDD_HHMMSS_XXXX
        assert len(session_id) == 20
        assert session_id.count("_") == 2
        assert (fm.get_session_path(session_id) / "segments").is_dir()

    def test_create_named_session_directory(self, temp_data_dir):
        fm = FileManager(temp_data_dir)

        assert fm.create_session_directory("intake-42") == "intake-42"
        assert fm.get_session_path("intake-42").is_dir()

    def test_save_segment_audio_and_result(self, temp_data_dir):
        fm = FileManager(temp_data_dir)
        session_id = fm.create_session_directory("s1")
        result = TranscriptionResult(
            text="hello", segments=[TranscriptSegment(0.0, 1.0, "hello")],
            model="tiny", segment_sequence=3,
        )

        audio_path = fm.save_segment_audio(b"RIFFdata", session_id, 3)
        result_path = fm.save_segment_result(result, session_id, accepted_text="hello")

        assert Path(audio_path).name == "segment_0003.wav"
        assert Path(audio_path).read_bytes() == b"RIFFdata"
        record = json.loads(Path(result_path).read_text())
        assert record["text"] == "hello"
        assert record["accepted_text"] == "hello"
        assert record["hallucination"] is None
        assert record["segments"] == [{"start": 0.0, "end": 1.0, "text": "hello"}]

    def test_save_audio_file_adds_extension(self, temp_data_dir):
        fm = FileManager(temp_data_dir)
        fm.create_session_directory("s1")

        path = fm.save_audio_file(b"RIFF", "s1", filename="full")

        assert path.endswith("full.wav")
        assert Path(path).read_bytes() == b"RIFF"

    def test_save_transcript(self, temp_data_dir):
        fm = FileManager(temp_data_dir)

        path = fm.save_transcript("first\n\nsecond", "s1")

        assert Path(path).read_text(encoding="utf-8") == "first\n\nsecond"

    def test_session_info_roundtrip(self, temp_data_dir):
        fm = FileManager(temp_data_dir)
        info = session_info("s1", client_id="client-7")

        fm.save_session_info(info)
        loaded = fm.load_session_info("s1")

        assert loaded == info

    def test_load_missing_session_info(self, temp_data_dir):
        fm = FileManager(temp_data_dir)

        assert fm.load_session_info("nope") is None

    def test_load_corrupt_session_info(self, temp_data_dir):
        fm = FileManager(temp_data_dir)
        fm.create_session_directory("broken")
        (fm.get_session_path("broken") / "session_info.json").write_text("{not json")

        assert fm.load_session_info("broken") is None

    def test_list_sessions_by_client(self, temp_data_dir):
        fm = FileManager(temp_data_dir)
        fm.save_session_info(session_info("a", client_id="alice"))
        fm.save_session_info(session_info("b", client_id="bob"))
        fm.save_session_info(session_info("c", client_id="alice"))
        fm.create_session_directory("no-info")

        assert fm.list_sessions() == ["a", "b", "c"]
        assert fm.list_sessions(client_id="alice") == ["a", "c"]

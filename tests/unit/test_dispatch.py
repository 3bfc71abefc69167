"""Unit tests for TranscriptionDispatchQueue."""

import time
import asyncio
import logging
from typing import Dict, List

import pytest
from unittest.mock import MagicMock

from sessionscribe.config.settings import DispatchSettings, EngineSettings
from sessionscribe.errors import TranscriptionError
from sessionscribe.models.audio import AudioFormat, Segment
from sessionscribe.models.transcription import TranscriptionRequest, TranscriptionResult
from sessionscribe.transcription.assembler import TranscriptAssembler
from sessionscribe.transcription.base import AbstractTranscriptionBackend
from sessionscribe.transcription.dispatch import TranscriptionDispatchQueue

logger = logging.getLogger(__name__)


class MockTranscriptionBackend(AbstractTranscriptionBackend):
    """A mock backend answering per segment sequence."""

    def __init__(self, texts: Dict[int, str] = None, failures=(), hang=(), delay: float = 0.01):
        self.texts = texts or {}
        self.failures = set(failures)
        self.hang = set(hang)
        self.delay = delay
        self.requests: List[TranscriptionRequest] = []

    async def transcribe(self, request, progress=None):
        self.requests.append(request)
        sequence = request.segment_sequence
        logger.debug(f"MockBackend: transcribing segment #{sequence}")
        if sequence in self.hang:
            await asyncio.sleep(3600)
        await asyncio.sleep(self.delay)
        if sequence in self.failures:
            raise TranscriptionError("engine exploded", status=500)
        if progress:
            progress(50)
        return TranscriptionResult(text=self.texts.get(sequence, f"segment {sequence}"),
                                   model=request.model)

    async def initialize(self) -> bool:
        return True

    async def cleanup(self) -> None:
        pass


def make_segment(sequence: int) -> Segment:
    return Segment(
        data=b"RIFF" + bytes(60),
        format=AudioFormat(16000, 1, 16),
        duration_seconds=1.0,
        chunk_count=1,
        sequence=sequence,
    )


@pytest.fixture
def mock_result_callback():
    return MagicMock()


@pytest.fixture
def mock_error_callback():
    return MagicMock()


@pytest.mark.unit
class TestTranscriptionDispatchQueue:
    """Test cases for TranscriptionDispatchQueue."""

    def test_results_arrive_in_enqueue_order(self, mock_result_callback):
        backend = MockTranscriptionBackend()
        dispatch = TranscriptionDispatchQueue(backend, mock_result_callback)
        dispatch.start()

        for sequence in range(1, 6):
            assert dispatch.enqueue(make_segment(sequence))

        assert dispatch.drain(timeout=5.0)
        dispatch.shutdown(timeout=1.0)

        sequences = [c[0][0].segment_sequence for c in mock_result_callback.call_args_list]
        assert sequences == [1, 2, 3, 4, 5]
        assert dispatch.segments_transcribed == 5

    def test_failed_segment_does_not_stop_the_loop(self, mock_error_callback):
        backend = MockTranscriptionBackend(texts={1: "one", 3: "three"}, failures={2})
        assembler = TranscriptAssembler()
        dispatch = TranscriptionDispatchQueue(
            backend, lambda r: assembler.append(r.text), error_callback=mock_error_callback)
        dispatch.start()

        for sequence in (1, 2, 3):
            dispatch.enqueue(make_segment(sequence))
        assert dispatch.shutdown(timeout=5.0)

        assert assembler.text == "one\n\nthree"
        mock_error_callback.assert_called_once()
        error = mock_error_callback.call_args[0][0]
        assert isinstance(error, TranscriptionError)
        assert error.segment_sequence == 2
        assert error.status == 500
        assert dispatch.segments_failed == 1

    def test_request_uses_engine_settings(self, mock_result_callback):
        backend = MockTranscriptionBackend()
        engine = EngineSettings(model="base", language="fr", mode="fast")
        dispatch = TranscriptionDispatchQueue(backend, mock_result_callback, engine_settings=engine)
        dispatch.start()

        dispatch.enqueue(make_segment(1))
        assert dispatch.drain(timeout=5.0)
        dispatch.set_model("small")
        dispatch.enqueue(make_segment(2))
        dispatch.shutdown(timeout=5.0)

        first, second = backend.requests
        assert (first.model, first.language, first.mode) == ("base", "fr", "fast")
        assert first.audio == make_segment(1).data
        assert second.model == "small"

    def test_progress_is_reported_per_segment(self, mock_result_callback):
        progress = MagicMock()
        dispatch = TranscriptionDispatchQueue(MockTranscriptionBackend(), mock_result_callback,
                                              progress_callback=progress)
        dispatch.start()

        dispatch.enqueue(make_segment(4))
        dispatch.shutdown(timeout=5.0)

        assert [c[0] for c in progress.call_args_list] == [(4, 0), (4, 50), (4, 100)]

    def test_full_queue_rejects(self, mock_result_callback, mock_error_callback):
        dispatch = TranscriptionDispatchQueue(
            MockTranscriptionBackend(), mock_result_callback,
            error_callback=mock_error_callback,
            settings=DispatchSettings(max_pending_segments=2),
        )
        # worker not started, nothing is consumed

        assert dispatch.enqueue(make_segment(1))
        assert dispatch.enqueue(make_segment(2))
        assert dispatch.enqueue(make_segment(3)) is False

        assert dispatch.pending_count == 2
        assert dispatch.segments_rejected == 1
        assert mock_error_callback.call_args[0][0].segment_sequence == 3

    def test_enqueue_after_shutdown_rejects(self, mock_result_callback):
        dispatch = TranscriptionDispatchQueue(MockTranscriptionBackend(), mock_result_callback)
        dispatch.start()
        dispatch.shutdown(timeout=1.0)

        assert dispatch.enqueue(make_segment(1)) is False

    def test_engine_timeout_is_reported(self, mock_result_callback, mock_error_callback):
        backend = MockTranscriptionBackend(hang={1})
        dispatch = TranscriptionDispatchQueue(
            backend, mock_result_callback, error_callback=mock_error_callback,
            engine_settings=EngineSettings(timeout_seconds=0.2))
        dispatch.start()

        dispatch.enqueue(make_segment(1))
        dispatch.enqueue(make_segment(2))
        assert dispatch.shutdown(timeout=5.0)

        assert "timed out" in str(mock_error_callback.call_args[0][0])
        assert mock_result_callback.call_count == 1

    @pytest.mark.slow
    def test_shutdown_cancels_hanging_engine(self, mock_result_callback, mock_error_callback):
        backend = MockTranscriptionBackend(hang={1})
        dispatch = TranscriptionDispatchQueue(backend, mock_result_callback,
                                              error_callback=mock_error_callback)
        dispatch.start()
        dispatch.enqueue(make_segment(1))
        dispatch.enqueue(make_segment(2))
        time.sleep(0.1)

        started = time.monotonic()
        drained = dispatch.shutdown(timeout=0.5)
        elapsed = time.monotonic() - started

        assert drained is False
        assert elapsed < 3.0
        assert not dispatch.worker_thread.is_alive()
        mock_result_callback.assert_not_called()
        reasons = [str(c[0][0]) for c in mock_error_callback.call_args_list]
        assert any("abandoned" in r for r in reasons)
        assert any("cancelled" in r for r in reasons)

    def test_drain_times_out(self, mock_result_callback):
        dispatch = TranscriptionDispatchQueue(MockTranscriptionBackend(hang={1}),
                                              mock_result_callback)
        dispatch.start()
        dispatch.enqueue(make_segment(1))

        assert dispatch.drain(timeout=0.2) is False
        dispatch.shutdown(timeout=0.1)

"""Recording pipeline wiring capture, VAD, dispatch and the transcript together."""

import logging
import threading
from datetime import datetime
from typing import Callable, Optional

from ..audio.activity import ActivityMonitor
from ..audio.capture import AudioCaptureSession
from ..audio.wav import WavConcatenator
from ..config.settings import PipelineSettings
from ..errors import DeviceError, SessionScribeError
from ..models.audio import AudioChunk, AudioStats, Segment
from ..models.session import SessionInfo
from ..models.transcription import TranscriptionResult
from ..storage.file_manager import FileManager
from ..transcription.assembler import TranscriptAssembler
from ..transcription.base import AbstractTranscriptionBackend
from ..transcription.bridge_backend import BridgeTranscriptionBackend
from ..transcription.dispatch import TranscriptionDispatchQueue
from ..transcription.hallucination import HallucinationFilter
from ..transcription.publisher import PipelineEventPublisher, TranscriptPublisher
from ..transcription.summarizer import ContextualSummarizer, LLMSummaryEngine

logger = logging.getLogger(__name__)


class RecordingPipeline:
    """Owns one recording session from microphone to transcript.

    Chunks arrive on the capture thread and go through the activity monitor
    under ``_lock``; flushed segments are handed to the dispatch queue,
    whose single worker filters results and appends them to the transcript.
    """

    def __init__(self,
                 settings: Optional[PipelineSettings] = None,
                 backend: Optional[AbstractTranscriptionBackend] = None,
                 file_manager: Optional[FileManager] = None,
                 events: Optional[PipelineEventPublisher] = None,
                 update_callback: Optional[Callable[[str], None]] = None,
                 capture_factory: Callable[..., AudioCaptureSession] = AudioCaptureSession):
        """Initialize the pipeline.

        Args:
            settings: All pipeline tunables
            backend: Transcription backend, the HTTP bridge by default
            file_manager: Archive for segments and session audio
            events: Publisher for errors, notices, progress and levels
            update_callback: Receives the full transcript on every append,
                             defaults to publishing it on the transcript topic
            capture_factory: Builds the capture session for each start()
        """
        self.settings = settings or PipelineSettings()
        self.backend = backend or BridgeTranscriptionBackend(self.settings.engine)
        self.file_manager = file_manager or FileManager(self.settings.storage.data_directory)
        self.events = events or PipelineEventPublisher()
        self.capture_factory = capture_factory

        self.assembler = TranscriptAssembler(
            update_callback=update_callback or TranscriptPublisher().get_callback(),
            settings=self.settings.transcript,
        )
        self.hallucination_filter = HallucinationFilter(
            self.settings.hallucination,
            model=self.settings.engine.model,
            notice_callback=self.events.get_notice_callback(),
        )
        self.monitor = ActivityMonitor(
            segment_sink=self._on_segment,
            settings=self.settings.vad,
            concatenator=WavConcatenator(self.settings.concat.padding_ms),
            error_callback=self._on_error,
        )
        self.summarizer = ContextualSummarizer(
            self.assembler, LLMSummaryEngine(self.settings.summary), self.settings.summary)

        self.capture: Optional[AudioCaptureSession] = None
        self.dispatch: Optional[TranscriptionDispatchQueue] = None
        self._lock = threading.Lock()

        self.is_recording = False
        self.session_id: Optional[str] = None
        self.client_id: Optional[str] = None
        self.start_time: Optional[datetime] = None
        self.fatal_error: Optional[DeviceError] = None

    def start(self, session_id: Optional[str] = None, client_id: Optional[str] = None) -> str:
        """Open the microphone and begin a session.

        Returns:
            The session ID

        Raises:
            DeviceError: if the microphone cannot be opened
        """
        if self.is_recording:
            logger.warning(f"Already recording session {self.session_id}")
            return self.session_id

        self.session_id = self.file_manager.create_session_directory(session_id)
        self.client_id = client_id
        self.start_time = datetime.now()
        self.fatal_error = None
        with self._lock:
            self.monitor.reset()
        self.assembler.clear()

        self.dispatch = TranscriptionDispatchQueue(
            self.backend,
            result_callback=self._on_result,
            error_callback=self._on_error,
            progress_callback=self.events.get_progress_callback(),
            settings=self.settings.dispatch,
            engine_settings=self.settings.engine,
        )
        self.dispatch.start()

        self.capture = self.capture_factory(
            chunk_callback=self._on_chunk,
            settings=self.settings.capture,
            signal_settings=self.settings.signal_chain,
            level_callback=self.events.get_level_callback(),
            error_callback=self._on_error,
        )
        try:
            self.capture.start()
        except Exception as e:
            self.dispatch.shutdown(timeout=0)
            self.dispatch = None
            self.capture = None
            if isinstance(e, SessionScribeError):
                self._on_error(e)
            else:
                logger.error(f"Capture failed to start: {e}", exc_info=True)
            raise

        self.is_recording = True
        logger.info(f"Started recording for session: {self.session_id}"
                    + (f" (client {client_id})" if client_id else ""))
        return self.session_id

    def pause(self) -> None:
        if self.is_recording and self.capture:
            self.capture.pause()

    def resume(self) -> None:
        if self.is_recording and self.capture:
            self.capture.resume()

    def stop(self, timeout: Optional[float] = None) -> bytes:
        """Stop capture, flush, wait for pending transcriptions and archive.

        Args:
            timeout: Seconds to wait for the dispatch queue to drain,
                     defaults to the configured drain timeout. Segments
                     still pending afterwards are abandoned.

        Returns:
            The full session WAV (empty if session audio is not kept)
        """
        if not self.is_recording:
            logger.warning("No recording in progress")
            return b""

        if timeout is None:
            timeout = self.settings.dispatch.drain_timeout_ms / 1000.0

        logger.info(f"Stopping session {self.session_id}")
        audio = self.capture.stop()
        with self._lock:
            self.monitor.flush()

        if not self.dispatch.shutdown(timeout):
            logger.warning(f"Pending transcriptions abandoned after {timeout:.1f}s")
        self.is_recording = False

        self._archive_session(audio)
        logger.info(f"Session stopped: {self.session_id}")
        return audio

    def reset_context(self) -> None:
        """Forget buffered speech and the transcript (new client or model)."""
        with self._lock:
            self.monitor.reset()
        self.assembler.clear()

    def set_model(self, model: str) -> None:
        """Switch the engine model; VAD context restarts with it.

        Raises:
            ConfigurationError: if no hallucination profile fits the model,
                                in which case nothing is changed
        """
        self.hallucination_filter.set_model(model)
        self.settings.engine.model = model
        if self.dispatch:
            self.dispatch.set_model(model)
        with self._lock:
            self.monitor.reset()

    def get_recording_stats(self) -> Optional[AudioStats]:
        if self.capture:
            return self.capture.get_recording_stats()
        return None

    @property
    def transcript(self) -> str:
        return self.assembler.text

    def _on_chunk(self, chunk: AudioChunk) -> None:
        with self._lock:
            self.monitor.process(chunk)

    def _on_segment(self, segment: Segment) -> None:
        if self.settings.storage.archive_segments and self.session_id:
            try:
                self.file_manager.save_segment_audio(segment.data, self.session_id, segment.sequence)
            except OSError as e:
                logger.error(f"Could not archive segment #{segment.sequence}: {e}")
        self.dispatch.enqueue(segment)

    def _on_result(self, result: TranscriptionResult) -> None:
        text, suspect = self.hallucination_filter.filter(result)
        if text is not None and self.settings.transcript.dialogue_mode and result.segments:
            text = self.hallucination_filter.collapse_loops(
                self.assembler.format_dialogue(result.segments))
        if text:
            self.assembler.append(text)

        if self.settings.storage.archive_segments and self.session_id:
            try:
                self.file_manager.save_segment_result(
                    result, self.session_id, accepted_text=text,
                    suspect=str(suspect) if suspect else None)
            except OSError as e:
                logger.error(f"Could not archive result of segment #{result.segment_sequence}: {e}")

    def _on_error(self, error: SessionScribeError) -> None:
        if isinstance(error, DeviceError):
            logger.error(f"Session {self.session_id} halted: {error}")
            self.fatal_error = error
        self.events.publish_error(error)

    def _archive_session(self, audio: bytes) -> None:
        stats = self.capture.get_recording_stats()
        audio_file = ""
        try:
            if audio:
                audio_file = self.file_manager.save_audio_file(audio, self.session_id)
            self.file_manager.save_transcript(self.assembler.text, self.session_id)
            self.file_manager.save_session_info(SessionInfo(
                session_id=self.session_id,
                start_time=self.start_time,
                duration_seconds=stats.duration_seconds,
                audio_file=audio_file,
                file_size_bytes=len(audio),
                sample_rate=stats.sample_rate,
                total_chunks=stats.total_chunks,
                client_id=self.client_id,
                segments_transcribed=self.dispatch.segments_transcribed,
                segments_failed=self.dispatch.segments_failed,
            ))
        except OSError as e:
            logger.error(f"Error archiving session {self.session_id}: {e}")
            self.events.publish_error(SessionScribeError(f"Archiving failed: {e}"))

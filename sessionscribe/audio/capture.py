"""Microphone capture session emitting fixed-duration WAV chunks."""

import math
import time
import logging
import threading
from threading import Thread, Event
from typing import Callable, List, Optional

import numpy as np
import pyaudio
from scipy.signal import resample_poly

from ..config.settings import CaptureSettings, SignalChainSettings
from ..errors import DeviceError
from ..models.audio import AudioChunk, AudioFormat, AudioStats, LevelReading
from .signal_chain import SignalChain, downmix_dominant, rms
from .wav import encode_wav

logger = logging.getLogger(__name__)


class AudioCaptureSession:
    """Owns the input stream and the signal chain for one recording."""

    def __init__(
        self,
        chunk_callback: Callable[[AudioChunk], None],
        settings: Optional[CaptureSettings] = None,
        signal_settings: Optional[SignalChainSettings] = None,
        level_callback: Optional[Callable[[LevelReading], None]] = None,
        error_callback: Optional[Callable[[Exception], None]] = None,
    ):
        """Initialize capture with the given settings.

        Args:
            chunk_callback: Receives every emitted AudioChunk (capture thread)
            settings: Device and chunking settings
            signal_settings: Signal chain settings
            level_callback: Receives a LevelReading per device buffer
            error_callback: Receives DeviceError raised while recording
        """
        self.chunk_callback = chunk_callback
        self.settings = settings or CaptureSettings()
        self.signal_settings = signal_settings or SignalChainSettings()
        self.level_callback = level_callback
        self.error_callback = error_callback

        self.device_rate = self.settings.device_sample_rate or self.settings.sample_rate
        self.chunk_format = AudioFormat(
            sample_rate=self.settings.sample_rate, channels=1, bits_per_sample=16
        )
        self.channels = self.settings.channels
        self.slice_frames = int(self.device_rate * self.settings.chunk_seconds)

        # Recording thread management
        self.recording_thread: Optional[Thread] = None
        self.stop_event = Event()
        self.is_recording = False
        self.is_paused = False

        self.pyaudio_instance = None
        self.stream = None
        self.signal_chain: Optional[SignalChain] = None
        self._device_lock = threading.Lock()
        self._buffer_lock = threading.Lock()

        # Duration accounting
        self.start_time: Optional[float] = None
        self._paused_at: Optional[float] = None
        self._paused_total = 0.0

        self.total_chunks = 0
        self.total_frames = 0
        self._buffer: List[np.ndarray] = []
        self._buffered_frames = 0
        self._session_audio: List[bytes] = []

    def start(self) -> None:
        """Open the device and start emitting chunks.

        Raises:
            DeviceError: if no input stream can be opened
        """
        if self.is_recording:
            logger.warning("Recording already in progress")
            return

        logger.info("Starting audio capture")
        self._open_stream()
        self.signal_chain = SignalChain(self.signal_settings, self.device_rate)

        self.stop_event.clear()
        self.start_time = time.monotonic()
        self._paused_at = None
        self._paused_total = 0.0
        self.total_chunks = 0
        self.total_frames = 0
        self._buffer = []
        self._buffered_frames = 0
        self._session_audio = []

        self.recording_thread = Thread(target=self._record_continuously, daemon=True)
        self.recording_thread.name = "AudioCaptureThread"
        self.is_recording = True
        self.is_paused = False
        self.recording_thread.start()

    def pause(self) -> None:
        """Stop emitting audio; the device keeps being drained."""
        if not self.is_recording or self.is_paused:
            return
        self.is_paused = True
        self._paused_at = time.monotonic()
        logger.info("Audio capture paused")

    def resume(self) -> None:
        if not self.is_recording or not self.is_paused:
            return
        self._paused_total += time.monotonic() - self._paused_at
        self._paused_at = None
        self.is_paused = False
        logger.info("Audio capture resumed")

    def stop(self) -> bytes:
        """Stop recording, emit the last partial chunk and release the device.

        Returns:
            The whole session as one WAV container (empty when session audio
            is not kept or nothing was recorded)
        """
        if not self.is_recording:
            logger.warning("No recording in progress")
            return b""

        logger.info("Stopping audio capture")
        if self.is_paused:
            self.resume()
        self.stop_event.set()
        thread_stopped = True
        try:
            if self.recording_thread and self.recording_thread.is_alive():
                self.recording_thread.join(timeout=2.0)
                thread_stopped = not self.recording_thread.is_alive()
            if thread_stopped:
                self._emit_chunk()
            else:
                # Reader is still inside the device; leave stream and buffer to it
                logger.warning("Recording thread did not stop cleanly, skipping final chunk")
        finally:
            if thread_stopped:
                self._release_device()
            self.is_recording = False

        logger.info(f"Capture stopped. Total chunks: {self.total_chunks}, "
                    f"duration: {self.elapsed_seconds:.1f}s")
        if not self._session_audio:
            return b""
        return encode_wav(self.chunk_format, b"".join(self._session_audio))

    @property
    def elapsed_seconds(self) -> float:
        """Recorded time, excluding pauses."""
        if self.start_time is None:
            return 0.0
        now = self._paused_at if self._paused_at is not None else time.monotonic()
        return max(0.0, now - self.start_time - self._paused_total)

    def _open_stream(self) -> None:
        try:
            self.pyaudio_instance = pyaudio.PyAudio()
        except OSError as e:
            self.pyaudio_instance = None
            raise DeviceError(f"Audio system unavailable: {e}") from e

        attempts = [self.settings.channels]
        if self.settings.channels > 1:
            attempts.append(1)

        last_error = None
        for channels in attempts:
            try:
                self.stream = self.pyaudio_instance.open(
                    format=pyaudio.paInt16,
                    channels=channels,
                    rate=self.device_rate,
                    input=True,
                    input_device_index=self.settings.device_index,
                    frames_per_buffer=self.settings.frames_per_buffer,
                    stream_callback=None,
                )
            except (OSError, ValueError) as e:
                logger.warning(f"Could not open input with {channels} channel(s): {e}")
                last_error = e
                continue
            self.channels = channels
            logger.info(f"Audio stream opened: {self.device_rate}Hz, {channels} channel(s), "
                        f"{self.settings.frames_per_buffer} frames/buffer")
            return

        self._release_device()
        raise DeviceError(f"Microphone unavailable: {last_error}") from last_error

    def _release_device(self) -> None:
        with self._device_lock:
            if self.stream is not None:
                try:
                    self.stream.stop_stream()
                    self.stream.close()
                except OSError as e:
                    logger.warning(f"Error closing audio stream: {e}")
                self.stream = None
            if self.pyaudio_instance is not None:
                self.pyaudio_instance.terminate()
                self.pyaudio_instance = None

    def _record_continuously(self) -> None:
        """Internal method: continuous recording loop in background thread."""
        try:
            while not self.stop_event.is_set():
                stream = self.stream
                if stream is None:
                    break
                raw = stream.read(self.settings.frames_per_buffer, exception_on_overflow=False)
                self._handle_buffer(raw)
        except (OSError, IOError) as e:
            if self.stop_event.is_set():
                logger.debug(f"Read interrupted by stop: {e}")
                return
            logger.error(f"Audio device failed while recording: {e}")
            self.stop_event.set()
            self._release_device()
            if self.error_callback:
                self.error_callback(DeviceError(f"Audio device failed: {e}"))

    def _handle_buffer(self, raw: bytes) -> None:
        if self.is_paused or not raw:
            return

        frames = np.frombuffer(raw, dtype="<i2").astype(np.float32) / 32768.0
        frames = frames.reshape(-1, self.channels)
        processed = self.signal_chain.process(frames)
        self._report_level(processed)

        mono = downmix_dominant(processed)
        with self._buffer_lock:
            self._buffer.append(mono)
            self._buffered_frames += len(mono)
            ready = self._buffered_frames >= self.slice_frames
        if ready:
            self._emit_chunk()

    def _report_level(self, processed: np.ndarray) -> None:
        if not self.level_callback:
            return
        if processed.shape[1] == 2:
            reading = LevelReading(
                rms=rms(processed),
                left=rms(processed[:, 0]),
                right=rms(processed[:, 1]),
            )
        else:
            reading = LevelReading(rms=rms(processed))
        self.level_callback(reading)

    def _emit_chunk(self) -> None:
        with self._buffer_lock:
            if not self._buffer:
                return
            merged = np.concatenate(self._buffer)
            self._buffer = []
            self._buffered_frames = 0

        if self.device_rate != self.settings.sample_rate:
            divisor = math.gcd(self.settings.sample_rate, self.device_rate)
            merged = resample_poly(
                merged, self.settings.sample_rate // divisor, self.device_rate // divisor
            )

        pcm = (np.clip(merged, -1.0, 1.0) * 32767.0).astype("<i2").tobytes()
        self.total_chunks += 1
        self.total_frames += len(merged)
        if self.settings.keep_session_audio:
            self._session_audio.append(pcm)

        chunk = AudioChunk(
            data=encode_wav(self.chunk_format, pcm),
            format=self.chunk_format,
            sequence_number=self.total_chunks,
            timestamp=time.monotonic(),
            duration_seconds=len(merged) / float(self.settings.sample_rate),
        )
        logger.debug(f"Emitting chunk #{chunk.sequence_number}: {chunk.size} bytes, "
                     f"{chunk.duration_seconds:.2f}s")
        try:
            self.chunk_callback(chunk)
        except Exception as e:
            logger.error(f"Chunk callback failed for chunk #{chunk.sequence_number}: {e}",
                         exc_info=True)

    def get_recording_stats(self) -> AudioStats:
        """Get current recording statistics."""
        return AudioStats(
            is_recording=self.is_recording,
            is_paused=self.is_paused,
            duration_seconds=self.elapsed_seconds,
            sample_rate=self.settings.sample_rate,
            channels=self.channels,
            total_chunks=self.total_chunks,
            total_frames=self.total_frames,
        )

    def __del__(self):
        """Ensure resources are cleaned up on deletion."""
        if getattr(self, "is_recording", False):
            self.stop()

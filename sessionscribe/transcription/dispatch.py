"""Bounded FIFO of segments awaiting transcription, drained by one worker."""

import time
import asyncio
import logging
import threading
import queue
from typing import Callable, Optional

from ..config.settings import DispatchSettings, EngineSettings
from ..errors import TranscriptionError
from ..models.audio import Segment
from ..models.transcription import TranscriptionRequest, TranscriptionResult
from .base import AbstractTranscriptionBackend

logger = logging.getLogger(__name__)


class TranscriptionDispatchQueue:
    """Serializes segments to the transcription backend.

    Exactly one worker thread reads the queue, so results reach
    ``result_callback`` in enqueue order and never concurrently. The worker
    owns its own asyncio loop for the backend's coroutines.
    """

    def __init__(self,
                 backend: AbstractTranscriptionBackend,
                 result_callback: Callable[[TranscriptionResult], None],
                 error_callback: Optional[Callable[[TranscriptionError], None]] = None,
                 progress_callback: Optional[Callable[[int, int], None]] = None,
                 settings: Optional[DispatchSettings] = None,
                 engine_settings: Optional[EngineSettings] = None,
                 name: str = "dispatch"):
        self.backend = backend
        self.result_callback = result_callback
        self.error_callback = error_callback
        self.progress_callback = progress_callback
        self.settings = settings or DispatchSettings()
        self.engine_settings = engine_settings or EngineSettings()
        self.name = name

        self.task_queue: "queue.Queue[Optional[Segment]]" = queue.Queue(
            maxsize=self.settings.max_pending_segments)
        self.worker_thread: Optional[threading.Thread] = None
        self.shutdown_event = threading.Event()

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._current_task: Optional[asyncio.Future] = None
        self._task_lock = threading.Lock()

        self.segments_transcribed = 0
        self.segments_failed = 0
        self.segments_rejected = 0

    def start(self) -> None:
        """Start the worker thread."""
        if self.worker_thread and self.worker_thread.is_alive():
            logger.warning(f"[{self.name}] Worker already running")
            return
        self.shutdown_event.clear()
        self.worker_thread = threading.Thread(target=self._worker_loop)
        self.worker_thread.name = f"worker_{self.name}"
        self.worker_thread.daemon = True
        self.worker_thread.start()
        logger.info(f"Started {self.name} transcription worker")

    def set_model(self, model: str) -> None:
        """Switch the engine model for segments dequeued from now on."""
        self.engine_settings = self.engine_settings.model_copy(update={"model": model})
        logger.info(f"[{self.name}] Engine model set to {model}")

    def enqueue(self, segment: Segment) -> bool:
        """Queue ``segment`` without blocking.

        Returns:
            False if the queue is full or shutting down; the rejection is
            reported through ``error_callback``
        """
        if self.shutdown_event.is_set():
            logger.warning(f"[{self.name}] Rejecting segment #{segment.sequence}: shutting down")
            self._reject(segment, "dispatch queue is shut down")
            return False
        try:
            self.task_queue.put_nowait(segment)
        except queue.Full:
            logger.error(f"[{self.name}] Queue full ({self.settings.max_pending_segments}), "
                         f"rejecting segment #{segment.sequence}")
            self._reject(segment, "dispatch queue is full")
            return False

        logger.debug(f"[{self.name}] Queued segment #{segment.sequence} "
                     f"({len(segment.data)} bytes); pending={self.pending_count}")
        return True

    @property
    def pending_count(self) -> int:
        """Queued plus in-flight segments."""
        return self.task_queue.unfinished_tasks

    def drain(self, timeout: Optional[float] = None) -> bool:
        """Wait until every queued segment has been processed.

        Args:
            timeout: Seconds to wait, defaults to the configured drain timeout

        Returns:
            True if the queue drained, False on timeout
        """
        if timeout is None:
            timeout = self.settings.drain_timeout_ms / 1000.0
        deadline = time.monotonic() + timeout
        while self.task_queue.unfinished_tasks > 0:
            if time.monotonic() >= deadline:
                logger.warning(f"[{self.name}] Timeout reached while draining. "
                               f"{self.task_queue.unfinished_tasks} segment(s) remain.")
                return False
            time.sleep(0.02)
        return True

    def shutdown(self, timeout: Optional[float] = None) -> bool:
        """Drain, cancel whatever is still running, and stop the worker.

        Returns:
            True if everything queued was processed before the timeout
        """
        logger.info(f"Shutting down {self.name} dispatch queue...")
        self.shutdown_event.set()
        drained = self.drain(timeout)

        if not drained:
            self._discard_queued()
            self._cancel_in_flight()

        if self.worker_thread and self.worker_thread.is_alive():
            self.task_queue.put(None)
            self.worker_thread.join(2.0)
            if self.worker_thread.is_alive():
                logger.warning(f"Worker thread {self.worker_thread.name} did not terminate cleanly.")

        logger.info(f"{self.name} dispatch shutdown complete: "
                    f"{self.segments_transcribed} transcribed, {self.segments_failed} failed")
        return drained

    def _worker_loop(self) -> None:
        thread_name = threading.current_thread().name
        logger.debug(f"Worker thread {thread_name} starting")

        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        self._loop = loop

        try:
            while True:
                segment = self.task_queue.get()
                if segment is None:
                    logger.debug(f"Worker {thread_name} received sentinel, exiting.")
                    self.task_queue.task_done()
                    break

                try:
                    loop.run_until_complete(self._transcribe_segment(segment))
                except Exception as e:
                    logger.error(f"Unhandled exception processing segment #{segment.sequence} "
                                 f"in {thread_name}: {e}", exc_info=True)
                finally:
                    self.task_queue.task_done()
        finally:
            self._loop = None
            loop.close()
            logger.debug(f"Worker thread {thread_name} exiting and closing its event loop.")

    async def _transcribe_segment(self, segment: Segment) -> None:
        engine = self.engine_settings
        request = TranscriptionRequest(
            audio=segment.data,
            model=engine.model,
            language=engine.language,
            mode=engine.mode,
            segment_sequence=segment.sequence,
        )

        def progress(percent: int) -> None:
            if self.progress_callback:
                self.progress_callback(segment.sequence, max(0, min(100, int(percent))))

        logger.info(f"Transcribing segment #{segment.sequence} "
                    f"({segment.duration_seconds:.1f}s) with {engine.model}")
        progress(0)

        task = asyncio.ensure_future(
            asyncio.wait_for(self.backend.transcribe(request, progress), engine.timeout_seconds))
        with self._task_lock:
            self._current_task = task

        error = None
        try:
            result = await task
        except asyncio.CancelledError:
            error = TranscriptionError("transcription cancelled at shutdown",
                                       segment_sequence=segment.sequence)
        except asyncio.TimeoutError:
            error = TranscriptionError(
                f"engine timed out after {engine.timeout_seconds:.0f}s",
                segment_sequence=segment.sequence)
        except TranscriptionError as e:
            error = e
            if error.segment_sequence is None:
                error.segment_sequence = segment.sequence
        except Exception as e:
            error = TranscriptionError(f"engine failed: {e}", segment_sequence=segment.sequence)
        finally:
            with self._task_lock:
                self._current_task = None

        if error is not None:
            self.segments_failed += 1
            logger.error(f"Segment #{segment.sequence} failed: {error}")
            if self.error_callback:
                self.error_callback(error)
            return

        if result.segment_sequence is None:
            result.segment_sequence = segment.sequence
        self.segments_transcribed += 1
        logger.info(f"✅ Segment #{segment.sequence}: '{result.text[:80]}' "
                    f"({result.processing_time:.2f}s)")
        progress(100)
        self.result_callback(result)

    def _reject(self, segment: Segment, reason: str) -> None:
        self.segments_rejected += 1
        if self.error_callback:
            self.error_callback(TranscriptionError(reason, segment_sequence=segment.sequence))

    def _discard_queued(self) -> None:
        discarded = 0
        while True:
            try:
                segment = self.task_queue.get_nowait()
            except queue.Empty:
                break
            self.task_queue.task_done()
            if segment is not None:
                discarded += 1
                self._reject(segment, "abandoned at shutdown")
        if discarded:
            logger.warning(f"[{self.name}] Discarded {discarded} queued segment(s)")

    def _cancel_in_flight(self) -> None:
        with self._task_lock:
            task = self._current_task
            loop = self._loop
        if task is not None and loop is not None and not task.done():
            logger.warning(f"[{self.name}] Cancelling in-flight transcription")
            try:
                loop.call_soon_threadsafe(task.cancel)
            except RuntimeError as e:
                # worker finished and closed its loop in the meantime
                logger.debug(f"[{self.name}] Nothing to cancel: {e}")

"""Voice activity detection and segmentation of the chunk stream."""

import logging
from typing import Callable, List, Optional

from ..config.settings import VADSettings
from ..errors import FormatError
from ..models.audio import AudioChunk, Segment
from ..models.vad import VADState, VADDecision, FLUSH_HANGOVER, FLUSH_CAP, FLUSH_FINAL
from .wav import WavConcatenator, rms_energy

logger = logging.getLogger(__name__)


def _take_pending(state: VADState) -> List[AudioChunk]:
    chunks = list(state.pending)
    state.pending.clear()
    return chunks


def classify(chunk: AudioChunk, energy: Optional[float], state: VADState,
             settings: VADSettings, now: float) -> VADDecision:
    """Classify one chunk and update ``state``.

    The threshold adapts to the rolling average of recent energies but never
    drops below ``threshold_floor``. ``energy`` is None when the chunk could
    not be decoded; it then counts as zero in the window, and the chunk is
    still treated as speech when it is large enough to hold real audio.
    Decoded digital silence is never speech.
    """
    undecoded = energy is None
    if undecoded:
        energy = 0.0
    state.energies.append(energy)
    state.threshold = max(settings.threshold_floor,
                          settings.threshold_ratio * state.rolling_average)

    active = energy > state.threshold or (
        undecoded and chunk.size >= settings.min_undecoded_bytes
    )

    flush = None
    reason = None
    if active:
        state.last_activity = now
        state.pending.append(chunk)
    elif (state.pending and state.last_activity is not None
          and now - state.last_activity > settings.hangover_seconds):
        flush, reason = _take_pending(state), FLUSH_HANGOVER

    if flush is None and len(state.pending) >= settings.max_pending_chunks:
        flush, reason = _take_pending(state), FLUSH_CAP

    return VADDecision(energy=energy, threshold=state.threshold, active=active,
                       flush=flush, reason=reason)


class ActivityMonitor:
    """Buffers speech chunks and hands finished segments to a sink."""

    def __init__(
        self,
        segment_sink: Callable[[Segment], None],
        settings: Optional[VADSettings] = None,
        concatenator: Optional[WavConcatenator] = None,
        error_callback: Optional[Callable[[Exception], None]] = None,
        decision_callback: Optional[Callable[[VADDecision], None]] = None,
    ):
        """Initialize the monitor.

        Args:
            segment_sink: Receives each flushed Segment (normally the dispatch queue)
            settings: VAD thresholds, hangover window and buffer cap
            concatenator: Builds segments from buffered chunks
            error_callback: Receives FormatError for dropped segments
            decision_callback: Receives every VADDecision (UI activity meter)
        """
        self.segment_sink = segment_sink
        self.settings = settings or VADSettings()
        self.concatenator = concatenator or WavConcatenator()
        self.error_callback = error_callback
        self.decision_callback = decision_callback
        self.state = VADState(window_size=self.settings.window_size)
        self.segment_counter = 0
        self.dropped_segments = 0

    def process(self, chunk: AudioChunk, now: Optional[float] = None) -> VADDecision:
        """Classify ``chunk``; flush a segment when the decision says so.

        Args:
            chunk: Next chunk from the capture session
            now: Decision time, defaults to the chunk's capture timestamp
        """
        if now is None:
            now = chunk.timestamp
        energy = rms_energy(chunk.data)
        decision = classify(chunk, energy, self.state, self.settings, now)
        logger.debug(f"Chunk #{chunk.sequence_number}: energy={decision.energy:.4f} "
                     f"threshold={decision.threshold:.4f} active={decision.active} "
                     f"pending={len(self.state.pending)}")

        if self.decision_callback:
            self.decision_callback(decision)
        if decision.flush:
            self._flush(decision.flush, decision.reason)
        return decision

    def flush(self) -> Optional[Segment]:
        """Force any pending chunks out as one final segment."""
        if not self.state.pending:
            return None
        return self._flush(_take_pending(self.state), FLUSH_FINAL)

    def reset(self) -> None:
        """Forget all VAD state (new session, client or model)."""
        pending = len(self.state.pending)
        self.state.reset()
        if pending:
            logger.info(f"VAD state reset, discarded {pending} pending chunk(s)")

    @property
    def pending_count(self) -> int:
        return len(self.state.pending)

    def _flush(self, chunks: List[AudioChunk], reason: str) -> Optional[Segment]:
        self.segment_counter += 1
        try:
            segment = self.concatenator.concatenate(chunks, sequence=self.segment_counter)
        except FormatError as e:
            self.dropped_segments += 1
            logger.error(f"Dropping segment #{self.segment_counter} "
                         f"({len(chunks)} chunks): {e}")
            if self.error_callback:
                self.error_callback(e)
            return None

        logger.info(f"Flushing segment #{segment.sequence} ({reason}): "
                    f"{segment.chunk_count} chunk(s), {segment.duration_seconds:.1f}s")
        self.segment_sink(segment)
        return segment

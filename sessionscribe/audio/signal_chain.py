"""Signal conditioning applied to the microphone stream before metering and recording."""

import math
import logging

import numpy as np

from ..config.settings import SignalChainSettings

logger = logging.getLogger(__name__)

_EPSILON = 1e-9


class SignalChain:
    """Fixed pipeline: pre-gain -> dynamic range compressor -> makeup gain.

    The same conditioned signal feeds the level meter, the VAD and the
    recording, so thresholds and transcription see identical input.
    The compressor tracks a peak envelope per block of ``block_size``
    frames; the envelope carries over between calls.
    """

    def __init__(self, settings: SignalChainSettings, sample_rate: int):
        self.settings = settings
        self.sample_rate = sample_rate
        block_dt = settings.block_size / float(sample_rate)
        self._attack_coef = math.exp(-block_dt / settings.attack_seconds)
        self._release_coef = math.exp(-block_dt / settings.release_seconds)
        self._slope = 1.0 - 1.0 / settings.ratio
        self._envelope = 0.0
        self.last_gain_reduction_db = 0.0

    def reset(self) -> None:
        self._envelope = 0.0
        self.last_gain_reduction_db = 0.0

    def process(self, frames: np.ndarray) -> np.ndarray:
        """Condition float32 frames shaped (n,) or (n, channels), values in [-1, 1]."""
        if frames.size == 0:
            return frames.astype(np.float32, copy=True)

        signal = frames.astype(np.float32, copy=True) * self.settings.pre_gain
        signal = self._compress(signal)
        signal *= self.settings.makeup_gain
        np.clip(signal, -1.0, 1.0, out=signal)
        return signal

    def _compress(self, signal: np.ndarray) -> np.ndarray:
        # stereo channels share one detector so the image does not shift
        detector = np.abs(signal) if signal.ndim == 1 else np.max(np.abs(signal), axis=1)
        block = self.settings.block_size
        threshold_db = self.settings.threshold_db

        for start in range(0, len(detector), block):
            peak = float(detector[start:start + block].max())
            coef = self._attack_coef if peak > self._envelope else self._release_coef
            self._envelope = coef * self._envelope + (1.0 - coef) * peak

            level_db = 20.0 * math.log10(self._envelope + _EPSILON)
            over_db = level_db - threshold_db
            reduction_db = over_db * self._slope if over_db > 0 else 0.0
            self.last_gain_reduction_db = reduction_db
            if reduction_db:
                signal[start:start + block] *= 10.0 ** (-reduction_db / 20.0)
        return signal


def rms(samples: np.ndarray) -> float:
    """Root mean square of float samples; 0.0 for an empty buffer."""
    if samples.size == 0:
        return 0.0
    return float(np.sqrt(np.mean(np.square(samples, dtype=np.float64))))


def downmix_dominant(frames: np.ndarray) -> np.ndarray:
    """Collapse (n, channels) frames to mono by keeping the loudest channel.

    The choice is made once per buffer; alternating sample by sample would
    add high-frequency artifacts.
    """
    if frames.ndim == 1:
        return frames
    if frames.shape[1] == 1:
        return frames[:, 0]
    energies = np.sum(np.square(frames, dtype=np.float64), axis=0)
    return frames[:, int(np.argmax(energies))]

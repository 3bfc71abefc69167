"""RIFF/WAVE helpers and the chunk concatenator.

Each capture chunk is a complete WAV container. Concatenating containers
byte-wise produces an invalid file, so the concatenator parses every header,
checks that all chunks share one PCM layout, and writes a single new header
over the joined payloads. A short run of silence goes between chunks: two
independently captured chunks abutting each other tend to be transcribed
with the trailing words repeated.
"""

import io
import wave
import struct
import logging
from typing import List, Optional, Sequence, Tuple

import numpy as np

from ..errors import FormatError
from ..models.audio import AudioChunk, AudioFormat, Segment

logger = logging.getLogger(__name__)

WAV_HEADER_SIZE = 44


def parse_wav(data: bytes) -> Tuple[AudioFormat, bytes]:
    """Parse a PCM WAV container.

    Returns:
        Tuple of (format, raw little-endian PCM payload)

    Raises:
        FormatError: if the magic, the ``fmt `` sub-chunk, the encoding or the
            ``data`` sub-chunk is missing, unsupported or truncated
    """
    if len(data) < 12 or data[:4] != b"RIFF" or data[8:12] != b"WAVE":
        raise FormatError("missing RIFF/WAVE magic")

    try:
        with wave.open(io.BytesIO(data), "rb") as wf:
            audio_format = AudioFormat(
                sample_rate=wf.getframerate(),
                channels=wf.getnchannels(),
                bits_per_sample=wf.getsampwidth() * 8,
            )
            nframes = wf.getnframes()
            payload = wf.readframes(nframes)
    except (wave.Error, EOFError, struct.error) as e:
        raise FormatError(f"malformed WAV container: {e}") from e

    expected = nframes * audio_format.bytes_per_frame
    if len(payload) != expected:
        raise FormatError(f"truncated data sub-chunk: {len(payload)} of {expected} bytes")
    return audio_format, payload


def encode_wav(audio_format: AudioFormat, payload: bytes) -> bytes:
    """Wrap a PCM payload in a single 44-byte-header WAV container."""
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wf:
        wf.setnchannels(audio_format.channels)
        wf.setsampwidth(audio_format.sample_width)
        wf.setframerate(audio_format.sample_rate)
        wf.writeframes(payload)
    return buffer.getvalue()


def silence(audio_format: AudioFormat, duration_ms: float) -> bytes:
    """Zero-amplitude PCM for ``duration_ms`` at the given layout."""
    frames = int(round(audio_format.sample_rate * duration_ms / 1000.0))
    # 8-bit WAV is unsigned, its zero level is 0x80
    fill = b"\x80" if audio_format.bits_per_sample == 8 else b"\x00"
    return fill * (frames * audio_format.bytes_per_frame)


def decode_samples(audio_format: AudioFormat, payload: bytes) -> np.ndarray:
    """Decode PCM to float32 samples in [-1, 1], shape (frames, channels)."""
    width = audio_format.sample_width
    if width == 1:
        samples = (np.frombuffer(payload, dtype=np.uint8).astype(np.float32) - 128.0) / 128.0
    elif width == 2:
        samples = np.frombuffer(payload, dtype="<i2").astype(np.float32) / 32768.0
    elif width == 3:
        raw = np.frombuffer(payload, dtype=np.uint8).reshape(-1, 3).astype(np.int32)
        values = raw[:, 0] | (raw[:, 1] << 8) | (raw[:, 2] << 16)
        values = np.where(values & 0x800000, values - 0x1000000, values)
        samples = values.astype(np.float32) / 8388608.0
    elif width == 4:
        samples = np.frombuffer(payload, dtype="<i4").astype(np.float32) / 2147483648.0
    else:
        raise FormatError(f"unsupported sample width: {width} bytes")
    return samples.reshape(-1, audio_format.channels)


def rms_energy(data: bytes) -> Optional[float]:
    """RMS of a WAV container's samples; None when it cannot be decoded."""
    try:
        audio_format, payload = parse_wav(data)
        samples = decode_samples(audio_format, payload)
    except FormatError as e:
        logger.debug(f"Energy decode failed ({len(data)} bytes): {e}")
        return None
    if samples.size == 0:
        return 0.0
    return float(np.sqrt(np.mean(np.square(samples, dtype=np.float64))))


class WavConcatenator:
    """Merges WAV chunks that share one AudioFormat into a single container."""

    def __init__(self, padding_ms: float = 100.0):
        """Initialize the concatenator.

        Args:
            padding_ms: Silence inserted between consecutive chunks
        """
        self.padding_ms = padding_ms

    def concatenate(self, chunks: Sequence[AudioChunk], sequence: int = 0) -> Segment:
        """Build one Segment from ``chunks``.

        A single chunk passes through unchanged. Any malformed header or a
        format differing from the first chunk's raises FormatError before
        any output is produced.
        """
        if not chunks:
            raise ValueError("no chunks to concatenate")

        first = chunks[0]
        if len(chunks) == 1:
            return Segment(
                data=first.data,
                format=first.format,
                duration_seconds=first.duration_seconds,
                chunk_count=1,
                sequence=sequence,
                started_at=first.timestamp,
            )

        audio_format, payloads = self._parse_all(chunks)
        padding = silence(audio_format, self.padding_ms)

        parts: List[bytes] = []
        for index, payload in enumerate(payloads):
            if index:
                parts.append(padding)
            parts.append(payload)
        body = b"".join(parts)
        data = encode_wav(audio_format, body)
        duration = len(body) / audio_format.bytes_per_second
        logger.debug(f"Concatenated {len(chunks)} chunks into segment #{sequence}: "
                     f"{len(data)} bytes, {duration:.2f}s")
        return Segment(
            data=data,
            format=audio_format,
            duration_seconds=duration,
            chunk_count=len(chunks),
            sequence=sequence,
            started_at=first.timestamp,
        )

    def _parse_all(self, chunks: Sequence[AudioChunk]) -> Tuple[AudioFormat, List[bytes]]:
        reference = None
        payloads = []
        for chunk in chunks:
            try:
                audio_format, payload = parse_wav(chunk.data)
            except FormatError as e:
                raise FormatError(f"chunk #{chunk.sequence_number}: {e}") from e
            if reference is None:
                reference = audio_format
            elif audio_format != reference:
                raise FormatError(
                    f"chunk #{chunk.sequence_number} format {audio_format} "
                    f"differs from {reference}"
                )
            payloads.append(payload)
        return reference, payloads

"""Pytest configuration and fixtures for SessionScribe tests."""

import pytest
import tempfile
import logging
from unittest.mock import Mock, patch
import numpy as np

from sessionscribe.audio.wav import encode_wav
from sessionscribe.models.audio import AudioChunk, AudioFormat


# Configure logging for tests
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests without I/O beyond temp files")
    config.addinivalue_line("markers", "integration: tests wiring several components together")
    config.addinivalue_line("markers", "slow: tests that wait on timeouts")


@pytest.fixture
def temp_data_dir():
    """Create temporary directory for test data."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield temp_dir


@pytest.fixture
def mock_pyaudio():
    """Mock PyAudio for testing without actual audio hardware."""
    with patch('pyaudio.PyAudio') as mock_pyaudio_class:
        mock_pyaudio_instance = Mock()
        mock_stream = Mock()

        # Configure mock stream
        mock_stream.read.return_value = b'\x00' * 2048  # Silent audio
        mock_stream.stop_stream.return_value = None
        mock_stream.close.return_value = None

        # Configure mock PyAudio instance
        mock_pyaudio_instance.open.return_value = mock_stream
        mock_pyaudio_instance.terminate.return_value = None
        mock_pyaudio_instance.get_sample_size.return_value = 2

        # Configure mock PyAudio class
        mock_pyaudio_class.return_value = mock_pyaudio_instance

        yield {
            'class': mock_pyaudio_class,
            'instance': mock_pyaudio_instance,
            'stream': mock_stream
        }


@pytest.fixture
def audio_test_data():
    """Generate float sample patterns for testing."""
    def generate_audio(pattern="sine", duration_seconds=1.0, sample_rate=16000, level=0.5):
        """Generate float32 samples in [-1, 1].

        Args:
            pattern: Type of audio pattern ('sine', 'noise', 'silence')
            duration_seconds: Duration of audio
            sample_rate: Sample rate in Hz
            level: Peak amplitude
        """
        samples = int(duration_seconds * sample_rate)

        if pattern == "sine":
            t = np.linspace(0, duration_seconds, samples, False)
            wave_data = np.sin(2 * np.pi * 440 * t)
        elif pattern == "noise":
            wave_data = np.random.default_rng(1234).uniform(-1, 1, samples)
        elif pattern == "silence":
            wave_data = np.zeros(samples)
        else:
            raise ValueError(f"Unknown pattern: {pattern}")

        return (wave_data * level).astype(np.float32)

    return generate_audio


@pytest.fixture
def chunk_factory(audio_test_data):
    """Build WAV AudioChunks like the capture session emits."""
    def make_chunk(level=0.5, duration_seconds=0.5, sequence=1, timestamp=0.0,
                   pattern="sine", sample_rate=16000, channels=1):
        audio_format = AudioFormat(sample_rate=sample_rate, channels=channels, bits_per_sample=16)
        samples = audio_test_data(pattern, duration_seconds, sample_rate, level)
        if channels > 1:
            samples = np.repeat(samples[:, None], channels, axis=1)
        pcm = (samples * 32767).astype("<i2").tobytes()
        return AudioChunk(
            data=encode_wav(audio_format, pcm),
            format=audio_format,
            sequence_number=sequence,
            timestamp=timestamp,
            duration_seconds=duration_seconds,
        )

    return make_chunk

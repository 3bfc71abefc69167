"""Audio capture and processing module."""

from .activity import ActivityMonitor, classify
from .capture import AudioCaptureSession
from .signal_chain import SignalChain
from .wav import WavConcatenator, parse_wav, encode_wav

__all__ = [
    'ActivityMonitor',
    'classify',
    'AudioCaptureSession',
    'SignalChain',
    'WavConcatenator',
    'parse_wav',
    'encode_wav',
]

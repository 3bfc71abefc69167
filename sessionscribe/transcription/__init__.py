"""Transcription module for SessionScribe."""

from .base import AbstractTranscriptionBackend
from ..models.transcription import TranscriptionRequest, TranscriptionResult
from .bridge_backend import BridgeTranscriptionBackend
from .dispatch import TranscriptionDispatchQueue
from .hallucination import HallucinationFilter
from .assembler import TranscriptAssembler
from .summarizer import LLMSummaryEngine, ContextualSummarizer

__all__ = [
    "AbstractTranscriptionBackend",
    "TranscriptionRequest",
    "TranscriptionResult",
    "BridgeTranscriptionBackend",
    "TranscriptionDispatchQueue",
    "HallucinationFilter",
    "TranscriptAssembler",
    "LLMSummaryEngine",
    "ContextualSummarizer",
]

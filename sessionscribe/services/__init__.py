"""Service layer for SessionScribe."""

from .recording_service import RecordingPipeline

__all__ = ["RecordingPipeline"]

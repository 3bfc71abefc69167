"""SessionScribe - real-time session capture, segmentation and transcription."""

__version__ = "0.1.0"

"""Storage module for SessionScribe."""

from .file_manager import FileManager

__all__ = ["FileManager"]

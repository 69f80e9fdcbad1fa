"""Local storage for previews, recordings and session metadata."""

from .file_manager import FileManager

__all__ = ['FileManager']

"""Capture device interfaces and the capture session manager."""

from .base import (
    AcquiredCapture,
    CaptureBackend,
    CaptureConstraints,
    Encoder,
    EncoderState,
    MediaSource,
    MediaTrack,
    SurfaceKind,
)
from .formats import negotiate_format, file_extension
from .manager import CaptureSessionManager

__all__ = [
    'AcquiredCapture',
    'CaptureBackend',
    'CaptureConstraints',
    'Encoder',
    'EncoderState',
    'MediaSource',
    'MediaTrack',
    'SurfaceKind',
    'negotiate_format',
    'file_extension',
    'CaptureSessionManager',
]

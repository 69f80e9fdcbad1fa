"""Encoding format negotiation."""

import logging
from typing import Sequence

from .base import CaptureBackend
from ..errors import NoSupportedFormatError

logger = logging.getLogger(__name__)


_EXTENSIONS = {
    "video/webm": "webm",
    "video/mp4": "mp4",
    "audio/webm": "weba",
}


def negotiate_format(backend: CaptureBackend, candidates: Sequence[str]) -> str:
    """Return the first candidate the backend can encode.

    Raises:
        NoSupportedFormatError: none of the candidates is supported
    """
    for mime_type in candidates:
        if backend.is_format_supported(mime_type):
            logger.info(f"Negotiated encoding format: {mime_type}")
            return mime_type
        logger.debug(f"Format not supported: {mime_type}")

    logger.error(f"No supported encoding format among {list(candidates)}")
    raise NoSupportedFormatError()


def container_type(mime_type: str) -> str:
    """Strip codec parameters: 'video/webm;codecs=vp9,opus' -> 'video/webm'."""
    return mime_type.split(';', 1)[0].strip().lower()


def file_extension(mime_type: str) -> str:
    return _EXTENSIONS.get(container_type(mime_type), "bin")

"""Turns the buffered fragments of a stopped recording into one asset."""

import logging
from typing import Callable, Optional

from .buffer import ChunkBuffer
from ..errors import DeviceError, EmptyPayloadError, NoDataError
from ..models.recording import FinalAsset

logger = logging.getLogger(__name__)


class Finalizer:
    """Flushes the encoder tail and assembles the finished recording.

    Args:
        preview_store: callable ``(data, mime_type, session_id) -> uri`` making
            the payload playable locally; usually ``FileManager.save_preview``
        min_payload_bytes: payloads smaller than this are treated as corrupt
        flush_timeout: seconds to wait for the encoder's last fragment
    """

    def __init__(self,
                 preview_store: Callable[[bytes, str, str], str],
                 min_payload_bytes: int = 1024,
                 flush_timeout: float = 2.0):
        self.preview_store = preview_store
        self.min_payload_bytes = min_payload_bytes
        self.flush_timeout = flush_timeout

    def request_flush(self,
                      request_fragment: Callable[[], None],
                      await_fragment: Callable[[float], bool]) -> bool:
        """Ask the encoder for the data it is still holding and wait for it.

        Returns:
            True if a fragment arrived within the flush timeout.
        """
        try:
            request_fragment()
        except Exception as e:
            logger.warning(f"Encoder refused flush request: {e}")
            return False

        arrived = await_fragment(self.flush_timeout)
        if not arrived:
            logger.warning(f"No final fragment within {self.flush_timeout}s; "
                           f"finalizing with what was buffered")
        return arrived

    def finalize(self,
                 buffer: ChunkBuffer,
                 mime_type: str,
                 session_id: str,
                 duration_seconds: int = 0) -> FinalAsset:
        """Concatenate the buffered fragments in order.

        Raises:
            NoDataError: nothing but empty fragments were captured
            EmptyPayloadError: the payload is below the sanity threshold
            DeviceError: the preview could not be written
        """
        buffer.seal()
        fragments = [fragment for fragment in buffer.fragments() if fragment.data]

        if not fragments:
            logger.error(f"Session {session_id}: no recording data captured")
            raise NoDataError()

        payload = b''.join(fragment.data for fragment in fragments)
        if len(payload) < self.min_payload_bytes:
            logger.error(f"Session {session_id}: payload of {len(payload)} bytes is below "
                         f"the {self.min_payload_bytes} byte minimum")
            raise EmptyPayloadError()

        try:
            preview_uri = self.preview_store(payload, mime_type, session_id)
        except OSError as e:
            logger.error(f"Session {session_id}: could not store preview: {e}")
            raise DeviceError("The recording could not be saved locally. "
                              "Check free disk space and try again.") from e

        logger.info(f"Session {session_id} finalized: {len(fragments)} fragments, "
                    f"{len(payload)} bytes, {mime_type}")
        return FinalAsset(
            data=payload,
            mime_type=mime_type,
            preview_uri=preview_uri,
            fragment_count=len(fragments),
            duration_seconds=duration_seconds,
        )

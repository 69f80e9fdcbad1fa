"""Ordered buffer for encoded fragments emitted during a recording."""

import time
import logging
import threading
from dataclasses import dataclass
from typing import List, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Fragment:
    """A single encoded fragment with the time it arrived."""
    data: bytes
    timestamp: float
    index: int


class ChunkBuffer:
    """Append-only store of fragments, kept in arrival order until the recording is finalized."""

    def __init__(self):
        self._fragments: List[Fragment] = []
        self.lock = threading.Lock()
        self.total_bytes = 0
        self.discarded_empty = 0
        self.sealed = False

    def append(self, data: bytes, timestamp: Optional[float] = None) -> bool:
        """Add a fragment to the end of the buffer.

        Returns:
            True if the fragment was stored; empty fragments and fragments
            arriving after :meth:`seal` are dropped.
        """
        if not data:
            self.discarded_empty += 1
            logger.debug("Discarded zero-length fragment")
            return False

        current_time = timestamp if timestamp is not None else time.time()

        with self.lock:
            if self.sealed:
                logger.warning(f"Fragment of {len(data)} bytes arrived after finalize, dropped")
                return False

            self._fragments.append(Fragment(
                data=bytes(data),
                timestamp=current_time,
                index=len(self._fragments)
            ))
            self.total_bytes += len(data)

            logger.debug(f"Added fragment: {len(data)} bytes, "
                         f"buffer now has {len(self._fragments)} fragments ({self.total_bytes} bytes)")
        return True

    def fragments(self) -> List[Fragment]:
        """Copy of the stored fragments in arrival order."""
        with self.lock:
            return list(self._fragments)

    def seal(self) -> None:
        """Refuse any further appends."""
        with self.lock:
            self.sealed = True

    def __len__(self) -> int:
        with self.lock:
            return len(self._fragments)

    def get_buffer_stats(self) -> dict:
        """Get buffer statistics."""
        with self.lock:
            oldest_timestamp = self._fragments[0].timestamp if self._fragments else None
            newest_timestamp = self._fragments[-1].timestamp if self._fragments else None
            span = (newest_timestamp - oldest_timestamp) if self._fragments else 0

            return {
                "fragment_count": len(self._fragments),
                "total_bytes": self.total_bytes,
                "discarded_empty": self.discarded_empty,
                "span_seconds": span,
                "oldest_timestamp": oldest_timestamp,
                "newest_timestamp": newest_timestamp,
                "sealed": self.sealed,
            }

    def clear(self) -> None:
        """Drop every fragment."""
        with self.lock:
            self._fragments.clear()
            self.total_bytes = 0
            logger.debug("Chunk buffer cleared")

"""Events consumed by the recording state machine and notices it publishes."""

import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from .recording import RecordingState, StopReason


@dataclass
class StartRequested:
    """User asked to begin capturing."""


@dataclass
class PauseRequested:
    """User asked to pause."""


@dataclass
class ResumeRequested:
    """User asked to resume."""


@dataclass
class StopRequested:
    """Manual stop, time limit or device revocation."""
    reason: StopReason = StopReason.MANUAL


@dataclass
class TimerTick:
    """One second of wall time elapsed on the session timer."""
    timestamp: float = field(default_factory=time.time)


@dataclass
class FragmentAvailable:
    """Encoder emitted a chunk of encoded data."""
    data: bytes
    sequence_number: int
    timestamp: float = field(default_factory=time.time)


@dataclass
class TrackEnded:
    """A device track ended outside of our control (e.g. user stopped sharing)."""
    kind: str = "video"


@dataclass
class VisibilityChanged:
    """Host document visibility changed."""
    hidden: bool


@dataclass
class EncoderFailed:
    """Encoder reported an error mid-session."""
    error: Exception


class NoticeLevel(Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


@dataclass
class Notice:
    """User-facing message, the equivalent of a toast."""
    level: NoticeLevel
    code: str
    message: str
    session_id: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass
class StateChange:
    """Session lifecycle event."""
    session_id: str
    previous: RecordingState
    current: RecordingState
    timestamp: datetime = field(default_factory=datetime.now)

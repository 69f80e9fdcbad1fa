"""Recording state and asset data models."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class RecordingState(Enum):
    """Lifecycle state of a single recording session."""
    IDLE = "idle"
    PREPARING = "preparing"
    RECORDING = "recording"
    PAUSED = "paused"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class FailureReason(Enum):
    """Why a session (or its upload) failed."""
    PERMISSION_DENIED = "permission_denied"
    NO_SUPPORTED_FORMAT = "no_supported_format"
    DEVICE_ERROR = "device_error"
    NO_DATA = "no_data"
    EMPTY_PAYLOAD = "empty_payload"
    UPLOAD_FAILED = "upload_failed"


class StopReason(Enum):
    """What triggered the transition into processing."""
    MANUAL = "manual"
    TIME_LIMIT = "time_limit"
    DEVICE_ENDED = "device_ended"


@dataclass(frozen=True)
class FinalAsset:
    """The finished recording produced by a successful finalize."""
    data: bytes
    mime_type: str
    preview_uri: str
    fragment_count: int
    duration_seconds: int = 0

    @property
    def size_bytes(self) -> int:
        return len(self.data)


@dataclass
class SessionStatus:
    """Snapshot of a session for display purposes."""
    session_id: Optional[str] = None
    state: RecordingState = RecordingState.IDLE
    elapsed_seconds: int = 0
    formatted_time: str = "00:00:00"
    time_limit_seconds: int = 0
    is_full_capture: bool = False
    integrity_warning_issued: bool = False
    fragment_count: int = 0
    buffered_bytes: int = 0
    mime_type: Optional[str] = None
    preview_uri: Optional[str] = None
    public_reference: Optional[str] = None
    last_error: Optional[str] = None
    retryable: bool = False
    navigation_guard_armed: bool = False
    notices: list = field(default_factory=list)

    @property
    def is_active(self) -> bool:
        return self.state in (RecordingState.RECORDING, RecordingState.PAUSED)

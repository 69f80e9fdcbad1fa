"""Data models for the taskcapture package."""

from .recording import (
    RecordingState,
    FailureReason,
    StopReason,
    FinalAsset,
    SessionStatus,
)
from .events import (
    StartRequested,
    PauseRequested,
    ResumeRequested,
    StopRequested,
    TimerTick,
    FragmentAvailable,
    TrackEnded,
    VisibilityChanged,
    EncoderFailed,
    Notice,
    NoticeLevel,
    StateChange,
)
from .session import SessionInfo

__all__ = [
    "RecordingState",
    "FailureReason",
    "StopReason",
    "FinalAsset",
    "SessionStatus",
    # Events fed to the state machine
    "StartRequested",
    "PauseRequested",
    "ResumeRequested",
    "StopRequested",
    "TimerTick",
    "FragmentAvailable",
    "TrackEnded",
    "VisibilityChanged",
    "EncoderFailed",
    # Published
    "Notice",
    "NoticeLevel",
    "StateChange",
    "SessionInfo",
]

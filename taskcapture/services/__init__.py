"""Services layer for taskcapture application logic."""

from .recording_service import RecordingService
from .submission import (
    SubmissionService,
    SubmissionSink,
    SubmissionRequest,
    SubmissionReceipt,
    HttpSubmissionSink,
    LocalSubmissionSink,
)

__all__ = [
    "RecordingService",
    "SubmissionService",
    "SubmissionSink",
    "SubmissionRequest",
    "SubmissionReceipt",
    "HttpSubmissionSink",
    "LocalSubmissionSink",
]

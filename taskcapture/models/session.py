"""Session-related data models."""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass
class SessionInfo:
    """Information about a finished recording session."""
    session_id: str
    start_time: datetime
    duration_seconds: int
    recording_file: str
    mime_type: str
    file_size_bytes: int
    fragment_count: int
    is_full_capture: bool
    integrity_warning_issued: bool
    public_reference: Optional[str] = None

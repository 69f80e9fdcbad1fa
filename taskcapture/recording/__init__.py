"""Recording state machine, chunk buffering and finalization."""

from .buffer import ChunkBuffer, Fragment
from .finalizer import Finalizer
from .guard import NavigationGuard
from .notices import NoticePublisher, NOTICE_TOPIC, STATE_TOPIC
from .session import RecordingSession
from .timer import SessionTimer, format_time

__all__ = [
    'ChunkBuffer',
    'Fragment',
    'Finalizer',
    'NavigationGuard',
    'NoticePublisher',
    'NOTICE_TOPIC',
    'STATE_TOPIC',
    'RecordingSession',
    'SessionTimer',
    'format_time',
]

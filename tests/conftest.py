"""Pytest configuration and fixtures for taskcapture tests."""

import pytest
import tempfile
import logging
import threading
from pathlib import Path
from unittest.mock import Mock, patch

import yaml
from pubsub import pub

from taskcapture.capture.base import (
    CaptureBackend,
    Encoder,
    EncoderState,
    MediaSource,
    MediaTrack,
    SurfaceKind,
)
from taskcapture.capture.manager import CaptureSessionManager
from taskcapture.config import DEFAULT_FORMATS, TaskCaptureConfig
from taskcapture.errors import DeviceError, PermissionDeniedError
from taskcapture.recording.finalizer import Finalizer
from taskcapture.recording.notices import NOTICE_TOPIC, STATE_TOPIC, NoticePublisher
from taskcapture.recording.session import RecordingSession
from taskcapture.storage.file_manager import FileManager


# Configure logging for tests
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class FakeTrack(MediaTrack):
    """Device track that records how it was closed."""

    def __init__(self, kind="video", surface_kind=None, label=""):
        super().__init__(kind=kind, surface_kind=surface_kind, label=label)
        self.close_count = 0

    def read(self) -> bytes:
        return b""

    def _close(self) -> None:
        self.close_count += 1


class FakeEncoder(Encoder):
    """Encoder driven by the test: fragments are emitted synchronously."""

    def __init__(self, *args, flush_payload=b"", stop_payload=b"", respond_to_flush=True,
                 fail_on_start=False, **kwargs):
        super().__init__(*args, **kwargs)
        self.flush_payload = flush_payload
        self.stop_payload = stop_payload
        self.respond_to_flush = respond_to_flush
        self.fail_on_start = fail_on_start
        self.timeslice_ms = None
        self.flush_requests = 0
        self.stop_count = 0

    def start(self, timeslice_ms: int) -> None:
        if self.fail_on_start:
            raise RuntimeError("encoder refused to start")
        self.timeslice_ms = timeslice_ms
        self.state = EncoderState.RECORDING

    def pause(self) -> None:
        self.state = EncoderState.PAUSED

    def resume(self) -> None:
        self.state = EncoderState.RECORDING

    def stop(self) -> None:
        self.stop_count += 1
        self.state = EncoderState.INACTIVE
        self.on_fragment(self.stop_payload)

    def request_data(self) -> None:
        self.flush_requests += 1
        if self.respond_to_flush:
            self.on_fragment(self.flush_payload)

    def emit(self, data: bytes) -> None:
        """Emit a fragment as if a timeslice elapsed."""
        self.on_fragment(data)

    def fail(self, error: Exception) -> None:
        self.on_error(error)


class FakeBackend(CaptureBackend):
    """Capture backend with switchable failures and full call recording."""

    def __init__(self,
                 surface_kind=SurfaceKind.MONITOR,
                 supported_formats=tuple(DEFAULT_FORMATS),
                 deny_permission=False,
                 display_audio=False,
                 microphone_available=True,
                 encoder_options=None,
                 fail_create_encoder=False):
        self.surface_kind = surface_kind
        self.supported_formats = set(supported_formats)
        self.deny_permission = deny_permission
        self.display_audio = display_audio
        self.microphone_available = microphone_available
        self.encoder_options = encoder_options or {}
        self.fail_create_encoder = fail_create_encoder

        self.display_requests = 0
        self.audio_requests = 0
        self.format_queries = []
        self.tracks = []
        self.encoders = []

    @property
    def encoder(self) -> FakeEncoder:
        return self.encoders[-1]

    @property
    def video_track(self) -> FakeTrack:
        return [track for track in self.tracks if track.kind == "video"][-1]

    def request_display_capture(self, constraints) -> MediaSource:
        self.display_requests += 1
        if self.deny_permission:
            raise PermissionDeniedError()
        tracks = [FakeTrack("video", self.surface_kind, label="screen")]
        if self.display_audio:
            tracks.append(FakeTrack("audio", label="system-audio"))
        self.tracks.extend(tracks)
        return MediaSource(tracks)

    def request_audio_capture(self) -> MediaSource:
        self.audio_requests += 1
        if not self.microphone_available:
            raise DeviceError("No microphone available")
        track = FakeTrack("audio", label="microphone")
        self.tracks.append(track)
        return MediaSource([track])

    def is_format_supported(self, mime_type: str) -> bool:
        self.format_queries.append(mime_type)
        return mime_type in self.supported_formats

    def create_encoder(self, source, mime_type, on_fragment, on_error) -> Encoder:
        if self.fail_create_encoder:
            raise RuntimeError("encoder unavailable")
        encoder = FakeEncoder(source, mime_type, on_fragment, on_error, **self.encoder_options)
        self.encoders.append(encoder)
        return encoder


class SlowPromptBackend(FakeBackend):
    """Display prompt that stays open until the test answers it."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.answer = threading.Event()

    def request_display_capture(self, constraints) -> MediaSource:
        self.answer.wait(timeout=5.0)
        return super().request_display_capture(constraints)


class FakeTimer:
    """Session timer that only ticks when the test says so."""

    def __init__(self, on_tick, interval: float = 1.0):
        self.on_tick = on_tick
        self.interval = interval
        self.running = False
        self.start_count = 0

    def start(self) -> None:
        self.running = True
        self.start_count += 1

    def stop(self) -> None:
        self.running = False

    def tick(self) -> None:
        if self.running:
            self.on_tick()


class NoticeRecorder:
    """Collects everything published on the notice and state topics."""

    def __init__(self):
        self.notices = []
        self.state_changes = []

    def on_notice(self, notice):
        self.notices.append(notice)

    def on_state_change(self, change):
        self.state_changes.append(change)

    @property
    def codes(self):
        return [notice.code for notice in self.notices]


def advance(session, seconds: int) -> None:
    """Tick the session timer ``seconds`` times, handling each tick."""
    for _ in range(seconds):
        session.timer.tick()
        session.process_events()


@pytest.fixture
def temp_data_dir():
    """Create temporary directory for test data."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield temp_dir


@pytest.fixture
def fake_backend():
    return FakeBackend()


@pytest.fixture
def notice_recorder():
    """Subscribe a recorder to the notice topics for the duration of a test."""
    NoticePublisher()
    recorder = NoticeRecorder()
    pub.subscribe(recorder.on_notice, NOTICE_TOPIC)
    pub.subscribe(recorder.on_state_change, STATE_TOPIC)
    yield recorder
    pub.unsubscribe(recorder.on_notice, NOTICE_TOPIC)
    pub.unsubscribe(recorder.on_state_change, STATE_TOPIC)


@pytest.fixture
def make_session(temp_data_dir):
    """Factory for recording sessions wired to a fake backend and timer."""
    file_manager = FileManager(temp_data_dir)
    sessions = []

    def factory(backend=None, time_limit_seconds=60, min_payload_bytes=16,
                flush_timeout=0.05, navigation_guard=None):
        backend = backend or FakeBackend()
        session = RecordingSession(
            session_id=f"test_{len(sessions)}",
            manager=CaptureSessionManager(backend),
            finalizer=Finalizer(file_manager.save_preview, min_payload_bytes=min_payload_bytes,
                                flush_timeout=flush_timeout),
            publisher=NoticePublisher(),
            time_limit_seconds=time_limit_seconds,
            navigation_guard=navigation_guard,
            timer_factory=FakeTimer,
        )
        sessions.append(session)
        return session

    yield factory
    for session in sessions:
        session.dispose()


@pytest.fixture
def config_file(temp_data_dir):
    """Write a test configuration and return its path."""
    config = {
        "recording": {
            "time_limit_minutes": 1,
            "timeslice_ms": 100,
            "flush_timeout_seconds": 0.05,
            "min_payload_bytes": 16,
        },
        "capture": {
            "prefer_surface": "monitor",
            "audio": True,
        },
        "storage": {
            "data_directory": "data",
        },
        "submission": {
            "max_attempts": 2,
            "retry_delay_seconds": 0,
        },
        "logging": {
            "level": "DEBUG",
            "file_path": "data/logs/test.log",
            "console_output": False,
        },
    }
    path = Path(temp_data_dir) / "taskcapture.yaml"
    with open(path, "w") as f:
        yaml.safe_dump(config, f)
    return str(path)


@pytest.fixture
def test_config(config_file):
    return TaskCaptureConfig(config_file)


@pytest.fixture
def mock_pyaudio():
    """Mock PyAudio for testing without actual audio hardware."""
    with patch('pyaudio.PyAudio') as mock_pyaudio_class:
        mock_pyaudio_instance = Mock()
        mock_stream = Mock()

        # Configure mock stream
        mock_stream.read.return_value = b'\x00' * 2048  # Silent audio
        mock_stream.stop_stream.return_value = None
        mock_stream.close.return_value = None

        # Configure mock PyAudio instance
        mock_pyaudio_instance.open.return_value = mock_stream
        mock_pyaudio_instance.terminate.return_value = None
        mock_pyaudio_instance.get_sample_size.return_value = 2

        # Configure mock PyAudio class
        mock_pyaudio_class.return_value = mock_pyaudio_instance

        yield {
            'class': mock_pyaudio_class,
            'instance': mock_pyaudio_instance,
            'stream': mock_stream
        }

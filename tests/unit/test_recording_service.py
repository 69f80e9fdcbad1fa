"""Unit tests for RecordingService."""

import json
import pytest
from pathlib import Path
from unittest.mock import Mock
from urllib.parse import unquote, urlparse

from conftest import FakeBackend, FakeTimer, SlowPromptBackend, advance
from taskcapture.capture.base import SurfaceKind
from taskcapture.errors import UploadError
from taskcapture.models.recording import RecordingState
from taskcapture.recording.guard import NavigationGuard
from taskcapture.services.recording_service import RecordingService
from taskcapture.services.submission import HttpSubmissionSink, LocalSubmissionSink, SubmissionSink


def uri_to_path(uri: str) -> Path:
    return Path(unquote(urlparse(uri).path))


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def service(test_config, backend):
    service = RecordingService(test_config, backend, timer_factory=FakeTimer)
    yield service
    service.teardown()


def record(service, backend, payload=b"x" * 64, seconds=2):
    """Start, capture one fragment and stop."""
    assert service.start_recording()["success"]
    advance(service.session, seconds)
    backend.encoder.emit(payload)
    return service.stop_recording()


@pytest.mark.unit
class TestRecordingService:
    """Test cases for RecordingService class."""

    def test_initialization(self, service, test_config):
        assert service.session is None
        assert isinstance(service.submission_service.sink, LocalSubmissionSink)
        assert service.submission_service.max_attempts == 2
        assert str(service.file_manager.data_dir) == test_config.get_data_directory()

    def test_http_sink_when_endpoint_configured(self, test_config, backend):
        test_config.set('submission.endpoint', 'https://storage.example.com/recordings')
        service = RecordingService(test_config, backend, timer_factory=FakeTimer)

        sink = service.submission_service.sink
        assert isinstance(sink, HttpSubmissionSink)
        assert sink.endpoint == 'https://storage.example.com/recordings'

    def test_start_recording(self, service):
        result = service.start_recording()

        assert result["success"] is True
        assert result["is_full_capture"] is True
        assert result["mime_type"] == "video/webm;codecs=vp9,opus"
        assert service.session.timeslice_ms == 100
        assert service.session.time_limit_seconds == 60

    def test_start_recording_with_task_time_limit(self, service):
        service.start_recording(time_limit_minutes=0.5)

        assert service.session.time_limit_seconds == 30

    def test_start_recording_invalid_time_limit(self, service):
        result = service.start_recording(time_limit_minutes=-1)

        assert result["success"] is False
        assert service.session is None

    def test_start_while_recording(self, service):
        service.start_recording()
        session_id = service.session.session_id

        result = service.start_recording()

        assert result["success"] is False
        assert result["error"] == "Already recording"
        assert service.session.session_id == session_id

    def test_stop_recording(self, service, backend):
        result = record(service, backend, seconds=3)

        assert result["success"] is True
        assert result["stop_reason"] == "manual"
        assert result["duration_seconds"] == 3
        assert result["fragment_count"] == 1
        assert result["size_bytes"] == 64
        assert uri_to_path(result["preview_uri"]).exists()

    def test_stop_without_session(self, service):
        result = service.stop_recording()

        assert result["success"] is False

    def test_stop_with_unwritable_preview_then_retry(self, service, backend):
        service.start_recording()
        backend.encoder.emit(b"x" * 64)
        service.session.finalizer.preview_store = Mock(side_effect=OSError("disk full"))

        result = service.stop_recording()

        assert result["success"] is False
        assert result["reason"] == "device_error"
        assert result["retryable"] is True
        status = service.get_status()
        assert status.state is RecordingState.IDLE
        assert "saved locally" in status.last_error

        assert service.retry_recording()["success"] is True
        assert service.session.state is RecordingState.RECORDING

    def test_start_recording_zero_time_limit(self, service):
        result = service.start_recording(time_limit_minutes=0)

        assert result["success"] is False
        assert result["retryable"] is False

    def test_pause_and_resume(self, service):
        service.start_recording()

        assert service.pause_recording()["success"]
        assert service.pause_recording()["success"] is False
        assert service.resume_recording()["success"]
        assert service.resume_recording()["success"] is False

    def test_permission_denied_then_retry(self, service, backend):
        backend.deny_permission = True

        result = service.start_recording()

        assert result["success"] is False
        assert result["reason"] == "permission_denied"
        assert result["retryable"] is True
        status = service.get_status()
        assert status.state is RecordingState.IDLE
        assert "permissions" in status.last_error

        backend.deny_permission = False
        retry = service.retry_recording()

        assert retry["success"] is True
        assert service.session.state is RecordingState.RECORDING

    def test_unanswered_capture_prompt_returns_to_idle(self, test_config):
        test_config.set('capture.acquire_timeout_seconds', 0.05)
        backend = SlowPromptBackend()
        service = RecordingService(test_config, backend, timer_factory=FakeTimer)
        try:
            result = service.start_recording()

            assert result["success"] is False
            assert result["reason"] == "permission_denied"
            assert result["retryable"] is True
            assert service.get_status().state is RecordingState.IDLE
            assert not service.get_status().navigation_guard_armed
        finally:
            backend.answer.set()
            service.teardown()

    def test_retry_not_allowed_for_unsupported_format(self, service, backend):
        backend.supported_formats = set()
        service.start_recording()

        result = service.retry_recording()

        assert result["success"] is False
        assert result["reason"] == "no_supported_format"
        assert backend.display_requests == 0

    def test_retry_without_failure(self, service):
        assert service.retry_recording()["success"] is False

    def test_process_events_reports_sharing_ended(self, service, backend):
        service.start_recording()
        backend.encoder.emit(b"x" * 64)

        backend.video_track.end()
        result = service.process_events()

        assert result["state"] == "completed"
        assert result["finished"]["success"] is True
        assert result["finished"]["stop_reason"] == "device_ended"

    def test_process_events_reports_time_limit(self, service, backend):
        service.start_recording(time_limit_minutes=0.05)
        backend.encoder.emit(b"x" * 64)

        for _ in range(3):
            service.session.timer.tick()
        result = service.process_events()

        assert result["finished"]["stop_reason"] == "time_limit"
        assert result["finished"]["duration_seconds"] == 3

    def test_process_events_without_session(self, service):
        assert service.process_events() == {"handled": 0}

    def test_notify_visibility(self, service, backend):
        backend.surface_kind = SurfaceKind.BROWSER
        service.start_recording()

        service.notify_visibility(True)

        assert service.get_status().integrity_warning_issued

    def test_save_recording(self, service, backend):
        record(service, backend)

        result = service.save_recording()

        assert result["success"] is True
        assert Path(result["recording_file"]).read_bytes() == b"x" * 64
        with open(result["session_info_file"]) as f:
            info = json.load(f)
        assert info["session_id"] == service.session.session_id
        assert info["file_size_bytes"] == 64
        assert info["is_full_capture"] is True
        assert Path(result["session_info_file"]).parent == service.file_manager.sessions_dir / service.session.session_id

    def test_save_without_recording(self, service):
        assert service.save_recording()["success"] is False

    def test_submit_recording(self, service, backend):
        record(service, backend)

        result = service.submit_recording("owner-42", timestamp_seed=1700000000000)

        assert result["success"] is True
        assert result["attempts"] == 1
        assert result["public_reference"].endswith("owner-42/1700000000000.webm")
        assert uri_to_path(result["public_reference"]).read_bytes() == b"x" * 64
        assert service.get_status().public_reference == result["public_reference"]
        codes = [n.code for n in service.session.notices]
        assert "recording.completed" in codes

    def test_submit_publishes_notice(self, service, backend, notice_recorder):
        record(service, backend)

        service.submit_recording("owner-42")

        assert "submission.completed" in notice_recorder.codes

    def test_submit_without_recording(self, service):
        result = service.submit_recording("owner-42")

        assert result == {"success": False, "error": "No recording available to submit"}

    def test_submit_requires_owner(self, service, backend):
        record(service, backend)

        result = service.submit_recording("")

        assert result["success"] is False
        assert result["retryable"] is False

    def test_submit_failure_keeps_recording(self, test_config, backend, notice_recorder):
        sink = Mock(spec=SubmissionSink)
        sink.submit.side_effect = UploadError()
        service = RecordingService(test_config, backend, sink=sink, timer_factory=FakeTimer)
        record(service, backend)

        result = service.submit_recording("owner-42")

        assert result["success"] is False
        assert result["reason"] == "upload_failed"
        assert result["retryable"] is True
        assert sink.submit.call_count == 2
        assert uri_to_path(result["preview_uri"]).exists()
        assert service.session.state is RecordingState.COMPLETED
        assert "error.upload_failed" in notice_recorder.codes
        service.teardown()

    def test_teardown_removes_preview(self, service, backend):
        result = record(service, backend)
        preview = uri_to_path(result["preview_uri"])

        service.teardown()

        assert not preview.exists()
        assert service.session is None
        assert service.get_status().state is RecordingState.IDLE

    def test_new_start_discards_previous_recording(self, service, backend):
        first = record(service, backend)

        service.start_recording()

        assert service.session.session_id != first["session_id"]
        assert not uri_to_path(first["preview_uri"]).exists()

    def test_confirm_leave(self, test_config, backend):
        guard = NavigationGuard(confirm=Mock(return_value=True))
        service = RecordingService(test_config, backend, navigation_guard=guard,
                                   timer_factory=FakeTimer)
        assert service.confirm_leave() is True

        service.start_recording()
        assert guard.armed
        assert service.confirm_leave() is True
        guard.confirm.assert_called_once()
        service.teardown()
        assert not guard.armed

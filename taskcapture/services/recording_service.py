"""Recording service that owns the current session on behalf of the UI."""

import logging
from typing import Optional, Dict, Any, Callable
from datetime import datetime

from ..capture.base import CaptureBackend, CaptureConstraints, SurfaceKind
from ..capture.manager import CaptureSessionManager
from ..config import TaskCaptureConfig
from ..errors import InvalidTransitionError, UploadError
from ..models.recording import RecordingState, SessionStatus
from ..models.session import SessionInfo
from ..recording.finalizer import Finalizer
from ..recording.guard import NavigationGuard
from ..recording.notices import NoticePublisher
from ..recording.session import RecordingSession
from ..recording.timer import SessionTimer
from ..storage.file_manager import FileManager
from .submission import LocalSubmissionSink, SubmissionService, SubmissionSink, HttpSubmissionSink

logger = logging.getLogger(__name__)


class RecordingService:
    """Creates, drives and tears down recording sessions.

    At most one session exists at a time. A new start, a retry or
    :meth:`teardown` destroys the previous one (capture released, buffers
    cleared, preview removed). Failures never propagate as exceptions: every
    operation returns a result dictionary.
    """

    def __init__(self,
                 config: TaskCaptureConfig,
                 backend: CaptureBackend,
                 file_manager: Optional[FileManager] = None,
                 sink: Optional[SubmissionSink] = None,
                 navigation_guard: Optional[NavigationGuard] = None,
                 publisher: Optional[NoticePublisher] = None,
                 timer_factory: Callable = SessionTimer):
        """Initialize recording service.

        Args:
            config: Application configuration
            backend: Capture-device API of the host
            file_manager: Local storage; created from config when omitted
            sink: Submission sink; built from ``submission.*`` config when omitted
            navigation_guard: Host navigation-away guard
            publisher: Notice publisher shared by all sessions
            timer_factory: Builds the per-session ticker from a tick callback
        """
        self.config = config
        self.backend = backend
        self.file_manager = file_manager or FileManager(config.get_data_directory())
        self.navigation_guard = navigation_guard or NavigationGuard()
        self.publisher = publisher or NoticePublisher()
        self.timer_factory = timer_factory

        self.submission_service = SubmissionService(
            sink=sink or self._create_sink(),
            max_attempts=config.get('submission.max_attempts', 3),
            retry_delay_seconds=config.get('submission.retry_delay_seconds', 1.0),
        )

        self.session: Optional[RecordingSession] = None
        self.started_at: Optional[datetime] = None
        self.public_reference: Optional[str] = None
        self._time_limit_minutes: Optional[float] = None

        logger.info("RecordingService ready")

    def _create_sink(self) -> SubmissionSink:
        endpoint = self.config.get('submission.endpoint')
        if endpoint:
            logger.info(f"Submitting recordings to {endpoint}")
            return HttpSubmissionSink(
                endpoint=endpoint,
                public_base_url=self.config.get('submission.public_base_url'),
                api_key=self.config.get('submission.api_key'),
                timeout_seconds=self.config.get('submission.timeout_seconds', 30.0),
            )
        logger.info("No submission endpoint configured, storing submissions locally")
        return LocalSubmissionSink(self.file_manager)

    def _create_session(self, time_limit_minutes: Optional[float]) -> RecordingSession:
        manager = CaptureSessionManager(
            backend=self.backend,
            formats=self.config.get_formats(),
            capture_audio=self.config.get('capture.audio', True),
        )
        finalizer = Finalizer(
            preview_store=self.file_manager.save_preview,
            min_payload_bytes=self.config.get('recording.min_payload_bytes', 1024),
            flush_timeout=self.config.get('recording.flush_timeout_seconds', 2.0),
        )
        constraints = CaptureConstraints(
            prefer_surface=SurfaceKind(self.config.get('capture.prefer_surface', 'monitor')),
            audio=self.config.get('capture.audio', True),
            timeout_seconds=self.config.get('capture.acquire_timeout_seconds', 60),
        )
        return RecordingSession(
            session_id=self.file_manager.new_session_id(),
            manager=manager,
            finalizer=finalizer,
            publisher=self.publisher,
            time_limit_seconds=self.config.get_time_limit_seconds(time_limit_minutes),
            timeslice_ms=self.config.get('recording.timeslice_ms', 1000),
            constraints=constraints,
            navigation_guard=self.navigation_guard,
            timer_factory=self.timer_factory,
        )

    def start_recording(self, time_limit_minutes: Optional[float] = None) -> Dict[str, Any]:
        """Begin a new capture attempt, discarding any previous session.

        Args:
            time_limit_minutes: Task-specific limit; falls back to configuration

        Returns:
            Result dictionary with success status and details
        """
        if self.session and self.session.state in (RecordingState.RECORDING, RecordingState.PAUSED):
            return {
                "success": False,
                "error": "Already recording",
                "session_id": self.session.session_id
            }

        self.teardown()
        self._time_limit_minutes = time_limit_minutes
        try:
            self.session = self._create_session(time_limit_minutes)
        except ValueError as e:
            logger.error(f"Invalid recording configuration: {e}")
            return {"success": False, "error": str(e), "retryable": False}

        self.started_at = datetime.now()
        self.session.start()

        if self.session.state is RecordingState.FAILED:
            return self._failure_result()

        logger.info(f"Started recording for session: {self.session.session_id}")
        return {
            "success": True,
            "session_id": self.session.session_id,
            "started_at": self.started_at.isoformat(),
            "is_full_capture": self.session.is_full_capture,
            "mime_type": self.session.mime_type,
        }

    def retry_recording(self) -> Dict[str, Any]:
        """Throw away a failed session and start again from scratch."""
        if not self.session or self.session.state is not RecordingState.FAILED:
            return {"success": False, "error": "Nothing to retry"}
        if not self.session.failure.retryable:
            return self._failure_result()
        return self.start_recording(self._time_limit_minutes)

    def pause_recording(self) -> Dict[str, Any]:
        if not self.session or self.session.state is not RecordingState.RECORDING:
            return {"success": False, "error": "Not recording"}
        self.session.pause()
        return {"success": True, "elapsed_seconds": self.session.elapsed_seconds}

    def resume_recording(self) -> Dict[str, Any]:
        if not self.session or self.session.state is not RecordingState.PAUSED:
            return {"success": False, "error": "Not paused"}
        self.session.resume()
        return {"success": True, "elapsed_seconds": self.session.elapsed_seconds}

    def stop_recording(self) -> Dict[str, Any]:
        """Stop recording and return the finished recording's details."""
        if not self.session:
            return {"success": False, "error": "Not recording"}

        self.session.stop()
        return self._stopped_result()

    def process_events(self, timeout: Optional[float] = None) -> Dict[str, Any]:
        """Handle pending device and timer events; call this from the host loop.

        Returns:
            Dictionary with the number of handled events and, when the session
            finished on its own (time limit, sharing ended), its result
        """
        if not self.session:
            return {"handled": 0}

        before = self.session.state
        handled = self.session.process_events(timeout)
        result = {"handled": handled, "state": self.session.state.value}
        if before is not self.session.state and self.session.state in (
                RecordingState.COMPLETED, RecordingState.FAILED):
            result["finished"] = self._stopped_result()
        return result

    def notify_visibility(self, hidden: bool) -> None:
        """Host document visibility changed."""
        if self.session:
            self.session.set_visibility(hidden)

    def _stopped_result(self) -> Dict[str, Any]:
        session = self.session
        if session.state is RecordingState.FAILED:
            return self._failure_result()
        if session.state is not RecordingState.COMPLETED:
            return {"success": False, "error": "Not recording", "state": session.state.value}

        asset = session.finalize()
        logger.info(f"Session stopped: {session.session_id}")
        return {
            "success": True,
            "session_id": session.session_id,
            "stopped_at": datetime.now().isoformat(),
            "stop_reason": session.stop_reason.value,
            "duration_seconds": session.elapsed_seconds,
            "fragment_count": asset.fragment_count,
            "size_bytes": asset.size_bytes,
            "mime_type": asset.mime_type,
            "preview_uri": asset.preview_uri,
            "integrity_warning_issued": session.integrity_warning_issued,
        }

    def _failure_result(self) -> Dict[str, Any]:
        failure = self.session.failure
        return {
            "success": False,
            "session_id": self.session.session_id,
            "error": failure.message,
            "reason": failure.reason.value,
            "retryable": failure.retryable,
        }

    def save_recording(self) -> Dict[str, Any]:
        """Save the completed recording and its metadata to the session directory."""
        try:
            asset = self._completed_asset()
        except InvalidTransitionError as e:
            return {"success": False, "error": str(e)}

        session = self.session
        try:
            recording_path = self.file_manager.save_recording(
                asset.data, session.session_id, asset.mime_type)
            session_info = SessionInfo(
                session_id=session.session_id,
                start_time=self.started_at or datetime.now(),
                duration_seconds=session.elapsed_seconds,
                recording_file=recording_path,
                mime_type=asset.mime_type,
                file_size_bytes=asset.size_bytes,
                fragment_count=asset.fragment_count,
                is_full_capture=session.is_full_capture,
                integrity_warning_issued=session.integrity_warning_issued,
                public_reference=self.public_reference,
            )
            info_path = self.file_manager.save_session_info(session_info)
        except OSError as e:
            logger.error(f"Error saving recording: {e}")
            return {"success": False, "error": str(e)}

        return {
            "success": True,
            "session_id": session.session_id,
            "recording_file": recording_path,
            "session_info_file": info_path,
        }

    def submit_recording(self, owner_id: str, timestamp_seed: Optional[int] = None) -> Dict[str, Any]:
        """Hand the completed recording to the submission sink.

        A failed upload keeps the local recording; call again to retry.
        """
        try:
            asset = self._completed_asset()
        except InvalidTransitionError:
            return {"success": False, "error": "No recording available to submit"}

        try:
            receipt = self.submission_service.submit(asset, owner_id, timestamp_seed)
        except ValueError as e:
            return {"success": False, "error": str(e), "retryable": False}
        except UploadError as e:
            self.publisher.notify_upload_failed(e, self.session.session_id)
            return {
                "success": False,
                "error": e.message,
                "reason": e.reason.value,
                "retryable": True,
                "preview_uri": asset.preview_uri,
            }

        self.public_reference = receipt.public_reference
        self.publisher.notify_submitted(receipt.public_reference, self.session.session_id)
        return {
            "success": True,
            "public_reference": receipt.public_reference,
            "attempts": receipt.attempts,
            "size_bytes": receipt.size_bytes,
        }

    def _completed_asset(self):
        if not self.session:
            raise InvalidTransitionError("No session")
        return self.session.finalize()

    def get_status(self) -> SessionStatus:
        """Status for display; a failed session shows as idle with its error."""
        if not self.session:
            return SessionStatus(navigation_guard_armed=self.navigation_guard.armed)
        status = self.session.get_status()
        if status.state is RecordingState.FAILED:
            status.state = RecordingState.IDLE
        status.public_reference = self.public_reference
        return status

    def confirm_leave(self) -> bool:
        """Ask before the host navigates away from a live recording."""
        return self.navigation_guard.confirm_leave()

    def teardown(self) -> None:
        """Destroy the current session, whatever state it is in."""
        if not self.session:
            return
        session = self.session
        session.dispose()
        if session.final_asset:
            self.file_manager.remove_preview(session.final_asset.preview_uri)
        self.session = None
        self.public_reference = None
        logger.info(f"Session {session.session_id} torn down")

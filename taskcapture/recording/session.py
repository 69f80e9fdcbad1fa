"""Recording state machine for a single capture attempt."""

import time
import queue
import logging
from typing import Callable, Dict, List, Optional

from .buffer import ChunkBuffer, Fragment
from .finalizer import Finalizer
from .guard import NavigationGuard
from .notices import NoticePublisher
from .timer import SessionTimer, format_time
from ..capture.base import CaptureConstraints
from ..capture.manager import CaptureSessionManager
from ..errors import DeviceError, InvalidTransitionError, RecordingError
from ..models.events import (
    EncoderFailed,
    FragmentAvailable,
    NoticeLevel,
    PauseRequested,
    ResumeRequested,
    StartRequested,
    StateChange,
    StopRequested,
    TimerTick,
    TrackEnded,
    VisibilityChanged,
)
from ..models.recording import FinalAsset, RecordingState, SessionStatus, StopReason

logger = logging.getLogger(__name__)


_ALLOWED_TRANSITIONS = {
    RecordingState.IDLE: {RecordingState.PREPARING},
    RecordingState.PREPARING: {RecordingState.RECORDING, RecordingState.FAILED},
    RecordingState.RECORDING: {RecordingState.PAUSED, RecordingState.PROCESSING, RecordingState.FAILED},
    RecordingState.PAUSED: {RecordingState.RECORDING, RecordingState.PROCESSING, RecordingState.FAILED},
    RecordingState.PROCESSING: {RecordingState.COMPLETED, RecordingState.FAILED},
    RecordingState.COMPLETED: set(),
    RecordingState.FAILED: set(),
}

_ACTIVE_STATES = (RecordingState.RECORDING, RecordingState.PAUSED)


class RecordingSession:
    """One capture attempt, from the start request to a finished asset or a failure.

    Every input (user actions, timer ticks, encoder fragments, device and
    visibility events) is an event object handled by :meth:`handle`. Device
    threads only ever :meth:`post` events; the owner drains them with
    :meth:`process_events`, so the chunk buffer has a single writer.

    A session never goes back to ``IDLE``: failures end in ``FAILED`` and the
    owner builds a fresh session to retry.
    """

    def __init__(self,
                 session_id: str,
                 manager: CaptureSessionManager,
                 finalizer: Finalizer,
                 publisher: NoticePublisher,
                 time_limit_seconds: int,
                 timeslice_ms: int = 1000,
                 constraints: Optional[CaptureConstraints] = None,
                 navigation_guard: Optional[NavigationGuard] = None,
                 timer_factory: Callable[[Callable[[], None]], object] = SessionTimer,
                 clock: Callable[[], float] = time.monotonic):
        if time_limit_seconds <= 0:
            raise ValueError("time_limit_seconds must be positive")

        self.session_id = session_id
        self.time_limit_seconds = time_limit_seconds
        self.timeslice_ms = timeslice_ms
        self.constraints = constraints or CaptureConstraints()

        self.manager = manager
        self.finalizer = finalizer
        self.publisher = publisher
        self.navigation_guard = navigation_guard or NavigationGuard()
        self.timer = timer_factory(lambda: self.post(TimerTick()))
        self.clock = clock

        # Session state
        self.state = RecordingState.IDLE
        self.failure: Optional[RecordingError] = None
        self.stop_reason: Optional[StopReason] = None
        self.elapsed_seconds = 0
        self.is_full_capture = False
        self.integrity_warning_issued = False
        self.mime_type: Optional[str] = None
        self.final_asset: Optional[FinalAsset] = None
        self.started_at: Optional[float] = None
        self.notices: List = []

        self._buffer = ChunkBuffer()
        self._events: "queue.Queue[object]" = queue.Queue()
        self._fragments_seen = 0
        self._capture_released = False

        self._handlers: Dict[type, Callable[[object], None]] = {
            StartRequested: self._on_start,
            PauseRequested: self._on_pause,
            ResumeRequested: self._on_resume,
            StopRequested: self._on_stop,
            TimerTick: self._on_timer_tick,
            FragmentAvailable: self._on_fragment,
            TrackEnded: self._on_track_ended,
            VisibilityChanged: self._on_visibility_changed,
            EncoderFailed: self._on_encoder_failed,
        }

    # Public operations

    def start(self) -> None:
        self.handle(StartRequested())
        self.process_events()

    def pause(self) -> None:
        self.process_events()
        self.handle(PauseRequested())

    def resume(self) -> None:
        self.handle(ResumeRequested())
        self.process_events()

    def stop(self, reason: StopReason = StopReason.MANUAL) -> None:
        self.process_events()
        self.handle(StopRequested(reason))

    def set_visibility(self, hidden: bool) -> None:
        self.handle(VisibilityChanged(hidden=hidden))

    def finalize(self) -> FinalAsset:
        """Return the finished asset of a completed session."""
        if self.state is not RecordingState.COMPLETED or self.final_asset is None:
            raise InvalidTransitionError(f"Session {self.session_id} has no asset in state {self.state.value}")
        return self.final_asset

    @property
    def chunks(self) -> List[Fragment]:
        return self._buffer.fragments()

    def post(self, event: object) -> None:
        """Queue an event from any thread."""
        self._events.put(event)

    def process_events(self, timeout: Optional[float] = None) -> int:
        """Handle queued events in arrival order.

        Args:
            timeout: wait up to this long for the first event when the queue is empty

        Returns:
            Number of events handled
        """
        handled = 0
        block = timeout is not None and timeout > 0
        while True:
            try:
                event = self._events.get(block=block, timeout=timeout if block else None)
            except queue.Empty:
                return handled
            block = False
            self.handle(event)
            handled += 1

    def handle(self, event: object) -> None:
        handler = self._handlers.get(type(event))
        if handler is None:
            logger.warning(f"Session {self.session_id}: unknown event {event!r}")
            return
        handler(event)

    def dispose(self) -> None:
        """Tear the session down from whatever state it is in."""
        self.timer.stop()
        self.navigation_guard.disarm()
        self._release_capture()
        self._buffer.clear()
        logger.info(f"Session {self.session_id} disposed in state {self.state.value}")

    def get_status(self) -> SessionStatus:
        stats = self._buffer.get_buffer_stats()
        return SessionStatus(
            session_id=self.session_id,
            state=self.state,
            elapsed_seconds=self.elapsed_seconds,
            formatted_time=format_time(self.elapsed_seconds),
            time_limit_seconds=self.time_limit_seconds,
            is_full_capture=self.is_full_capture,
            integrity_warning_issued=self.integrity_warning_issued,
            fragment_count=stats["fragment_count"],
            buffered_bytes=stats["total_bytes"],
            mime_type=self.mime_type,
            preview_uri=self.final_asset.preview_uri if self.final_asset else None,
            last_error=self.failure.message if self.failure else None,
            retryable=self.failure.retryable if self.failure else False,
            navigation_guard_armed=self.navigation_guard.armed,
            notices=list(self.notices),
        )

    # Event handlers

    def _on_start(self, event: StartRequested) -> None:
        if self.state is not RecordingState.IDLE:
            logger.debug(f"Session {self.session_id}: start ignored in state {self.state.value}")
            return

        self._transition(RecordingState.PREPARING)
        try:
            capture = self.manager.acquire(self.constraints, self.post)
        except RecordingError as e:
            logger.error(f"Session {self.session_id}: capture acquisition failed: {e.message}")
            self._fail(e)
            return

        self.is_full_capture = capture.is_full_capture
        self.mime_type = capture.mime_type

        try:
            self.manager.start_encoding(self.timeslice_ms)
        except Exception as e:
            logger.error(f"Session {self.session_id}: encoder failed to start: {e}", exc_info=True)
            self._fail(DeviceError())
            return

        self.started_at = self.clock()
        self._transition(RecordingState.RECORDING)
        self.timer.start()

        self._notify(NoticeLevel.SUCCESS, "recording.started", "Recording started successfully")
        if self.is_full_capture:
            self._notify(NoticeLevel.INFO, "capture.full_screen",
                         "Full screen detected. You may switch tabs while recording.")
        else:
            self._notify(NoticeLevel.INFO, "capture.tab_only",
                         "Tab recording detected. Please don't switch tabs during recording.")
        if not capture.has_audio:
            self._notify(NoticeLevel.WARNING, "capture.no_audio",
                         "Microphone unavailable. Recording video only.")

    def _on_pause(self, event: PauseRequested) -> None:
        if self.state is not RecordingState.RECORDING:
            logger.debug(f"Session {self.session_id}: pause ignored in state {self.state.value}")
            return
        self.timer.stop()
        self.manager.pause_encoding()
        self._transition(RecordingState.PAUSED)
        self._notify(NoticeLevel.INFO, "recording.paused", "Recording paused")

    def _on_resume(self, event: ResumeRequested) -> None:
        if self.state is not RecordingState.PAUSED:
            logger.debug(f"Session {self.session_id}: resume ignored in state {self.state.value}")
            return
        self.manager.resume_encoding()
        self._transition(RecordingState.RECORDING)
        self.timer.start()
        self._notify(NoticeLevel.INFO, "recording.resumed", "Recording resumed")

    def _on_stop(self, event: StopRequested) -> None:
        if self.state not in _ACTIVE_STATES:
            logger.debug(f"Session {self.session_id}: stop ({event.reason.value}) "
                         f"ignored in state {self.state.value}")
            return
        self._stop(event.reason)

    def _on_timer_tick(self, event: TimerTick) -> None:
        if self.state is not RecordingState.RECORDING:
            return
        self.elapsed_seconds += 1
        if self.elapsed_seconds >= self.time_limit_seconds:
            minutes = self.time_limit_seconds / 60
            self._notify(NoticeLevel.INFO, "recording.time_limit",
                         f"Time limit of {minutes:g} minutes reached. Stopping recording.")
            self._stop(StopReason.TIME_LIMIT)

    def _on_fragment(self, event: FragmentAvailable) -> None:
        self._fragments_seen += 1
        if self.state not in (RecordingState.RECORDING, RecordingState.PAUSED, RecordingState.PROCESSING):
            logger.debug(f"Session {self.session_id}: fragment #{event.sequence_number} "
                         f"dropped in state {self.state.value}")
            return
        self._buffer.append(event.data, event.timestamp)

    def _on_track_ended(self, event: TrackEnded) -> None:
        if self.state not in _ACTIVE_STATES:
            return
        self._notify(NoticeLevel.INFO, "capture.sharing_ended",
                     "Screen sharing ended. Recording stopped.")
        self._stop(StopReason.DEVICE_ENDED)

    def _on_visibility_changed(self, event: VisibilityChanged) -> None:
        if not event.hidden or self.state is not RecordingState.RECORDING:
            return
        if self.is_full_capture or self.integrity_warning_issued:
            return
        self.integrity_warning_issued = True
        self._notify(NoticeLevel.WARNING, "integrity.tab_switch",
                     "Tab switching detected! Your recording may be invalidated.")

    def _on_encoder_failed(self, event: EncoderFailed) -> None:
        if self.state not in _ACTIVE_STATES:
            return
        logger.error(f"Session {self.session_id}: encoder failed mid-session: {event.error}")
        self._fail(DeviceError())

    # Internals

    def _stop(self, reason: StopReason) -> None:
        """The only way from an active state to a finished recording."""
        self.stop_reason = reason
        self._transition(RecordingState.PROCESSING)
        self.timer.stop()
        logger.info(f"Session {self.session_id}: stopping ({reason.value}) "
                    f"after {self.elapsed_seconds}s")

        self.finalizer.request_flush(self.manager.request_fragment, self._await_fragment)
        self.manager.stop_encoding()
        self.process_events()
        self._release_capture()

        try:
            asset = self.finalizer.finalize(
                self._buffer, self.mime_type, self.session_id, self.elapsed_seconds)
        except RecordingError as e:
            self._fail(e)
            return

        self.final_asset = asset
        self._transition(RecordingState.COMPLETED)
        self._notify(NoticeLevel.SUCCESS, "recording.completed", "Recording completed successfully")

    def _await_fragment(self, timeout: float) -> bool:
        """Handle queued events until a new fragment arrives or the timeout expires."""
        seen = self._fragments_seen
        deadline = self.clock() + timeout
        while self._fragments_seen == seen:
            remaining = deadline - self.clock()
            if remaining <= 0:
                return False
            try:
                event = self._events.get(timeout=remaining)
            except queue.Empty:
                return False
            self.handle(event)
        return True

    def _fail(self, error: RecordingError) -> None:
        self.timer.stop()
        self._release_capture()
        self._buffer.clear()
        self.failure = error
        self._transition(RecordingState.FAILED)
        self._notify(NoticeLevel.ERROR, f"error.{error.reason.value}", error.message)

    def _release_capture(self) -> None:
        if self._capture_released:
            return
        self._capture_released = True
        self.manager.release()

    def _transition(self, new_state: RecordingState) -> None:
        previous = self.state
        if new_state not in _ALLOWED_TRANSITIONS[previous]:
            raise InvalidTransitionError(f"{previous.value} -> {new_state.value}")
        self.state = new_state

        if new_state in _ACTIVE_STATES:
            self.navigation_guard.arm()
        else:
            self.navigation_guard.disarm()

        logger.info(f"Session {self.session_id}: {previous.value} -> {new_state.value}")
        self.publisher.publish_state_change(StateChange(
            session_id=self.session_id, previous=previous, current=new_state))

    def _notify(self, level: NoticeLevel, code: str, message: str) -> None:
        notice = self.publisher.notify(level, code, message, session_id=self.session_id)
        self.notices.append(notice)

"""Capture session manager: owns the device stream and the encoder bound to it."""

import logging
import threading
from typing import Callable, List, Optional, Sequence

from .base import (
    AcquiredCapture,
    CaptureBackend,
    CaptureConstraints,
    Encoder,
    EncoderState,
    MediaSource,
    MediaTrack,
    SurfaceKind,
)
from .formats import negotiate_format
from ..config import DEFAULT_FORMATS
from ..errors import DeviceError, PermissionDeniedError, RecordingError
from ..models.events import EncoderFailed, FragmentAvailable, TrackEnded

logger = logging.getLogger(__name__)


class CaptureSessionManager:
    """Acquires and releases the screen+audio capture for one recording session.

    Device callbacks are translated into event objects and handed to the
    ``emit`` callable given to :meth:`acquire`; nothing else leaves this class.
    """

    def __init__(self,
                 backend: CaptureBackend,
                 formats: Sequence[str] = DEFAULT_FORMATS,
                 capture_audio: bool = True):
        self.backend = backend
        self.formats = list(formats)
        self.capture_audio = capture_audio

        self.source: Optional[MediaSource] = None
        self.encoder: Optional[Encoder] = None
        self.is_full_capture = False
        self.release_count = 0

        self._emit: Optional[Callable[[object], None]] = None
        self._sequence_number = 0
        self._sequence_lock = threading.Lock()
        self._releasing = False

    @property
    def is_acquired(self) -> bool:
        return self.source is not None

    def acquire(self,
                constraints: CaptureConstraints,
                emit: Callable[[object], None]) -> AcquiredCapture:
        """Acquire display (and microphone) capture and bind an encoder to it.

        Raises:
            PermissionDeniedError: user refused the capture prompt
            NoSupportedFormatError: no candidate format can be encoded here
            DeviceError: anything else went wrong while acquiring
        """
        if self.source is not None:
            raise DeviceError("A capture is already active for this session.")

        # Fail fast, before prompting the user for anything
        mime_type = negotiate_format(self.backend, self.formats)

        acquired: List[MediaTrack] = []
        try:
            display = self._request_display(constraints)
            acquired.extend(display.tracks)

            video_tracks = display.video_tracks()
            if not video_tracks:
                raise DeviceError("The shared surface did not provide a video track.")
            is_full_capture = video_tracks[0].surface_kind is SurfaceKind.MONITOR

            audio_tracks = display.audio_tracks()
            if not audio_tracks and constraints.audio and self.capture_audio:
                audio_tracks = self._acquire_microphone(acquired)

            source = MediaSource(video_tracks + audio_tracks)
            # Tracks the combined source does not carry are not needed anymore
            for track in acquired:
                if track not in source.tracks:
                    track.stop()

            self._emit = emit
            self._sequence_number = 0
            encoder = self.backend.create_encoder(
                source, mime_type, self._on_fragment, self._on_encoder_error)
        except RecordingError:
            self._stop_tracks(acquired)
            raise
        except Exception as e:
            logger.error(f"Error acquiring capture: {e}", exc_info=True)
            self._stop_tracks(acquired)
            raise DeviceError() from e

        video_tracks[0].add_ended_listener(self._on_track_ended)

        self.source = source
        self.encoder = encoder
        self.is_full_capture = is_full_capture
        self._releasing = False

        logger.info(f"Capture acquired: {len(source.tracks)} tracks, "
                    f"full_capture={is_full_capture}, format={mime_type}")
        return AcquiredCapture(
            mime_type=mime_type,
            is_full_capture=is_full_capture,
            has_audio=bool(source.audio_tracks()),
            track_count=len(source.tracks),
        )

    def _request_display(self, constraints: CaptureConstraints) -> MediaSource:
        """Run the display prompt, giving up after ``constraints.timeout_seconds``.

        A prompt answered after the deadline has its tracks stopped right away.
        """
        timeout = constraints.timeout_seconds
        if not timeout or timeout <= 0:
            return self.backend.request_display_capture(constraints)

        outcome = {}
        lock = threading.Lock()

        def request():
            try:
                source = self.backend.request_display_capture(constraints)
            except Exception as e:
                with lock:
                    outcome["error"] = e
                return
            with lock:
                late = outcome.get("timed_out", False)
                if not late:
                    outcome["source"] = source
            if late:
                logger.info("Capture prompt answered after the timeout; releasing it")
                self._stop_tracks(source.tracks)

        worker = threading.Thread(target=request, daemon=True)
        worker.name = "DisplayCaptureRequest"
        worker.start()
        worker.join(timeout)

        with lock:
            if "source" not in outcome and "error" not in outcome:
                outcome["timed_out"] = True

        if outcome.get("timed_out"):
            logger.warning(f"Capture prompt not answered within {timeout}s")
            raise PermissionDeniedError("The screen sharing prompt was not answered in time. "
                                        "Please try again.")
        if "error" in outcome:
            raise outcome["error"]
        return outcome["source"]

    def _acquire_microphone(self, acquired: List[MediaTrack]) -> List[MediaTrack]:
        try:
            microphone = self.backend.request_audio_capture()
        except Exception as e:
            logger.warning(f"Could not capture audio, proceeding with video only: {e}")
            return []
        acquired.extend(microphone.tracks)
        return microphone.audio_tracks()

    def start_encoding(self, timeslice_ms: int) -> None:
        if self.encoder and self.encoder.state is EncoderState.INACTIVE:
            self.encoder.start(timeslice_ms)
            logger.debug(f"Encoder started with {timeslice_ms}ms timeslice")

    def pause_encoding(self) -> None:
        if self.encoder and self.encoder.state is EncoderState.RECORDING:
            self.encoder.pause()

    def resume_encoding(self) -> None:
        if self.encoder and self.encoder.state is EncoderState.PAUSED:
            self.encoder.resume()

    def request_fragment(self) -> None:
        if self.encoder and self.encoder.state is not EncoderState.INACTIVE:
            self.encoder.request_data()

    def stop_encoding(self) -> None:
        if self.encoder and self.encoder.state is not EncoderState.INACTIVE:
            try:
                self.encoder.stop()
            except Exception as e:
                logger.warning(f"Error stopping encoder: {e}")

    def release(self) -> None:
        """Stop the encoder and every device track. Safe to call any number of times."""
        if self.source is None:
            return

        self._releasing = True
        self.stop_encoding()
        self._stop_tracks(self.source.tracks)

        self.source = None
        self.encoder = None
        self._emit = None
        self.release_count += 1
        logger.info("Capture released")

    def _stop_tracks(self, tracks: List[MediaTrack]) -> None:
        for track in tracks:
            try:
                track.stop()
            except Exception as e:
                logger.warning(f"Error stopping track {track.label}: {e}")

    def _next_sequence_number(self) -> int:
        with self._sequence_lock:
            self._sequence_number += 1
            return self._sequence_number

    def _on_fragment(self, data: bytes) -> None:
        emit = self._emit
        if emit is None:
            return
        emit(FragmentAvailable(data=data, sequence_number=self._next_sequence_number()))

    def _on_encoder_error(self, error: Exception) -> None:
        logger.error(f"Encoder error: {error}")
        emit = self._emit
        if emit is not None and not self._releasing:
            emit(EncoderFailed(error=error))

    def _on_track_ended(self, track: MediaTrack) -> None:
        emit = self._emit
        if emit is None or self._releasing:
            return
        logger.info(f"Sharing ended from outside the app: {track.label}")
        emit(TrackEnded(kind=track.kind))

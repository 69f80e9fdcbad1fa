"""Synthetic capture backend producing test-pattern media.

Used by the command line recorder and integration tests to drive the whole
pipeline without a real display. The encoder does not produce a real
container: fragments are raw frame and PCM bytes tagged with whatever format
was negotiated.
"""

import time
import logging
import threading
from threading import Thread, Event
from typing import Callable, Optional, Sequence

import numpy as np

from .base import (
    CaptureBackend,
    CaptureConstraints,
    Encoder,
    EncoderState,
    MediaSource,
    MediaTrack,
    SurfaceKind,
)
from .formats import container_type
from .microphone import MicrophoneTrack
from ..errors import DeviceError, PermissionDeniedError

logger = logging.getLogger(__name__)


class SyntheticDisplayTrack(MediaTrack):
    """Scrolling gradient frames, one per read."""

    def __init__(self, surface_kind: SurfaceKind, width: int = 64, height: int = 36):
        super().__init__(kind="video", surface_kind=surface_kind,
                         label=f"synthetic-{surface_kind.value}")
        self.width = width
        self.height = height
        self.frame_index = 0

    def read(self) -> bytes:
        if self.ended:
            return b""
        self.frame_index += 1
        row = (np.arange(self.width, dtype=np.uint16) + self.frame_index) % 256
        frame = np.tile(row.astype(np.uint8), (self.height, 1))
        return frame.tobytes()

    def _close(self) -> None:
        pass


class SyntheticToneTrack(MediaTrack):
    """440 Hz sine wave covering the wall time since the previous read."""

    def __init__(self, sample_rate: int = 16000, frequency: float = 440.0):
        super().__init__(kind="audio", label="synthetic-tone")
        self.sample_rate = sample_rate
        self.frequency = frequency
        self._last_read = time.monotonic()
        self._phase = 0

    def read(self) -> bytes:
        if self.ended:
            return b""
        now = time.monotonic()
        samples = int((now - self._last_read) * self.sample_rate)
        self._last_read = now
        if samples <= 0:
            return b""
        t = (np.arange(samples) + self._phase) / self.sample_rate
        self._phase += samples
        wave_data = np.sin(2 * np.pi * self.frequency * t)
        return (wave_data * 32767 * 0.2).astype(np.int16).tobytes()

    def _close(self) -> None:
        pass


class SyntheticEncoder(Encoder):
    """Collects media from every track on a background thread and emits it each timeslice."""

    def __init__(self, *args, frame_interval: float = 0.1, **kwargs):
        super().__init__(*args, **kwargs)
        self.frame_interval = frame_interval
        self.timeslice_ms = 1000

        self._pending = bytearray()
        self._lock = threading.Lock()
        self._stop_event = Event()
        self._thread: Optional[Thread] = None

    def start(self, timeslice_ms: int) -> None:
        if self.state is not EncoderState.INACTIVE:
            logger.warning("Encoder already started")
            return
        self.timeslice_ms = timeslice_ms
        self.state = EncoderState.RECORDING
        self._stop_event.clear()
        self._thread = Thread(target=self._encode_continuously, daemon=True)
        self._thread.name = "SyntheticEncoderThread"
        self._thread.start()

    def pause(self) -> None:
        if self.state is EncoderState.RECORDING:
            self.state = EncoderState.PAUSED

    def resume(self) -> None:
        if self.state is EncoderState.PAUSED:
            # Drop what the devices captured while paused
            for track in self.source.tracks:
                track.read()
            self.state = EncoderState.RECORDING

    def request_data(self) -> None:
        if self.state is EncoderState.INACTIVE:
            return
        self._collect()
        self._emit_pending()

    def stop(self) -> None:
        if self.state is EncoderState.INACTIVE:
            return
        self._stop_event.set()
        if self._thread and self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout=2.0)
            if self._thread.is_alive():
                logger.warning("Encoder thread did not stop cleanly")
        if self.state is EncoderState.RECORDING:
            self._collect()
        self.state = EncoderState.INACTIVE
        self._emit_pending()

    def _encode_continuously(self) -> None:
        """Internal method: collection loop in background thread."""
        slice_started = time.monotonic()
        try:
            while not self._stop_event.wait(self.frame_interval):
                if self.state is not EncoderState.RECORDING:
                    continue
                self._collect()
                if (time.monotonic() - slice_started) * 1000 >= self.timeslice_ms:
                    slice_started = time.monotonic()
                    self._emit_pending()
        except Exception as e:
            logger.error(f"Synthetic encoder failed: {e}", exc_info=True)
            self.on_error(e)

    def _collect(self) -> None:
        with self._lock:
            for track in self.source.tracks:
                if not track.ended:
                    self._pending.extend(track.read())

    def _emit_pending(self) -> None:
        # Emitted under the lock so fragments leave in the order they were taken
        with self._lock:
            data = bytes(self._pending)
            self._pending.clear()
            self.on_fragment(data)


class SyntheticCaptureBackend(CaptureBackend):
    """Capture backend that fakes the user's share choice and the devices behind it."""

    def __init__(self,
                 surface_kind: SurfaceKind = SurfaceKind.MONITOR,
                 supported_formats: Sequence[str] = ("video/webm",),
                 deny_permission: bool = False,
                 audio_available: bool = True,
                 use_microphone: bool = False,
                 frame_interval: float = 0.1):
        self.surface_kind = surface_kind
        self.supported_formats = [container_type(mime) for mime in supported_formats]
        self.deny_permission = deny_permission
        self.audio_available = audio_available
        self.use_microphone = use_microphone
        self.frame_interval = frame_interval
        self.last_display: Optional[MediaSource] = None

    def request_display_capture(self, constraints: CaptureConstraints) -> MediaSource:
        if self.deny_permission:
            raise PermissionDeniedError()
        logger.info(f"Synthetic display capture granted: {self.surface_kind.value}")
        self.last_display = MediaSource([SyntheticDisplayTrack(self.surface_kind)])
        return self.last_display

    def request_audio_capture(self) -> MediaSource:
        if not self.audio_available:
            raise DeviceError("No microphone available")
        if self.use_microphone:
            return MediaSource([MicrophoneTrack().open()])
        return MediaSource([SyntheticToneTrack()])

    def is_format_supported(self, mime_type: str) -> bool:
        return container_type(mime_type) in self.supported_formats

    def create_encoder(self,
                       source: MediaSource,
                       mime_type: str,
                       on_fragment: Callable[[bytes], None],
                       on_error: Callable[[Exception], None]) -> Encoder:
        return SyntheticEncoder(source, mime_type, on_fragment, on_error,
                                frame_interval=self.frame_interval)

    def end_sharing(self) -> None:
        """Simulate the user pressing "Stop sharing" in the browser chrome."""
        if self.last_display:
            for track in self.last_display.video_tracks():
                track.end()

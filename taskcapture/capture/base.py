"""Abstract capture-device and encoder interfaces."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional
import logging

logger = logging.getLogger(__name__)


class SurfaceKind(Enum):
    """Kind of surface the user chose to share."""
    MONITOR = "monitor"
    WINDOW = "window"
    BROWSER = "browser"


class EncoderState(Enum):
    INACTIVE = "inactive"
    RECORDING = "recording"
    PAUSED = "paused"


@dataclass
class CaptureConstraints:
    """What we ask the capture device for."""
    prefer_surface: SurfaceKind = SurfaceKind.MONITOR
    audio: bool = True
    timeout_seconds: float = 60.0


@dataclass(frozen=True)
class AcquiredCapture:
    """Description of a successfully acquired capture (the stream itself stays with the manager)."""
    mime_type: str
    is_full_capture: bool
    has_audio: bool
    track_count: int


class MediaTrack(ABC):
    """A single video or audio track delivered by the capture device."""

    def __init__(self, kind: str, surface_kind: Optional[SurfaceKind] = None, label: str = ""):
        self.kind = kind
        self.surface_kind = surface_kind
        self.label = label or kind
        self.ended = False
        self._ended_listeners: List[Callable[["MediaTrack"], None]] = []

    def add_ended_listener(self, listener: Callable[["MediaTrack"], None]) -> None:
        self._ended_listeners.append(listener)

    def stop(self) -> None:
        """Stop the track from our side. Does not notify ended listeners."""
        if self.ended:
            return
        self.ended = True
        self._close()
        logger.debug(f"Track stopped: {self.label}")

    def end(self) -> None:
        """The device ended the track on its own (e.g. sharing revoked by the user)."""
        if self.ended:
            return
        self.ended = True
        self._close()
        logger.info(f"Track ended by device: {self.label}")
        for listener in list(self._ended_listeners):
            listener(self)

    @abstractmethod
    def read(self) -> bytes:
        """Return the raw media captured since the previous read."""
        pass

    @abstractmethod
    def _close(self) -> None:
        """Release the underlying device handle."""
        pass


class MediaSource:
    """An ordered collection of tracks, possibly merged from several device requests."""

    def __init__(self, tracks: Optional[List[MediaTrack]] = None):
        self.tracks: List[MediaTrack] = list(tracks or [])

    def video_tracks(self) -> List[MediaTrack]:
        return [track for track in self.tracks if track.kind == "video"]

    def audio_tracks(self) -> List[MediaTrack]:
        return [track for track in self.tracks if track.kind == "audio"]


class Encoder(ABC):
    """Turns a media source into periodically emitted binary fragments."""

    def __init__(self,
                 source: MediaSource,
                 mime_type: str,
                 on_fragment: Callable[[bytes], None],
                 on_error: Callable[[Exception], None]):
        self.source = source
        self.mime_type = mime_type
        self.on_fragment = on_fragment
        self.on_error = on_error
        self.state = EncoderState.INACTIVE

    @abstractmethod
    def start(self, timeslice_ms: int) -> None:
        """Start encoding, emitting a fragment every ``timeslice_ms``."""
        pass

    @abstractmethod
    def pause(self) -> None:
        pass

    @abstractmethod
    def resume(self) -> None:
        pass

    @abstractmethod
    def stop(self) -> None:
        """Stop encoding. Emits whatever is still buffered as a last fragment."""
        pass

    @abstractmethod
    def request_data(self) -> None:
        """Emit the data buffered since the last fragment right away."""
        pass


class CaptureBackend(ABC):
    """The capture-device API of the host environment."""

    @abstractmethod
    def request_display_capture(self, constraints: CaptureConstraints) -> MediaSource:
        """Ask the user to share a screen, window or tab.

        Raises:
            PermissionDeniedError: the user refused or dismissed the prompt
            DeviceError: the capture could not be started
        """
        pass

    @abstractmethod
    def request_audio_capture(self) -> MediaSource:
        """Ask for microphone access."""
        pass

    @abstractmethod
    def is_format_supported(self, mime_type: str) -> bool:
        pass

    @abstractmethod
    def create_encoder(self,
                       source: MediaSource,
                       mime_type: str,
                       on_fragment: Callable[[bytes], None],
                       on_error: Callable[[Exception], None]) -> Encoder:
        pass

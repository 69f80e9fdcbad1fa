"""Microphone audio track backed by a PyAudio input stream."""

import pyaudio
import logging
import threading
from threading import Thread, Event
from typing import Optional

from .base import MediaTrack
from ..errors import DeviceError

logger = logging.getLogger(__name__)


class MicrophoneTrack(MediaTrack):
    """Continuously reads the default input device on a background thread.

    Captured PCM accumulates until the encoder collects it with :meth:`read`.
    """

    def __init__(
        self,
        sample_rate: int = 48000,
        chunk_size: int = 1024,
        channels: int = 1,
        format: int = pyaudio.paInt16,
    ):
        """Initialize microphone track with specified parameters.

        Args:
            sample_rate: Audio sample rate in Hz
            chunk_size: Size of each read in samples
            channels: Number of audio channels (1 for mono)
            format: Audio sample format (16-bit signed int)
        """
        super().__init__(kind="audio", label="microphone")
        self.sample_rate = sample_rate
        self.chunk_size = chunk_size
        self.channels = channels
        self.format = format

        # Reader thread management
        self.reader_thread: Optional[Thread] = None
        self.stop_event = Event()

        # Captured audio waiting for the encoder
        self._pending = bytearray()
        self._lock = threading.Lock()
        self.total_chunks = 0

        self.pyaudio_instance: Optional[pyaudio.PyAudio] = None
        self.stream = None

    def open(self) -> "MicrophoneTrack":
        """Open the input stream and start reading.

        Raises:
            DeviceError: no usable input device
        """
        try:
            self.pyaudio_instance = pyaudio.PyAudio()
            self.stream = self.pyaudio_instance.open(
                format=self.format,
                channels=self.channels,
                rate=self.sample_rate,
                input=True,
                frames_per_buffer=self.chunk_size,
                stream_callback=None
            )
        except Exception as e:
            self._terminate()
            raise DeviceError(f"Microphone unavailable: {e}") from e

        logger.info(f"Microphone stream opened: {self.sample_rate}Hz, "
                    f"{self.chunk_size} samples/chunk")

        self.stop_event.clear()
        self.reader_thread = Thread(target=self._read_continuously, daemon=True)
        self.reader_thread.name = "MicrophoneReaderThread"
        self.reader_thread.start()
        return self

    def _read_continuously(self) -> None:
        """Internal method: read loop running in the background thread."""
        try:
            while not self.stop_event.is_set():
                audio_chunk = self.stream.read(
                    self.chunk_size,
                    exception_on_overflow=False
                )
                with self._lock:
                    self._pending.extend(audio_chunk)
                    self.total_chunks += 1
        except Exception as e:
            if not self.stop_event.is_set():
                logger.error(f"Microphone read failed: {e}")
                self.end()

    def read(self) -> bytes:
        with self._lock:
            data = bytes(self._pending)
            self._pending.clear()
        return data

    def _close(self) -> None:
        self.stop_event.set()

        if self.reader_thread and self.reader_thread.is_alive() \
                and self.reader_thread is not threading.current_thread():
            self.reader_thread.join(timeout=2.0)
            if self.reader_thread.is_alive():
                logger.warning("Microphone reader thread did not stop cleanly")

        if self.stream:
            try:
                self.stream.stop_stream()
                self.stream.close()
            except Exception as e:
                logger.warning(f"Error closing microphone stream: {e}")
            self.stream = None
        self._terminate()
        logger.info(f"Microphone closed. Total chunks: {self.total_chunks}")

    def _terminate(self) -> None:
        if self.pyaudio_instance:
            self.pyaudio_instance.terminate()
            self.pyaudio_instance = None

"""Unit tests for MicrophoneTrack class."""

import pytest
import time
import threading

from taskcapture.capture.microphone import MicrophoneTrack
from taskcapture.errors import DeviceError


def wait_for(condition, timeout=2.0):
    deadline = time.time() + timeout
    while time.time() < deadline:
        if condition():
            return True
        time.sleep(0.01)
    return False


@pytest.mark.unit
class TestMicrophoneTrack:
    """Test cases for MicrophoneTrack class."""

    def test_initialization(self):
        track = MicrophoneTrack()

        assert track.kind == "audio"
        assert track.label == "microphone"
        assert track.sample_rate == 48000
        assert track.chunk_size == 1024
        assert track.channels == 1
        assert track.ended is False
        assert track.stream is None

    def test_open_starts_reader(self, mock_pyaudio):
        track = MicrophoneTrack(sample_rate=16000, chunk_size=512)

        assert track.open() is track
        try:
            assert track.reader_thread is not None
            assert track.reader_thread.daemon is True
            mock_pyaudio['instance'].open.assert_called_once()
            kwargs = mock_pyaudio['instance'].open.call_args.kwargs
            assert kwargs['rate'] == 16000
            assert kwargs['frames_per_buffer'] == 512
            assert kwargs['input'] is True
        finally:
            track.stop()

    def test_read_returns_captured_audio(self, mock_pyaudio):
        track = MicrophoneTrack().open()
        try:
            assert wait_for(lambda: track.total_chunks > 0)
            data = track.read()
        finally:
            track.stop()

        assert len(data) > 0
        assert len(data) % 2048 == 0

    def test_read_drains_pending(self, mock_pyaudio):
        track = MicrophoneTrack().open()
        track.stop()
        track.read()

        assert track.read() == b""

    def test_stop_closes_device(self, mock_pyaudio):
        track = MicrophoneTrack().open()

        track.stop()

        assert track.ended
        assert track.stop_event.is_set()
        assert not track.reader_thread.is_alive()
        mock_pyaudio['stream'].stop_stream.assert_called_once()
        mock_pyaudio['stream'].close.assert_called_once()
        mock_pyaudio['instance'].terminate.assert_called_once()
        assert track.stream is None

    def test_open_failure(self, mock_pyaudio):
        mock_pyaudio['instance'].open.side_effect = OSError("No default input device")
        track = MicrophoneTrack()

        with pytest.raises(DeviceError):
            track.open()
        mock_pyaudio['instance'].terminate.assert_called_once()
        assert track.reader_thread is None

    def test_read_error_ends_track(self, mock_pyaudio):
        mock_pyaudio['stream'].read.side_effect = IOError("device unplugged")
        ended = threading.Event()
        track = MicrophoneTrack()
        track.add_ended_listener(lambda t: ended.set())

        track.open()

        assert ended.wait(timeout=2.0)
        assert track.ended
        mock_pyaudio['instance'].terminate.assert_called_once()

"""Error taxonomy for capture, recording, finalization and upload."""

from .models.recording import FailureReason


class RecordingError(Exception):
    """Base class for every failure a recording session can surface to the user."""

    reason: FailureReason = FailureReason.DEVICE_ERROR
    retryable: bool = True
    default_message = "Recording failed."

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class PermissionDeniedError(RecordingError):
    reason = FailureReason.PERMISSION_DENIED
    default_message = ("Failed to start recording. Please make sure you've granted "
                       "the necessary permissions.")


class NoSupportedFormatError(RecordingError):
    reason = FailureReason.NO_SUPPORTED_FORMAT
    retryable = False
    default_message = ("This environment cannot encode screen recordings. "
                       "Try again from a different browser or device.")


class DeviceError(RecordingError):
    reason = FailureReason.DEVICE_ERROR
    default_message = "The capture device stopped responding. Please try again."


class NoDataError(RecordingError):
    reason = FailureReason.NO_DATA
    default_message = "No recording data was captured. Please try again."


class EmptyPayloadError(RecordingError):
    reason = FailureReason.EMPTY_PAYLOAD
    default_message = "The recording appears to be empty or corrupt. Please try again."


class UploadError(RecordingError):
    reason = FailureReason.UPLOAD_FAILED
    default_message = ("Your recording is saved locally but could not be submitted. "
                       "Please retry the submission.")


class InvalidTransitionError(RuntimeError):
    """Raised when code asks the state machine for a transition it does not allow."""

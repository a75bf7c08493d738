"""Error taxonomy for the capture workflow.

Every error carries a ``kind`` (stable identifier) and a ``user_message``
that the workflow shows in place of the failed operation.
"""

from typing import Optional


class CaptureError(Exception):
    """Base class for all user-facing capture workflow errors."""

    kind = "Unknown"
    user_message = "Something went wrong. Please try again."

    def __init__(self, detail: Optional[str] = None, cause: Optional[BaseException] = None):
        self.detail = detail
        self.cause = cause
        super().__init__(detail or self.user_message)


class InvalidTransition(RuntimeError):
    """Raised when the workflow is asked to move between incompatible phases."""


# Acquisition

class AcquisitionError(CaptureError):
    kind = "AcquisitionError"
    user_message = "Unable to access camera."


class PermissionDenied(AcquisitionError):
    kind = "PermissionDenied"
    user_message = "Camera access was denied."


class DeviceNotFound(AcquisitionError):
    kind = "DeviceNotFound"
    user_message = "No camera found."


class AcquisitionTimeout(AcquisitionError):
    kind = "AcquisitionTimeout"
    user_message = "Camera access timed out."


class UnsupportedBrowser(AcquisitionError):
    """No usable media capture backend on this host."""

    kind = "UnsupportedBrowser"
    user_message = "This system does not support video recording."


class StreamNotActive(AcquisitionError):
    kind = "StreamNotActive"
    user_message = "Camera stream is not active."


class AcquisitionUnknown(AcquisitionError):
    kind = "Unknown"
    user_message = "Unable to access camera."


# Playback

class PlaybackError(CaptureError):
    kind = "PlaybackError"
    user_message = "Video playback error occurred."


class StreamDisconnected(PlaybackError):
    kind = "StreamDisconnected"
    user_message = "Camera stream disconnected. Please restart the camera."


class PlaybackFailed(PlaybackError):
    kind = "PlaybackFailed"
    user_message = "Video playback failed. Please restart the camera."


# Recording

class RecordingError(CaptureError):
    kind = "RecordingError"
    user_message = "Failed to start recording."


class RecorderUnavailable(RecordingError):
    kind = "RecorderUnavailable"
    user_message = "Video recording is not supported with the selected format."


class NoCameraStream(RecordingError):
    kind = "NoCameraStream"
    user_message = "No camera stream found."


class RecordingInProgress(RecordingError):
    kind = "RecordingInProgress"
    user_message = "A recording is already in progress."


# Upload

class UploadError(CaptureError):
    kind = "UploadError"
    user_message = "Failed to upload video. Please try again."


class UploadFailed(UploadError):
    kind = "UploadFailed"


class SignedUrlError(UploadFailed):
    kind = "SignedUrlError"


class ExportFailed(CaptureError):
    kind = "ExportFailed"
    user_message = "Failed to save the recording locally."


class StorageError(Exception):
    """Raised by storage and record collaborators on a failed HTTP call."""

    def __init__(self, message: str, status: Optional[int] = None):
        self.status = status
        super().__init__(message)

"""Camera acquisition, preview, recording and timing."""

from .devices import DeviceAcquisition, MediaConstraints, MediaDevicesBackend, OpenCVMediaDevices
from .preview import OpenCVPreviewSurface, PreviewBinder, PreviewSurface
from .recorder import AvMediaEncoder, EncoderProfile, MediaEncoder, Recorder, RecorderHandle
from .stream import MediaStream, MediaTrack
from .timer import RecordingTimer

__all__ = [
    'AvMediaEncoder',
    'DeviceAcquisition',
    'EncoderProfile',
    'MediaConstraints',
    'MediaDevicesBackend',
    'MediaEncoder',
    'MediaStream',
    'MediaTrack',
    'OpenCVMediaDevices',
    'OpenCVPreviewSurface',
    'PreviewBinder',
    'PreviewSurface',
    'Recorder',
    'RecorderHandle',
    'RecordingTimer',
]

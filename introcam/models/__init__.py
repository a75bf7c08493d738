"""Data models for the IntroCam application."""

from .capture import ALLOWED_TRANSITIONS, Capture, CaptureSession, Phase, QualityPreset
from .events import ErrorEvent, PhaseEvent, ProgressEvent, SliceEvent, TimerEvent

__all__ = [
    "ALLOWED_TRANSITIONS",
    "Capture",
    "CaptureSession",
    "Phase",
    "QualityPreset",
    # Pub/sub events
    "ErrorEvent",
    "PhaseEvent",
    "ProgressEvent",
    "SliceEvent",
    "TimerEvent",
]

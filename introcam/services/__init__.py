"""Services layer: review, upload, event publishing and the capture workflow."""

from .publisher import SlicePublisher, WorkflowPublisher
from .review import ReviewGate
from .uploader import Uploader, UploadResult
from .workflow import CaptureWorkflow

__all__ = [
    "CaptureWorkflow",
    "ReviewGate",
    "SlicePublisher",
    "UploadResult",
    "Uploader",
    "WorkflowPublisher",
]

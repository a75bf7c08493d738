"""Capture session data models."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, List, Optional

from ..errors import CaptureError


class Phase(Enum):
    """Phase of the capture workflow."""
    INSTRUCTIONS = "instructions"
    CAMERA_PREVIEW = "camera-preview"
    RECORDING = "recording"
    REVIEW = "review"
    UPLOADING = "uploading"
    SUCCESS = "success"


ALLOWED_TRANSITIONS: Dict[Phase, FrozenSet[Phase]] = {
    Phase.INSTRUCTIONS: frozenset({Phase.CAMERA_PREVIEW}),
    Phase.CAMERA_PREVIEW: frozenset({Phase.CAMERA_PREVIEW, Phase.RECORDING}),
    Phase.RECORDING: frozenset({Phase.REVIEW}),
    Phase.REVIEW: frozenset({Phase.UPLOADING, Phase.CAMERA_PREVIEW}),
    Phase.UPLOADING: frozenset({Phase.SUCCESS, Phase.REVIEW}),
    Phase.SUCCESS: frozenset({Phase.INSTRUCTIONS}),
}


class QualityPreset(Enum):
    """Recording quality, mapping to resolution hints and encoder bitrate."""
    STANDARD = "standard"
    HIGH = "high"

    @property
    def width(self) -> int:
        return 1920 if self is QualityPreset.HIGH else 1280

    @property
    def height(self) -> int:
        return 1080 if self is QualityPreset.HIGH else 720

    @property
    def frame_rate(self) -> int:
        return 30

    @property
    def video_bitrate(self) -> int:
        return 2_500_000 if self is QualityPreset.HIGH else 1_500_000

    @classmethod
    def parse(cls, value: str) -> "QualityPreset":
        """Parse a preset name, accepting the ``720p``/``1080p`` aliases."""
        aliases = {"720p": cls.STANDARD, "1080p": cls.HIGH}
        normalized = value.strip().lower()
        if normalized in aliases:
            return aliases[normalized]
        return cls(normalized)


@dataclass
class Capture:
    """A recorded video assembled from encoder slices.

    The bytes are never modified after assembly; ``release()`` drops them once
    the capture has been consumed or discarded.
    """
    data: bytes
    mime_type: str = "video/webm"
    created_at: datetime = field(default_factory=datetime.now)
    slice_count: int = 0
    released: bool = False

    @classmethod
    def from_slices(cls, slices: List[bytes], mime_type: str = "video/webm") -> "Capture":
        """Concatenate slices in recording order."""
        return cls(data=b"".join(slices), mime_type=mime_type, slice_count=len(slices))

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def extension(self) -> str:
        return ".mp4" if self.mime_type == "video/mp4" else ".webm"

    def release(self) -> None:
        """Drop the recorded bytes. The capture is unusable afterwards."""
        self.data = b""
        self.released = True


@dataclass
class CaptureSession:
    """Ephemeral state of one workflow instance. Never persisted."""
    record_id: str
    quality: QualityPreset = QualityPreset.STANDARD
    phase: Phase = Phase.INSTRUCTIONS
    elapsed_seconds: int = 0
    error: Optional[CaptureError] = None
    public_url: Optional[str] = None
    has_camera_access: bool = False

    @property
    def error_message(self) -> Optional[str]:
        return self.error.user_message if self.error else None

    @property
    def time_warning(self) -> bool:
        return self.phase is Phase.RECORDING and self.elapsed_seconds >= 90

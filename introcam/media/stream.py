"""Media stream and track handles."""

import logging
import uuid
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)

LIVE = "live"
ENDED = "ended"


class MediaTrack(ABC):
    """A single audio or video track.

    A track is ``live`` until ``stop()`` is called or its source ends. Stopping
    is idempotent and synchronous.
    """

    def __init__(self, kind: str, label: str = ""):
        self.kind = kind
        self.label = label
        self.id = uuid.uuid4().hex
        self.enabled = True
        self._ready_state = LIVE

    @property
    def ready_state(self) -> str:
        return self._ready_state

    def stop(self) -> None:
        if self._ready_state == ENDED:
            return
        self._ready_state = ENDED
        self._on_stop()
        logger.debug(f"Stopped {self.kind} track {self.label or self.id}")

    def _end(self) -> None:
        """Mark the track ended because its source went away."""
        self._ready_state = ENDED

    @abstractmethod
    def _on_stop(self) -> None:
        """Release whatever the track holds on its source."""

    @abstractmethod
    def get_settings(self) -> Dict[str, Any]:
        """Return the negotiated settings (width/height/frame_rate or sample_rate)."""

    @abstractmethod
    async def read(self) -> Optional[Any]:
        """Return the next frame or audio chunk, or None once the track has ended."""


class MediaStream:
    """A set of tracks acquired together by one capture request."""

    def __init__(self, tracks: Iterable[MediaTrack]):
        self.id = uuid.uuid4().hex
        self._tracks: List[MediaTrack] = list(tracks)

    def get_tracks(self) -> List[MediaTrack]:
        return list(self._tracks)

    def get_video_tracks(self) -> List[MediaTrack]:
        return [t for t in self._tracks if t.kind == "video"]

    def get_audio_tracks(self) -> List[MediaTrack]:
        return [t for t in self._tracks if t.kind == "audio"]

    @property
    def active(self) -> bool:
        return any(t.ready_state == LIVE for t in self._tracks)

    def stop(self) -> None:
        """Stop every track. Safe to call more than once."""
        for track in self._tracks:
            track.stop()

    def __repr__(self) -> str:
        kinds = ",".join(f"{t.kind}:{t.ready_state}" for t in self._tracks)
        return f"MediaStream(id={self.id[:8]}, tracks=[{kinds}])"
